"""Entegra ERP driver package."""

from drivers.entegra.entegra_driver import EntegraDriver, PRODUCT_FIELDS, PRODUCT_REQUIRED_FIELDS

__all__ = ["EntegraDriver", "PRODUCT_FIELDS", "PRODUCT_REQUIRED_FIELDS"]
