"""Dopigo ERP driver package."""

from drivers.dopigo.dopigo_driver import DopigoDriver, VARIANT_FIELDS

__all__ = ["DopigoDriver", "VARIANT_FIELDS"]
