"""Sentos driver package."""

from drivers.sentos.sentos_driver import PRODUCT_FIELDS, SentosDriver

__all__ = ["SentosDriver", "PRODUCT_FIELDS"]
