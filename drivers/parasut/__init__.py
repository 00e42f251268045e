"""Paraşüt accounting driver package."""

from drivers.parasut.parasut_driver import ParasutDriver, PRODUCT_FIELDS

__all__ = ["ParasutDriver", "PRODUCT_FIELDS"]
