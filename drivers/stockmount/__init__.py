"""StockMount driver package."""

from drivers.stockmount.stockmount_driver import PRODUCT_FIELDS, StockMountDriver

__all__ = ["StockMountDriver", "PRODUCT_FIELDS"]
