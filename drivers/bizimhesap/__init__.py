"""BizimHesap B2B driver package."""

from drivers.bizimhesap.bizimhesap_driver import COMMISSION_LINES, PUBLIC_B2B_KEY, BizimHesapDriver

__all__ = ["BizimHesapDriver", "COMMISSION_LINES", "PUBLIC_B2B_KEY"]
