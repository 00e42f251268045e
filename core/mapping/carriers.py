"""Cargo carriers and payment types used on e-Archive documents."""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class Carrier:
    """Official title and tax number of a cargo company."""
    key: str
    title: str
    tax_number: str


CARGO_COMPANIES: Dict[str, Carrier] = {
    c.key: c
    for c in (
        Carrier("yurtici", "Yurtiçi Kargo Servisi A.Ş.", "9860008925"),
        Carrier("aras", "Aras Kargo Yurt İçi Yurt Dışı Taşımacılık A.Ş.", "0720039666"),
        Carrier("mng", "MNG Kargo Yurtiçi ve Yurtdışı Taşımacılık A.Ş.", "6080712084"),
        Carrier("surat", "Sürat Kargo Lojistik ve Dağıtım A.Ş.", "7321640262"),
        Carrier("ptt", "Posta ve Telgraf Teşkilatı A.Ş.", "7320068060"),
        Carrier("trendyol_express", "Trendyol Lojistik A.Ş.", "8590921777"),
        Carrier("hepsijet", "D Fast Dağıtım Hizmetleri ve Lojistik A.Ş.", "2650701090"),
        Carrier("kolay_gelsin", "Kolay Gelsin Dağıtım Hizmetleri A.Ş.", "2910804196"),
        Carrier("kargomsende", "Turkuvaz Dağıtım Pazarlama A.Ş.", "8710458722"),
        Carrier("scotty", "Scotty Kurye A.Ş.", "7571038146"),
    )
}

# Substrings that identify a carrier in free-form provider names
_ALIASES = (
    ("yurtiçi", "yurtici"),
    ("yurtici", "yurtici"),
    ("aras", "aras"),
    ("mng", "mng"),
    ("sürat", "surat"),
    ("surat", "surat"),
    ("ptt", "ptt"),
    ("trendyol", "trendyol_express"),
    ("hepsijet", "hepsijet"),
    ("kolay", "kolay_gelsin"),
    ("kargomsende", "kargomsende"),
    ("scotty", "scotty"),
)


def resolve_carrier(name: Optional[str]) -> Optional[Carrier]:
    """Find a carrier by key or by a loose name such as "Yurtiçi Kargo"."""
    if not name:
        return None
    key = name.strip().lower()
    if key in CARGO_COMPANIES:
        return CARGO_COMPANIES[key]
    for alias, carrier_key in _ALIASES:
        if alias in key:
            return CARGO_COMPANIES[carrier_key]
    return None


# Payment method -> e-Archive internet sale payment type
ONLINE_PAYMENT = "KREDIKARTI/BANKAKARTI"
CASH_ON_DELIVERY = "KAPIDAODEME"
BANK_TRANSFER = "EFT/HAVALE"

_ONLINE_METHODS = {"online", "online payment", "stripe", "credit_card", "card"}
_CASH_METHODS = {"cash", "cash payment", "cash_on_delivery", "kapida"}


def payment_type(method: Optional[str]) -> str:
    """Map a marketplace payment method to the e-Archive payment type."""
    normalized = (method or "").strip().lower()
    if normalized.upper() in (ONLINE_PAYMENT, CASH_ON_DELIVERY, BANK_TRANSFER):
        return normalized.upper()
    if normalized in _ONLINE_METHODS:
        return ONLINE_PAYMENT
    if normalized in _CASH_METHODS:
        return CASH_ON_DELIVERY
    return BANK_TRANSFER
