"""Fallback values for fields providers require but orders may lack.

The values live in one ``FallbackPolicy`` so tenants can override them
instead of each driver hardcoding its own placeholders.
"""

import hashlib
import re
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class FallbackPolicy:
    """Placeholder values used when an order omits a required field."""
    customer_name: str = "Müşteri"
    final_consumer_name: str = "Nihai Tuketici"
    phone: str = "+905555555555"
    local_phone: str = "5550000000"
    tax_number: str = "11111111111"
    vat_rate: Decimal = Decimal("20")
    street: str = "Adres"
    district: str = "Merkez"
    city: str = "Istanbul"
    country: str = "Türkiye"
    postal_code: str = "34000"
    address_text: str = "Adres Belirtilmemis"
    sku_prefix: str = "GEN-"
    due_days: int = 30

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FallbackPolicy":
        """Build a policy from overrides, ignoring unknown keys."""
        policy = cls()
        if not data:
            return policy
        known = {f.name for f in fields(cls)}
        overrides = {k: v for k, v in data.items() if k in known}
        if "vat_rate" in overrides:
            overrides["vat_rate"] = Decimal(str(overrides["vat_rate"]))
        return replace(policy, **overrides)

    def with_overrides(self, **kwargs) -> "FallbackPolicy":
        return replace(self, **kwargs)


DEFAULT_FALLBACKS = FallbackPolicy()


def _digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def normalize_phone(phone: Optional[str], policy: FallbackPolicy = DEFAULT_FALLBACKS) -> str:
    """Normalize a Turkish phone number to ``+90XXXXXXXXXX``.

    Numbers that cannot be normalized to ten local digits get the
    policy phone.
    """
    digits = _digits(phone)
    if len(digits) == 12 and digits.startswith("90"):
        return "+" + digits
    if digits.startswith("0"):
        digits = digits[1:]
    if len(digits) == 10:
        return "+90" + digits
    return policy.phone


def local_phone(phone: Optional[str], policy: FallbackPolicy = DEFAULT_FALLBACKS) -> str:
    """Ten-digit local form (``5XXXXXXXXX``) for APIs without country code."""
    digits = _digits(phone)
    if len(digits) == 12 and digits.startswith("90"):
        digits = digits[2:]
    elif digits.startswith("0"):
        digits = digits[1:]
    if len(digits) == 10:
        return digits
    return policy.local_phone


def generate_sku(name: Optional[str], policy: FallbackPolicy = DEFAULT_FALLBACKS) -> str:
    """Deterministic SKU for products that arrive without one."""
    digest = hashlib.md5((name or "").encode("utf-8")).hexdigest()
    return policy.sku_prefix + digest[:8].upper()


def split_full_name(full_name: Optional[str], policy: FallbackPolicy = DEFAULT_FALLBACKS) -> Tuple[str, str]:
    """Split "Ayşe Nur Yılmaz" into ("Ayşe Nur", "Yılmaz").

    A single word is used as both first and last name.
    """
    parts = (full_name or "").split()
    if not parts:
        return policy.customer_name, policy.customer_name
    if len(parts) == 1:
        return parts[0], parts[0]
    return " ".join(parts[:-1]), parts[-1]


def join_address(*parts: Optional[str], policy: FallbackPolicy = DEFAULT_FALLBACKS) -> str:
    """Join non-empty address parts, or the policy placeholder text."""
    text = ", ".join(p.strip() for p in parts if p and p.strip())
    return text or policy.address_text


def customer_tax_number(tax_number: Optional[str], policy: FallbackPolicy = DEFAULT_FALLBACKS) -> str:
    """Customer VKN/TCKN, or the final-consumer placeholder."""
    digits = _digits(tax_number)
    if len(digits) in (10, 11):
        return digits
    return policy.tax_number
