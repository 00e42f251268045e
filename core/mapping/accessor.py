"""Default-applying reader for loosely shaped provider payloads.

Provider responses drift: fields get renamed, nested or dropped between API
versions. ``PayloadAccessor`` reads a field through a list of candidate
paths and falls back to an explicit default instead of failing.

Usage:
    acc = PayloadAccessor(raw)
    price = acc.decimal(["price2", "price1", "attributes.list_price"], default=Decimal("0"))
"""

import json
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from core.models.canonical import _parse_decimal

Path = Union[str, Sequence[str]]

_MISSING = object()


def _candidates(path: Path) -> List[str]:
    if isinstance(path, str):
        return [path]
    return list(path)


def _walk(data: Any, dotted: str) -> Any:
    current = data
    for part in dotted.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


class PayloadAccessor:
    """Typed, defaulted access to a raw provider dict."""

    def __init__(self, data: Optional[Dict[str, Any]]):
        self._data = data if isinstance(data, dict) else {}

    @property
    def raw(self) -> Dict[str, Any]:
        return self._data

    def get(self, path: Path, default: Any = None) -> Any:
        """First non-null, non-empty value among the candidate paths."""
        for candidate in _candidates(path):
            value = _walk(self._data, candidate)
            if value is _MISSING or value is None or value == "":
                continue
            return value
        return default

    def has(self, path: Path) -> bool:
        return self.get(path, _MISSING) is not _MISSING

    def text(self, path: Path, default: Optional[str] = None) -> Optional[str]:
        value = self.get(path)
        if value is None or isinstance(value, (dict, list)):
            return default
        text = str(value).strip()
        return text if text else default

    def decimal(self, path: Path, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
        value = self.get(path)
        if value is None or isinstance(value, (dict, list)):
            return default
        try:
            parsed = _parse_decimal(value)
        except ValueError:
            return default
        return default if parsed is None else parsed

    def integer(self, path: Path, default: Optional[int] = 0) -> Optional[int]:
        value = self.decimal(path, default=None)
        return default if value is None else int(value)

    def boolean(self, path: Path, default: bool = False) -> bool:
        value = self.get(path)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "evet")
        return bool(value)

    def items(self, path: Path) -> List[Any]:
        """List at the path; a dict is wrapped, anything else yields []."""
        value = self.get(path)
        if isinstance(value, list):
            return value
        if isinstance(value, dict):
            return [value]
        return []

    def json_list(self, path: Path) -> List[Any]:
        """List that some providers send as a JSON-encoded string."""
        value = self.get(path)
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return []
        if isinstance(value, list):
            return value
        return []

    def child(self, path: Path) -> "PayloadAccessor":
        value = self.get(path)
        return PayloadAccessor(value if isinstance(value, dict) else {})


def first_present(values: Iterable[Any], default: Any = None) -> Any:
    """First value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return default
