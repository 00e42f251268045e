"""Provider product payload -> CanonicalProduct mapping.

Each driver describes where its product fields live with a
``ProductFieldMap``; ``map_product`` applies it. Mapping is pure: the same
raw payload always produces the same canonical product.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from core.mapping.accessor import PayloadAccessor, Path
from core.mapping.fallbacks import DEFAULT_FALLBACKS, FallbackPolicy, generate_sku
from core.models.canonical import CanonicalProduct, CategoryRef

_IMAGE_KEYS = ("url", "absolute_url", "source_url", "PhotoUrl", "image", "src")

# Providers still send the legacy lira codes.
_CURRENCY_ALIASES = {"TL": "TRY", "TRL": "TRY"}


@dataclass(frozen=True)
class ProductFieldMap:
    """Alias paths of each canonical product field in a provider payload."""
    id: Path = ("id",)
    sku: Path = ("sku", "code")
    name: Path = ("name",)
    description: Path = ("description",)
    price: Path = ("price",)
    cost: Path = ("cost",)
    stock: Path = ("stock", "quantity")
    vat_rate: Path = ("vat_rate",)
    barcode: Path = ("barcode",)
    category_id: Path = ()
    category_name: Path = ()
    brand: Path = ("brand",)
    images: Path = ()
    images_as_json: bool = False
    currency: Path = ("currency",)
    default_vat: Optional[Decimal] = None
    allowed_vat_rates: Optional[Tuple[Decimal, ...]] = None
    default_currency: str = "TRY"
    generate_missing_sku: bool = False


def _image_urls(items: Sequence[Any]) -> List[str]:
    urls = []
    for item in items:
        if isinstance(item, str) and item:
            urls.append(item)
        elif isinstance(item, dict):
            for key in _IMAGE_KEYS:
                if item.get(key):
                    urls.append(str(item[key]))
                    break
    return urls


def _currency(acc: PayloadAccessor, field_map: ProductFieldMap) -> str:
    code = (acc.text(field_map.currency) or field_map.default_currency).upper()
    return _CURRENCY_ALIASES.get(code, code)


def _vat(acc: PayloadAccessor, field_map: ProductFieldMap, policy: FallbackPolicy) -> Decimal:
    default = field_map.default_vat if field_map.default_vat is not None else policy.vat_rate
    rate = acc.decimal(field_map.vat_rate, default=None)
    if rate is None:
        return default
    if field_map.allowed_vat_rates is not None and rate not in field_map.allowed_vat_rates:
        return default
    return rate


def map_product(
    raw: Dict[str, Any],
    field_map: ProductFieldMap,
    provider: Optional[str] = None,
    category: Optional[CategoryRef] = None,
    stock: Optional[int] = None,
    images: Optional[List[str]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    policy: FallbackPolicy = DEFAULT_FALLBACKS,
) -> CanonicalProduct:
    """Map one raw provider product to a ``CanonicalProduct``.

    Args:
        raw: Provider payload (kept on the product for audit)
        field_map: Where each field lives in ``raw``
        provider: Driver name recorded on the product
        category: Resolved category, overrides the field map
        stock: Computed stock (e.g. summed over warehouses)
        images: Computed image list
        overrides: Values taking precedence over ``raw`` (e.g. parent meta fields)
        policy: Fallback values
    """
    acc = PayloadAccessor(raw)
    overrides = overrides or {}

    name = overrides.get("name") or acc.text(field_map.name, default="")
    sku = overrides.get("sku") or acc.text(field_map.sku)
    if not sku and field_map.generate_missing_sku and name:
        sku = generate_sku(name, policy)

    if category is None and (field_map.category_id or field_map.category_name):
        cat_id = acc.text(field_map.category_id) if field_map.category_id else None
        cat_name = acc.text(field_map.category_name) if field_map.category_name else None
        if cat_id or cat_name:
            category = CategoryRef(id=cat_id, name=cat_name)

    if images is None and field_map.images:
        items = acc.json_list(field_map.images) if field_map.images_as_json else acc.items(field_map.images)
        images = _image_urls(items)

    return CanonicalProduct(
        id=acc.text(field_map.id),
        sku=sku,
        name=name,
        description=overrides.get("description") or acc.text(field_map.description),
        price=acc.decimal(field_map.price),
        cost=acc.decimal(field_map.cost),
        stock=stock if stock is not None else acc.integer(field_map.stock),
        vat_rate=overrides.get("vat_rate") if overrides.get("vat_rate") is not None else _vat(acc, field_map, policy),
        barcode=acc.text(field_map.barcode),
        category=category,
        brand=overrides.get("brand") or acc.text(field_map.brand),
        images=images or [],
        currency=_currency(acc, field_map),
        provider=provider,
        raw=raw,
    )


class LookupCache:
    """Memoizes secondary lookups (e.g. category names by id).

    One instance lives for one sync run so a page of products sharing a
    category triggers a single provider call. An optional TTL lets a driver
    keep the cache across runs.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._values: Dict[str, Tuple[float, Any]] = {}
        self.loads = 0

    def _fresh(self, key: str) -> bool:
        if key not in self._values:
            return False
        if self._ttl is None:
            return True
        stored_at, _ = self._values[key]
        return self._clock() - stored_at < self._ttl

    async def get_or_load(self, key: Any, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key``, calling ``loader`` on a miss.

        Loader failures are not cached.
        """
        cache_key = str(key)
        if self._fresh(cache_key):
            return self._values[cache_key][1]
        value = await loader()
        self.loads += 1
        self._values[cache_key] = (self._clock(), value)
        return value

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)
