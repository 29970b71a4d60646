"""
FilterSpec: the single validated, canonical form of a catalog search request.

Request parameters arrive as loosely-typed strings (query string or JSON).
They are validated and canonicalized here, once, so that everything
downstream (query building, cache keys) works on one explicit structure and
equivalent requests collapse onto the same cache entry.
"""
import hashlib
import json
import math
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from storefront.data.models import SIZES
from storefront.errors import ValidationError

AVAILABILITY_VALUES = ("in_stock", "out_of_stock")
AVAILABILITY_ALIASES = {"instock": "in_stock", "outofstock": "out_of_stock"}

# sort_by -> default direction
SORT_FIELDS = {
    "newest": "desc",
    "price": "asc",
    "name": "asc",
    "popularity": "desc",
    "stock": "desc",
}
SORT_ALIASES = {
    "createdat": "newest",
    "created_at": "newest",
    "latest": "newest",
    "sold": "popularity",
    "popular": "popularity",
    "totalstock": "stock",
    "total_stock": "stock",
}

# camelCase request names -> FilterSpec field names
PARAM_ALIASES = {
    "q": "search",
    "query": "search",
    "productType": "product_type",
    "minPrice": "min_price",
    "maxPrice": "max_price",
    "sortBy": "sort_by",
    "sortOrder": "sort_order",
    "excludeFeatured": "exclude_featured",
}

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off", "")


def _split_multi_value(value: Any) -> List[str]:
    """Accept a list or a comma-separated string; return trimmed non-empty parts."""
    if value is None:
        return []
    if isinstance(value, str):
        parts: Iterable[Any] = value.split(",")
    else:
        parts = []
        for item in value:
            parts.extend(str(item).split(","))
    return [str(part).strip() for part in parts if str(part).strip()]


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split()).lower()
    return text or None


@dataclass(frozen=True)
class FilterSpec:
    """
    Canonical catalog filter.

    Text fields are trimmed, whitespace-collapsed and lower-cased; tags and
    sizes are de-duplicated and sorted; sort direction is always explicit.
    """

    search: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    product_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)
    sizes: Tuple[str, ...] = field(default_factory=tuple)
    availability: Optional[str] = None
    sort_by: str = "newest"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 12
    exclude_featured: bool = False

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        default_limit: int = 12,
        max_limit: int = 100,
        max_search_length: int = 100,
    ) -> "FilterSpec":
        """
        Validate raw request parameters and build a canonical FilterSpec.

        Raises:
            ValidationError: with every problem found, keyed by field name.
        """
        raw: Dict[str, Any] = {}
        for key, value in params.items():
            raw[PARAM_ALIASES.get(key, key)] = value

        errors: Dict[str, List[str]] = {}

        def fail(name: str, message: str) -> None:
            errors.setdefault(name, []).append(message)

        search = _clean_text(raw.get("search"))
        if search and len(search) > max_search_length:
            fail("search", f"must be at most {max_search_length} characters")

        min_price = cls._parse_price(raw.get("min_price"), "min_price", fail)
        max_price = cls._parse_price(raw.get("max_price"), "max_price", fail)
        if min_price is not None and max_price is not None and min_price > max_price:
            fail("min_price", "must not be greater than max_price")

        tags = tuple(sorted({tag.lower() for tag in _split_multi_value(raw.get("tags"))}))

        sizes = []
        for size in _split_multi_value(raw.get("sizes")):
            size = size.upper()
            if size not in SIZES:
                fail("sizes", f"unknown size '{size}', expected one of {', '.join(SIZES)}")
            elif size not in sizes:
                sizes.append(size)
        sizes.sort(key=SIZES.index)

        availability = _clean_text(raw.get("availability"))
        if availability is not None:
            availability = availability.replace("-", "_").replace(" ", "_")
            availability = AVAILABILITY_ALIASES.get(availability, availability)
            if availability == "all":
                availability = None
            elif availability not in AVAILABILITY_VALUES:
                fail("availability", f"must be one of {', '.join(AVAILABILITY_VALUES)} or 'all'")

        sort_by = _clean_text(raw.get("sort_by")) or "newest"
        sort_by = SORT_ALIASES.get(sort_by, sort_by)
        if sort_by not in SORT_FIELDS:
            fail("sort_by", f"must be one of {', '.join(SORT_FIELDS)}")
            sort_by = "newest"

        sort_order = _clean_text(raw.get("sort_order")) or SORT_FIELDS[sort_by]
        if sort_order not in ("asc", "desc"):
            fail("sort_order", "must be 'asc' or 'desc'")

        page = cls._parse_int(raw.get("page"), "page", 1, fail)
        if page is not None and page < 1:
            fail("page", "must be at least 1")

        limit = cls._parse_int(raw.get("limit"), "limit", default_limit, fail)
        if limit is not None:
            if limit < 1:
                fail("limit", "must be at least 1")
            limit = min(limit, max_limit)

        exclude_featured = raw.get("exclude_featured", False)
        if not isinstance(exclude_featured, bool):
            text = str(exclude_featured).strip().lower()
            if text in TRUE_VALUES:
                exclude_featured = True
            elif text in FALSE_VALUES:
                exclude_featured = False
            else:
                fail("exclude_featured", "must be a boolean")

        if errors:
            summary = "; ".join(f"{name}: {', '.join(msgs)}" for name, msgs in errors.items())
            raise ValidationError(f"Invalid filter: {summary}", errors)

        return cls(
            search=search,
            category=_clean_text(raw.get("category")),
            subcategory=_clean_text(raw.get("subcategory")),
            product_type=_clean_text(raw.get("product_type")),
            min_price=min_price,
            max_price=max_price,
            tags=tags,
            sizes=tuple(sizes),
            availability=availability,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
            exclude_featured=bool(exclude_featured),
        )

    @staticmethod
    def _parse_price(value: Any, name: str, fail) -> Optional[float]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        try:
            price = float(value)
        except (TypeError, ValueError):
            fail(name, f"'{value}' is not a number")
            return None
        if math.isnan(price) or math.isinf(price):
            fail(name, "must be a finite number")
            return None
        if price < 0:
            fail(name, "must not be negative")
            return None
        return price

    @staticmethod
    def _parse_int(value: Any, name: str, default: int, fail) -> Optional[int]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        if isinstance(value, bool):
            fail(name, "must be an integer")
            return None
        try:
            return int(str(value).strip())
        except ValueError:
            fail(name, f"'{value}' is not an integer")
            return None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def has_category_filter(self) -> bool:
        return bool(self.category or self.subcategory)

    def canonical(self) -> Dict[str, Any]:
        """Plain dict with stable content; key order is fixed at serialization."""
        data = asdict(self)
        data["tags"] = list(self.tags)
        data["sizes"] = list(self.sizes)
        return data

    def cache_key(self) -> str:
        """
        Deterministic digest of the canonical filter.

        Equivalent requests (different parameter order, case, spacing or
        tag order) produce identical keys.
        """
        raw = json.dumps(self.canonical(), sort_keys=True, separators=(",", ":"))
        return f"search:{hashlib.sha256(raw.encode()).hexdigest()[:16]}"

    def with_page(self, page: int) -> "FilterSpec":
        return replace(self, page=page)
