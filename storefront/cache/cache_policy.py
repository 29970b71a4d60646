"""
Storefront caching policy: what gets cached, for how long, and who invalidates it.

Architecture:
  SQL database → source of truth (products, categories, stock)
  Redis        → read-through cache (derived copies only, TTL-based expiry)

TTL values come from StorefrontConfig; the constants below are the defaults.
"""
from storefront.catalog.filters import FilterSpec

# ────────────────────────────────────────────────────────────────────────────
# Cache Policy Table
# ────────────────────────────────────────────────────────────────────────────
#
# Data Type        | Key Pattern                       | TTL     | Invalidation
# -----------------+-----------------------------------+---------+------------------------------
# Product detail   | {ns}:product:{id}                 | 2 min   | Deleted on every product write
#                  |                                   |         | and every stock mutation
# Search page      | {ns}:search:{sha256[:16]}         | 5 min   | TTL only
# Category tree    | {ns}:categories:tree              | 10 min  | TTL only
#
# ────────────────────────────────────────────────────────────────────────────
# Consistency Expectations
# ────────────────────────────────────────────────────────────────────────────
#
# - A product detail read after a write by the same user always reflects the
#   write: the writer deletes product:{id} after commit.
# - Search pages may be stale by up to their TTL. Stock counts and
#   availability shown in a cached page can lag behind checkout.
#   Reservation and decrement always go to the database.
# - Search keys are NOT invalidated on individual product changes. Knowing
#   which cached queries a write could affect would require tracking every
#   query against every product.
#
# ────────────────────────────────────────────────────────────────────────────

TTL_ENTITY = 120
TTL_SEARCH = 300
TTL_CATEGORY_TREE = 600

CATEGORY_TREE_KEY = "categories:tree"
SEARCH_KEY_PATTERN = "search:*"


def product_key(product_id: str) -> str:
    return f"product:{product_id}"


def search_key(spec: FilterSpec) -> str:
    return spec.cache_key()
