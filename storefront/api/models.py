"""
Pydantic models for storefront API requests and responses.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class CamelModel(BaseModel):
    """Accepts both camelCase (wire) and snake_case (Python) field names."""
    model_config = ConfigDict(populate_by_name=True)


class StockLine(CamelModel):
    """One (product, size, quantity) line for inventory endpoints."""
    product_id: str = Field(alias="productId", description="Product ID")
    size: str = Field(description="Size label: S, M, L, XL or XXL")
    quantity: int = Field(description="Number of units")


class ReserveRequest(CamelModel):
    """Request model for multi-item reservation."""
    items: List[StockLine] = Field(description="Lines to reserve; all or nothing")


class ReserveResponse(CamelModel):
    success: bool = True
    reservations: List[Dict[str, Any]] = Field(default_factory=list)


class ReleaseRequest(CamelModel):
    """Request model for releasing previously reserved lines."""
    items: List[StockLine] = Field(description="Lines to release")


class ReleaseResponse(CamelModel):
    success: bool
    released: int = Field(description="Number of lines released")


class StockMutationResponse(CamelModel):
    success: bool
    available_stock: int = Field(alias="availableStock", description="Bucket stock after the operation")


class CheckInventoryResponse(CamelModel):
    available: bool = Field(description="True when the bucket covers the requested quantity")
    available_stock: int = Field(alias="availableStock")


class PaginationModel(CamelModel):
    current_page: int = Field(alias="currentPage")
    total_pages: int = Field(alias="totalPages")
    total_products: int = Field(alias="totalProducts")
    has_more: bool = Field(alias="hasMore")


class SearchResponse(CamelModel):
    """Response model for product search. Products are ProductView dicts."""
    products: List[Dict[str, Any]]
    pagination: PaginationModel
    cached: bool = Field(alias="_cached")
    cache_age: Optional[float] = Field(default=None, alias="_cacheAge")
    query_time: Optional[float] = Field(default=None, alias="_queryTime")


class SuggestionsResponse(CamelModel):
    suggestions: List[str]


class PopularSearch(CamelModel):
    type: str = Field(description="'product' or 'category'")
    value: str
    count: Optional[int] = Field(default=None, description="Units sold, for products")


class PopularSearchesResponse(CamelModel):
    popular_searches: List[PopularSearch] = Field(alias="popularSearches")


class ErrorResponse(CamelModel):
    error: str
    details: Optional[Dict[str, List[str]]] = None


class HealthResponse(CamelModel):
    """Response model for health check."""
    status: str
    version: str
    database: bool
    cache: bool = Field(description="Cache backend reachable (informational only)")
