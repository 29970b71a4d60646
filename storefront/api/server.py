"""
FastAPI server for the storefront catalog core.

Thin HTTP surface over CatalogService and InventoryStore.

Usage:
    uvicorn storefront.api.server:app --reload --port 8000
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import storefront
from storefront.api.models import (
    CheckInventoryResponse,
    ErrorResponse,
    HealthResponse,
    PopularSearchesResponse,
    ReleaseRequest,
    ReleaseResponse,
    ReserveRequest,
    ReserveResponse,
    SearchResponse,
    StockLine,
    StockMutationResponse,
    SuggestionsResponse,
)
from storefront.core.services import Services, build_services
from storefront.errors import (
    InsufficientStockError,
    PersistenceError,
    ProductNotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.utils.logger import get_logger

logger = get_logger("api.server")

# Documented error bodies; the handlers below produce them
NOT_FOUND = {404: {"model": ErrorResponse}}
BAD_REQUEST = {400: {"model": ErrorResponse}}
STOCK_ERRORS = {**BAD_REQUEST, **NOT_FOUND}

# Query parameters that may repeat (?tags=a&tags=b) as well as be comma-joined
MULTI_VALUE_PARAMS = ("tags", "sizes")


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        services: pre-built Services (tests inject SQLite + fakeredis);
            built from configuration at startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services()
        # Create database tables if they don't exist
        # In production, use migrations instead
        app.state.services.create_tables()
        logger.info("Storefront API ready")
        yield

    app = FastAPI(
        title="Storefront Catalog API",
        description="Inventory-aware catalog search and stock operations",
        version=storefront.__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    # Enable CORS for development
    # In production, configure this more strictly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    register_routes(app)
    return app


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": exc.message, "details": exc.errors})

    @app.exception_handler(InsufficientStockError)
    async def insufficient_stock_handler(request: Request, exc: InsufficientStockError):
        return JSONResponse(
            status_code=400,
            content={
                "error": str(exc),
                "productId": exc.product_id,
                "size": exc.size,
                "availableStock": exc.available,
            },
        )

    @app.exception_handler(ProductNotFoundError)
    async def not_found_handler(request: Request, exc: ProductNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        return JSONResponse(status_code=400, content={"error": str(exc)})


def _search_params(request: Request) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for key in request.query_params.keys():
        if key in MULTI_VALUE_PARAMS:
            params[key] = ",".join(request.query_params.getlist(key))
        else:
            params[key] = request.query_params.get(key)
    return params


def register_routes(app: FastAPI) -> None:

    #
    # Health
    #

    @app.get("/health", response_model=HealthResponse)
    def health(services: Services = Depends(get_services)):
        """Health check. The cache flag is informational; the API works without it."""
        database_ok = True
        try:
            with services.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            database_ok = False
        return HealthResponse(
            status="ok" if database_ok else "degraded",
            version=storefront.__version__,
            database=database_ok,
            cache=services.cache.is_available(),
        )

    #
    # Catalog
    #

    @app.get("/api/products/search", response_model=SearchResponse, responses=BAD_REQUEST)
    def search_products(request: Request, services: Services = Depends(get_services)):
        """
        Filtered, paginated product search.

        Query parameters: search, category, subcategory, productType, minPrice,
        maxPrice, tags, sizes, availability, sortBy, sortOrder, page, limit,
        excludeFeatured.
        """
        spec = services.catalog.parse_filters(_search_params(request))
        return services.catalog.search(spec)

    @app.get("/api/products/suggestions", response_model=SuggestionsResponse)
    def product_suggestions(
        q: str = Query(default="", description="Partial search text"),
        services: Services = Depends(get_services),
    ):
        return {"suggestions": services.catalog.suggest(q)}

    @app.get("/api/products/popular", response_model=PopularSearchesResponse)
    def popular_searches(services: Services = Depends(get_services)):
        """Best sellers and top-level categories to prompt an empty search box."""
        return {"popularSearches": services.catalog.popular_searches()}

    @app.get("/api/products/{product_id}", responses=NOT_FOUND)
    def get_product(product_id: str, services: Services = Depends(get_services)):
        product = services.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    @app.get("/api/categories/tree")
    def category_tree(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
        return services.catalog.category_tree()

    #
    # Inventory
    #

    @app.post("/api/inventory/check", response_model=CheckInventoryResponse, responses=STOCK_ERRORS)
    def check_inventory(line: StockLine, services: Services = Depends(get_services)):
        return services.inventory.check_inventory(line.product_id, line.size, line.quantity)

    @app.post("/api/inventory/reserve", response_model=ReserveResponse, responses=STOCK_ERRORS)
    def reserve_inventory(body: ReserveRequest, services: Services = Depends(get_services)):
        """Reserve every line or none; partial reservations are rolled back."""
        reservations = services.inventory.reserve_items(body.items)
        return ReserveResponse(success=True, reservations=[r.to_dict() for r in reservations])

    @app.post("/api/inventory/release", response_model=ReleaseResponse)
    def release_inventory(body: ReleaseRequest, services: Services = Depends(get_services)):
        released = services.inventory.release_items(body.items)
        return ReleaseResponse(success=released == len(body.items), released=released)

    @app.post("/api/inventory/confirm", response_model=StockMutationResponse, responses=STOCK_ERRORS)
    def confirm_reservation(line: StockLine, services: Services = Depends(get_services)):
        """Convert a reservation into a sale once payment has settled."""
        if not services.inventory.confirm_reservation(line.product_id, line.size, line.quantity):
            raise ValidationError(
                f"Nothing reserved to confirm for size {line.size}",
                {"quantity": ["exceeds the reserved quantity"]},
            )
        return StockMutationResponse(
            success=True,
            available_stock=services.inventory.available_stock(line.product_id, line.size),
        )

    @app.post("/api/inventory/decrease", response_model=StockMutationResponse, responses=STOCK_ERRORS)
    def decrease_stock(line: StockLine, services: Services = Depends(get_services)):
        """Consume stock at order confirmation."""
        if not services.inventory.decrease_stock(line.product_id, line.size, line.quantity):
            available = services.inventory.available_stock(line.product_id, line.size)
            raise InsufficientStockError(line.product_id, line.size.upper(), line.quantity, available)
        return StockMutationResponse(
            success=True,
            available_stock=services.inventory.available_stock(line.product_id, line.size),
        )

    @app.get("/api/inventory/low-stock")
    def low_stock(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
        return services.inventory.low_stock_report()

    @app.get("/api/inventory/report")
    def inventory_report(services: Services = Depends(get_services)) -> Dict[str, Any]:
        """Per-product stock, sales and stock value with catalog totals."""
        return services.inventory.inventory_report()


app = create_app()
