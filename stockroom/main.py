"""
FastAPI Application Entry Point

Inventory consistency API for the restaurant POS. Thin HTTP wrappers over
the inventory services; order management, auth and the admin UI call these.

Endpoints:
    - POST /api/inventory/validate: Advisory ingredient check for an order
    - POST /api/inventory/overrides: Log an order placed despite shortages
    - POST /api/inventory/orders/{order_id}/deduct: Consume stock for an order
    - POST /api/inventory/orders/{order_id}/restore: Return stock of a cancelled order
    - POST /api/inventory/ingredients/{id}/restock: Manual restock
    - POST /api/inventory/ingredients/{id}/adjust: Stock count adjustment
    - GET /api/inventory/low-stock: Ingredients at or below minimum
    - GET /api/inventory/ingredients/{id}/history: Stock history
    - GET /api/inventory/ingredients/{id}/reconcile: Replay check of the history
    - GET /api/products/{id}/ingredient-status: Product availability detail
    - POST /api/admin/availability/sync: Availability sync report
    - GET /health: System health check
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

import redis
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.core.config import get_settings, setup_logging
from stockroom.database import engine, get_db, init_db
from stockroom.exceptions import IngredientNotFoundError, InvalidQuantityError
from stockroom.schemas import (
    AdjustmentRequest,
    ErrorResponse,
    HealthResponse,
    HistoryEntryResponse,
    IngredientResponse,
    LowStockListResponse,
    OverrideRequest,
    OverrideResponse,
    ProductStatusResponse,
    ReconciliationResponse,
    RestockRequest,
    StockMutationResponse,
    StockValidationRequest,
    StockValidationResponse,
    SyncReportResponse,
)
from stockroom.services import (
    AvailabilitySynchronizer,
    AvailabilityValidator,
    StockLedger,
    StockMutationEngine,
    get_availability_synchronizer,
    get_availability_validator,
    get_inventory_engine,
    get_stock_ledger,
)

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Negative stock allowed: {settings.allow_negative_stock}")
    logger.info(f"   Alert roles: {settings.inventory_alert_roles_list}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    yield  # Application runs

    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Ingredient inventory consistency engine: order feasibility checks, "
        "transactional stock deduction, low-stock alerts and product availability sync."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HEALTH
# =============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify database and broker connectivity."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if db_status == redis_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER VALIDATION
# =============================================================================

@app.post(
    "/api/inventory/validate",
    response_model=StockValidationResponse,
    tags=["Validation"],
    summary="Advisory Ingredient Check",
)
async def validate_order_ingredients(
    request: StockValidationRequest,
    validator: AvailabilityValidator = Depends(get_availability_validator),
) -> StockValidationResponse:
    """
    Check whether current stock covers a candidate order.

    Never blocks: the UI shows shortages as a warning and staff may place
    the order anyway.
    """
    result = await validator.validate(request.as_pairs())
    return StockValidationResponse.model_validate(result)


@app.post(
    "/api/inventory/overrides",
    response_model=OverrideResponse,
    tags=["Validation"],
    summary="Log Ingredient Override",
)
async def log_ingredient_override(
    request: OverrideRequest,
    validator: AvailabilityValidator = Depends(get_availability_validator),
) -> OverrideResponse:
    logged = await validator.log_override(request.order_id, request.missing, request.user_id)
    return OverrideResponse(success=logged > 0, logged=logged)


# =============================================================================
# ORDER LIFECYCLE
# =============================================================================

@app.post(
    "/api/inventory/orders/{order_id}/deduct",
    response_model=StockMutationResponse,
    tags=["Order Lifecycle"],
    summary="Deduct Ingredients For Order",
)
async def deduct_for_order(
    order_id: int,
    inventory: StockMutationEngine = Depends(get_inventory_engine),
) -> StockMutationResponse:
    """
    Consume recipe ingredients for a created order.

    Always answers 200: a failed deduction is rolled back and reported in
    the body, it never fails the order.
    """
    result = await inventory.deduct_for_order(order_id)
    return StockMutationResponse.model_validate(result)


@app.post(
    "/api/inventory/orders/{order_id}/restore",
    response_model=StockMutationResponse,
    tags=["Order Lifecycle"],
    summary="Restore Ingredients For Cancelled Order",
)
async def restore_for_order(
    order_id: int,
    inventory: StockMutationEngine = Depends(get_inventory_engine),
) -> StockMutationResponse:
    result = await inventory.restore_for_order(order_id)
    return StockMutationResponse.model_validate(result)


# =============================================================================
# STOCK ADMINISTRATION
# =============================================================================

@app.post(
    "/api/inventory/ingredients/{ingredient_id}/restock",
    response_model=StockMutationResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Stock"],
    summary="Restock Ingredient",
)
async def restock_ingredient(
    ingredient_id: int,
    request: RestockRequest,
    inventory: StockMutationEngine = Depends(get_inventory_engine),
) -> StockMutationResponse:
    try:
        result = await inventory.restock(
            ingredient_id,
            request.quantity,
            performed_by=request.performed_by,
            notes=request.notes,
        )
    except IngredientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidQuantityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StockMutationResponse.model_validate(result)


@app.post(
    "/api/inventory/ingredients/{ingredient_id}/adjust",
    response_model=StockMutationResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Stock"],
    summary="Adjust Ingredient To Counted Stock",
)
async def adjust_ingredient(
    ingredient_id: int,
    request: AdjustmentRequest,
    inventory: StockMutationEngine = Depends(get_inventory_engine),
) -> StockMutationResponse:
    try:
        result = await inventory.adjust(
            ingredient_id,
            request.counted_stock,
            performed_by=request.performed_by,
            notes=request.notes,
        )
    except IngredientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidQuantityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StockMutationResponse.model_validate(result)


@app.get(
    "/api/inventory/low-stock",
    response_model=LowStockListResponse,
    tags=["Stock"],
    summary="List Low-Stock Ingredients",
)
async def list_low_stock(
    db: AsyncSession = Depends(get_db),
    ledger: StockLedger = Depends(get_stock_ledger),
) -> LowStockListResponse:
    ingredients = await ledger.list_low_stock(db)
    return LowStockListResponse(
        total=len(ingredients),
        ingredients=[IngredientResponse.model_validate(i) for i in ingredients],
    )


@app.get(
    "/api/inventory/ingredients/{ingredient_id}/history",
    response_model=list[HistoryEntryResponse],
    tags=["Stock"],
)
async def ingredient_history(
    ingredient_id: int,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    ledger: StockLedger = Depends(get_stock_ledger),
) -> list[HistoryEntryResponse]:
    if await ledger.get_ingredient(db, ingredient_id) is None:
        raise HTTPException(status_code=404, detail=f"Ingredient #{ingredient_id} not found")
    records = await ledger.history(db, ingredient_id, limit=limit)
    return [HistoryEntryResponse.model_validate(r) for r in records]


@app.get(
    "/api/inventory/ingredients/{ingredient_id}/reconcile",
    response_model=ReconciliationResponse,
    tags=["Stock"],
    summary="Replay History Against Live Stock",
)
async def reconcile_ingredient(
    ingredient_id: int,
    db: AsyncSession = Depends(get_db),
    ledger: StockLedger = Depends(get_stock_ledger),
) -> ReconciliationResponse:
    report = await ledger.reconcile(db, ingredient_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Ingredient #{ingredient_id} not found")
    return ReconciliationResponse.model_validate(report)


# =============================================================================
# PRODUCT AVAILABILITY
# =============================================================================

@app.get(
    "/api/products/{product_id}/ingredient-status",
    response_model=ProductStatusResponse,
    tags=["Availability"],
)
async def product_ingredient_status(
    product_id: int,
    synchronizer: AvailabilitySynchronizer = Depends(get_availability_synchronizer),
) -> ProductStatusResponse:
    status = await synchronizer.product_status(product_id)
    return ProductStatusResponse.model_validate(status)


@app.post(
    "/api/admin/availability/sync",
    response_model=SyncReportResponse,
    tags=["Availability"],
    summary="Sync Product Availability",
)
async def sync_product_availability(
    since_minutes: Optional[int] = Query(None, ge=1, le=7 * 24 * 60),
    full: bool = Query(False),
    synchronizer: AvailabilitySynchronizer = Depends(get_availability_synchronizer),
) -> SyncReportResponse:
    """
    Recompute product availability flags.

    ``full=true`` re-checks every product with a recipe; otherwise only
    products whose ingredients changed in the last ``since_minutes``.
    """
    if full:
        report = await synchronizer.sync_all()
    else:
        report = await synchronizer.sync_batch(
            since_minutes or settings.availability_sync_lookback_minutes
        )
    return SyncReportResponse.model_validate(report)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = {
        "success": False,
        "error": "Internal Server Error",
        "detail": str(exc) if settings.debug or settings.is_development else "An unexpected error occurred",
    }
    return JSONResponse(status_code=500, content=content)
