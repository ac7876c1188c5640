"""
FastAPI Application Entry Point

Restaurant ordering API - Hybrid Architecture
Mock SMS / in-memory verification in development, Twilio / Redis in production.

Endpoints:
    - POST /registro, /verificar-codigo, /login; GET /verify-token
    - GET /categorias, /platillos, /platillos/mejores
    - GET/POST /platillos/{id}/calificaciones; DELETE /calificaciones/{id}
    - POST /api/pedidos (checkout), admin order management under /api/pedidos
    - Admin catalog (/api/platillos) and user (/api/usuarios) management
    - GET /health: System health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from restaurante.core.config import get_settings, setup_logging
from restaurante.core.errors import RestauranteError
from restaurante.database import engine, get_db, init_db
from restaurante.dependencies import (
    get_auth_service,
    get_catalog_service,
    get_current_user,
    get_optional_user,
    get_order_service,
    get_rating_service,
    get_user_service,
    require_admin,
)
from restaurante.models import User
from restaurante.schemas import (
    AuthResponse,
    CategoryOut,
    DishCreate,
    DishOut,
    DishUpdate,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    OrderCreate,
    OrderCreateResponse,
    OrderOut,
    OrderStatusResponse,
    OrderStatusUpdate,
    RatingCreate,
    RatingListResponse,
    RatingOut,
    RatingSubmitResponse,
    RegisterRequest,
    RegistrationStartResponse,
    SuccessResponse,
    TokenCheckResponse,
    TopDishOut,
    UserCreate,
    UserPublic,
    UserUpdate,
    VerifyCodeRequest,
    user_public,
)
from restaurante.services.auth_service import AuthService
from restaurante.services.catalog_service import CatalogService
from restaurante.services.notifications import BaseNotificationService, get_notification_service
from restaurante.services.order_service import OrderService
from restaurante.services.rating_service import RatingService
from restaurante.services.user_service import UserService
from restaurante.services.verification import BaseVerificationStore, get_verification_store
from restaurante.tasks import export_order_to_excel, order_export_payload

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    logger.info(f"SMS Service: {get_notification_service().provider_name}")
    logger.info(f"Verification Store: {get_verification_store().backend_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Restaurant ordering API: phone-verified accounts, catalog, "
        "checkout with payment receipts, ratings and back-office management."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def error_response(status_code: int, message: str, detail: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=message,
            detail=detail if settings.expose_error_details else None,
        ).model_dump(),
    )


@app.exception_handler(RestauranteError)
async def restaurante_error_handler(request: Request, exc: RestauranteError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.detail})")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return error_response(status.HTTP_400_BAD_REQUEST, "Datos inválidos", errors)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Error interno del servidor",
        str(exc),
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Bienvenido a {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    store: BaseVerificationStore = Depends(get_verification_store),
    notifier: BaseNotificationService = Depends(get_notification_service),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    store_status = "healthy" if await store.health_check() else "unhealthy"

    sms_status = "healthy" if await notifier.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, store_status, sms_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        verification_store=store_status,
        notification_service=sms_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post(
    "/registro",
    response_model=RegistrationStartResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Start Registration",
)
async def register(
    data: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> RegistrationStartResponse:
    """Validate the form and send a 6-digit code by SMS."""
    phone = await auth.start_registration(data.name, data.phone, data.password, data.password_confirm)
    return RegistrationStartResponse(message="Código de verificación enviado", phone=phone)


@app.post(
    "/verificar-codigo",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Confirm Registration Code",
)
async def verify_code(
    data: VerifyCodeRequest,
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    result = await auth.confirm_registration(data.phone, data.code)
    return AuthResponse(
        message="Usuario registrado exitosamente",
        token=result.token,
        user=user_public(result.user),
    )


@app.post(
    "/login",
    response_model=AuthResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
)
async def login(
    data: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    result = await auth.login(data.phone, data.password)
    return AuthResponse(
        message="Inicio de sesión exitoso",
        token=result.token,
        user=user_public(result.user),
    )


@app.get(
    "/verify-token",
    response_model=TokenCheckResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
)
async def verify_token(user: User = Depends(get_current_user)) -> TokenCheckResponse:
    return TokenCheckResponse(message="Token válido", user=user_public(user))


# =============================================================================
# CATALOG ENDPOINTS
# =============================================================================

@app.get("/categorias", response_model=List[CategoryOut], tags=["Catalog"])
async def list_categories(catalog: CatalogService = Depends(get_catalog_service)) -> List[CategoryOut]:
    return [CategoryOut.from_model(c) for c in await catalog.list_categories()]


@app.get(
    "/categorias/{category_id}/platillos",
    response_model=List[DishOut],
    responses=ERROR_RESPONSES,
    tags=["Catalog"],
)
async def list_category_dishes(
    category_id: int,
    catalog: CatalogService = Depends(get_catalog_service),
) -> List[DishOut]:
    return [DishOut.from_model(d) for d in await catalog.list_dishes_by_category(category_id)]


@app.get("/platillos", response_model=List[DishOut], tags=["Catalog"])
async def list_dishes(catalog: CatalogService = Depends(get_catalog_service)) -> List[DishOut]:
    return [DishOut.from_model(d) for d in await catalog.list_dishes()]


# Declared before /platillos/{dish_id} so "mejores" is not parsed as an id
@app.get("/platillos/mejores", response_model=List[TopDishOut], tags=["Ratings"])
@app.get("/api/platillos/mejores-calificados", response_model=List[TopDishOut], tags=["Ratings"])
async def top_rated_dishes(
    limit: Optional[int] = Query(None, ge=1, le=50),
    ratings: RatingService = Depends(get_rating_service),
) -> List[TopDishOut]:
    """Best rated dishes, padded with random picks when few are rated."""
    return [TopDishOut(**asdict(d)) for d in await ratings.top_rated(limit)]


@app.get(
    "/platillos/{dish_id}",
    response_model=DishOut,
    responses=ERROR_RESPONSES,
    tags=["Catalog"],
)
async def get_dish(
    dish_id: int,
    catalog: CatalogService = Depends(get_catalog_service),
) -> DishOut:
    return DishOut.from_model(await catalog.get_dish(dish_id))


@app.post(
    "/api/platillos",
    response_model=DishOut,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def create_dish(
    data: DishCreate,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> DishOut:
    return DishOut.from_model(await catalog.create_dish(data))


@app.put(
    "/api/platillos/{dish_id}",
    response_model=DishOut,
    responses=ERROR_RESPONSES,
    tags=["Admin"],
)
async def update_dish(
    dish_id: int,
    data: DishUpdate,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> DishOut:
    return DishOut.from_model(await catalog.update_dish(dish_id, data))


@app.delete(
    "/api/platillos/{dish_id}",
    response_model=SuccessResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def delete_dish(
    dish_id: int,
    admin: User = Depends(require_admin),
    catalog: CatalogService = Depends(get_catalog_service),
) -> SuccessResponse:
    await catalog.delete_dish(dish_id)
    return SuccessResponse(message="Platillo eliminado")


# =============================================================================
# RATING ENDPOINTS
# =============================================================================

@app.get(
    "/platillos/{dish_id}/calificaciones",
    response_model=RatingListResponse,
    responses=ERROR_RESPONSES,
    tags=["Ratings"],
)
async def list_ratings(
    dish_id: int,
    ratings: RatingService = Depends(get_rating_service),
) -> RatingListResponse:
    summary = await ratings.list_ratings(dish_id)
    return RatingListResponse(
        ratings=[RatingOut(**asdict(r)) for r in summary.ratings],
        average=summary.average,
        count=summary.count,
    )


@app.post(
    "/platillos/{dish_id}/calificaciones",
    response_model=RatingSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Ratings"],
    summary="Rate a Dish (create or update)",
)
async def rate_dish(
    dish_id: int,
    data: RatingCreate,
    response: Response,
    user: User = Depends(get_current_user),
    ratings: RatingService = Depends(get_rating_service),
) -> RatingSubmitResponse:
    """201 for a first rating, 200 when the user's rating is updated."""
    view, created = await ratings.submit_rating(dish_id, user.id, data.stars, data.comment)
    if not created:
        response.status_code = status.HTTP_200_OK
    return RatingSubmitResponse(
        message="Calificación guardada" if created else "Calificación actualizada",
        data=RatingOut(**asdict(view)),
    )


@app.delete(
    "/calificaciones/{rating_id}",
    response_model=SuccessResponse,
    responses=ERROR_RESPONSES,
    tags=["Ratings"],
)
async def delete_rating(
    rating_id: int,
    user: User = Depends(get_current_user),
    ratings: RatingService = Depends(get_rating_service),
) -> SuccessResponse:
    await ratings.delete_rating(rating_id, user.id)
    return SuccessResponse(message="Calificación eliminada")


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

def queue_order_export(payload: dict[str, Any]) -> None:
    """Hand the order to the Celery export worker; the order is already saved."""
    try:
        export_order_to_excel.delay(payload)
    except Exception as e:
        logger.warning(f"Could not queue Excel export for order #{payload['order_id']}: {e}")


@app.post(
    "/api/pedidos",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 500: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Submit Order",
)
async def create_order(
    data: OrderCreate,
    user: Optional[User] = Depends(get_optional_user),
    orders: OrderService = Depends(get_order_service),
) -> OrderCreateResponse:
    """
    Submit a cart. Signed-in shoppers send their bearer token; anonymous
    shoppers send a client_ref instead.
    """
    result = await orders.submit_order(
        cart=data.cart,
        total=data.total,
        payment_method=data.payment_method,
        receipt_base64=data.receipt_base64,
        receipt_mime=data.receipt_mime,
        user_id=user.id if user else None,
        client_ref=data.client_ref,
    )

    queue_order_export(order_export_payload(result.order, result.items))

    return OrderCreateResponse(
        message="Pedido creado exitosamente",
        order_id=result.order.id,
        user=user_public(result.user) if result.user else None,
        client_ref=result.client_ref,
    )


@app.get("/api/pedidos", response_model=List[OrderOut], responses=ERROR_RESPONSES, tags=["Orders"])
async def list_orders(
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> List[OrderOut]:
    """All orders, newest first."""
    return [OrderOut.from_model(o) for o in await orders.list_orders()]


@app.get("/api/pedidos/{order_id}", response_model=OrderOut, responses=ERROR_RESPONSES, tags=["Orders"])
async def get_order(
    order_id: int,
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> OrderOut:
    return OrderOut.from_model(await orders.get_order(order_id))


@app.get(
    "/api/pedidos/{order_id}/comprobante",
    response_class=Response,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Download Payment Receipt",
)
async def get_receipt(
    order_id: int,
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> Response:
    """Raw receipt bytes served with their stored MIME type."""
    receipt = await orders.get_receipt(order_id)
    return Response(content=receipt.content, media_type=receipt.mime)


@app.api_route(
    "/api/pedidos/{order_id}/estado",
    methods=["PUT", "PATCH"],
    response_model=OrderStatusResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> OrderStatusResponse:
    order_id, new_status = await orders.update_status(order_id, data.status)
    return OrderStatusResponse(id=order_id, status=new_status.value)


@app.delete("/api/pedidos/{order_id}", response_model=SuccessResponse, responses=ERROR_RESPONSES, tags=["Orders"])
async def delete_order(
    order_id: int,
    admin: User = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
) -> SuccessResponse:
    await orders.delete_order(order_id)
    return SuccessResponse(message="Pedido eliminado")


# =============================================================================
# USER ADMIN ENDPOINTS
# =============================================================================

@app.get("/api/usuarios", response_model=List[UserPublic], responses=ERROR_RESPONSES, tags=["Admin"])
async def list_users(
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> List[UserPublic]:
    return [user_public(u) for u in await users.list_users()]


@app.get("/api/usuarios/{user_id}", response_model=UserPublic, responses=ERROR_RESPONSES, tags=["Admin"])
async def get_user(
    user_id: int,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> UserPublic:
    return user_public(await users.get_user(user_id))


@app.post(
    "/api/usuarios",
    response_model=UserPublic,
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def create_user(
    data: UserCreate,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> UserPublic:
    return user_public(await users.create_user(data))


@app.put(
    "/api/usuarios/{user_id}",
    response_model=UserPublic,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Admin"],
)
async def update_user(
    user_id: int,
    data: UserUpdate,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> UserPublic:
    return user_public(await users.update_user(user_id, data))


@app.delete("/api/usuarios/{user_id}", response_model=SuccessResponse, responses=ERROR_RESPONSES, tags=["Admin"])
async def delete_user(
    user_id: int,
    admin: User = Depends(require_admin),
    users: UserService = Depends(get_user_service),
) -> SuccessResponse:
    await users.delete_user(user_id)
    return SuccessResponse(message="Usuario eliminado")


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "restaurante.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
