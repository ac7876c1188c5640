"""
FastAPI dependencies: service wiring and bearer-token guards.
"""

from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from restaurante.core.errors import ForbiddenError, MissingTokenError
from restaurante.database import get_db
from restaurante.models import User, UserRole, utcnow
from restaurante.services.auth_service import AuthService
from restaurante.services.catalog_service import CatalogService
from restaurante.services.notifications import BaseNotificationService, get_notification_service
from restaurante.services.order_service import OrderService
from restaurante.services.rating_service import RatingService
from restaurante.services.user_service import UserService
from restaurante.services.verification import BaseVerificationStore, get_verification_store


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    notifier: BaseNotificationService = Depends(get_notification_service),
    store: BaseVerificationStore = Depends(get_verification_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AuthService:
    return AuthService(db, notifier, store, clock=clock)


def get_catalog_service(db: AsyncSession = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_rating_service(db: AsyncSession = Depends(get_db)) -> RatingService:
    return RatingService(db)


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an "Authorization: Bearer <token>" header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    authorization: Optional[str] = Header(None),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    token = _bearer_token(authorization)
    if token is None:
        raise MissingTokenError()
    return await auth.verify_token(token)


async def get_optional_user(
    authorization: Optional[str] = Header(None),
    auth: AuthService = Depends(get_auth_service),
) -> Optional[User]:
    """The caller when a bearer token is sent; an invalid token still fails."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    return await auth.verify_token(token)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise ForbiddenError("Se requieren permisos de administrador")
    return user
