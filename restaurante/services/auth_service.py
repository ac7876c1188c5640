"""
Authentication Service

Phone-verified registration, login and bearer token verification.

Registration flow:
    1. start_registration() validates the form, sends a 6-digit code by SMS
       and only then stores the pending registration (keyed by phone).
    2. confirm_registration() checks the code and its age, creates the
       user and consumes the pending record.

Phone numbers are stored in canonical form: "+" + country code + 10 digits.
"""

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurante.core.config import get_settings, mask_phone
from restaurante.core.errors import (
    ConflictError,
    DeliveryError,
    ExpiredError,
    FormatError,
    InvalidCodeError,
    InvalidCredentialsError,
    MissingTokenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from restaurante.core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from restaurante.models import User, UserRole, utcnow
from restaurante.services.notifications import BaseNotificationService
from restaurante.services.verification import BaseVerificationStore, PendingVerification

logger = logging.getLogger(__name__)

CODE_MIN = 100000
CODE_MAX = 999999


# =============================================================================
# PHONE HELPERS
# =============================================================================

def format_phone(phone: str, country_code: Optional[str] = None) -> str:
    """
    Canonicalize a local phone number.

    Non-digits are stripped; exactly 10 digits must remain.

    Raises:
        FormatError: The number does not have 10 digits
    """
    country_code = country_code or get_settings().phone_country_code
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) != 10:
        raise FormatError()
    return f"+{country_code}{digits}"


def canonical_phone(phone: str, country_code: Optional[str] = None) -> str:
    """
    Accept either a local 10-digit number or an already canonical one.

    Used where clients echo back the phone returned by the API.
    """
    country_code = country_code or get_settings().phone_country_code
    stripped = (phone or "").strip()
    digits = re.sub(r"\D", "", stripped)
    if stripped.startswith("+") and digits.startswith(country_code) and len(digits) == len(country_code) + 10:
        return f"+{digits}"
    return format_phone(stripped, country_code)


def generate_code() -> str:
    """Uniformly random 6-digit numeric code."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def _is_blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


@dataclass
class AuthResult:
    """Token issued for a user plus the user row."""
    token: str
    user: User


# =============================================================================
# SERVICE
# =============================================================================

class AuthService:
    """
    Registration, login and token checks.

    Args:
        db: Session used for user lookups and inserts
        notifier: SMS provider for verification codes
        store: Pending verification store
        clock: Returns the current UTC time (overridable in tests)
    """

    def __init__(
        self,
        db: AsyncSession,
        notifier: BaseNotificationService,
        store: BaseVerificationStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.store = store
        self.clock = clock
        self.settings = get_settings()

    async def _find_user_by_phone(self, phone: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.phone == phone))
        return result.scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    async def start_registration(
        self,
        name: Optional[str],
        phone: Optional[str],
        password: Optional[str],
        password_confirm: Optional[str],
    ) -> str:
        """
        Validate the form and send a verification code.

        Returns:
            The canonical phone the code was sent to

        Raises:
            ValidationError: Missing field or passwords differ
            FormatError: Phone is not 10 digits
            ConflictError: Phone already registered
            DeliveryError: The SMS could not be sent (nothing is stored)
        """
        if any(_is_blank(v) for v in (name, phone, password, password_confirm)):
            raise ValidationError("Todos los campos son obligatorios")
        if password != password_confirm:
            raise ValidationError("Las contraseñas no coinciden")

        formatted = format_phone(phone, self.settings.phone_country_code)

        if await self._find_user_by_phone(formatted) is not None:
            raise ConflictError("Este número de teléfono ya está registrado")

        code = generate_code()
        result = await self.notifier.send_verification_code(formatted, code)
        if not result.success:
            logger.warning(
                f"Verification SMS to {mask_phone(formatted)} failed: {result.error_message}"
            )
            raise DeliveryError(detail=result.error_message)

        await self.store.put(
            PendingVerification(
                phone=formatted,
                code=code,
                name=name.strip(),
                password=password,
                created_at=self.clock(),
            )
        )
        logger.info(f"Verification code sent to {mask_phone(formatted)} via {self.notifier.provider_name}")
        return formatted

    async def confirm_registration(
        self,
        phone: Optional[str],
        code: Optional[Union[str, int]],
    ) -> AuthResult:
        """
        Confirm a pending registration and create the user.

        Raises:
            ValidationError: Phone or code missing
            NotFoundError: No pending registration for that phone
            InvalidCodeError: Code does not match (the record is kept)
            ExpiredError: Older than the TTL (the record is deleted)
            ConflictError: The phone was registered in the meantime
        """
        if _is_blank(phone) or _is_blank(code):
            raise ValidationError("Teléfono y código son requeridos")

        formatted = canonical_phone(phone, self.settings.phone_country_code)
        pending = await self.store.get(formatted)
        if pending is None:
            raise NotFoundError("No hay un registro pendiente para este teléfono")

        if not secrets.compare_digest(str(code).strip(), pending.code):
            raise InvalidCodeError()

        if pending.is_expired(self.clock(), self.settings.verification_ttl_seconds):
            await self.store.delete(formatted)
            logger.info(f"Expired verification for {mask_phone(formatted)} removed")
            raise ExpiredError()

        user = User(
            name=pending.name,
            phone=formatted,
            password_hash=hash_password(pending.password),
            role=UserRole.CLIENT,
        )
        try:
            self.db.add(user)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("Este número de teléfono ya está registrado", detail=str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Error creating user for {mask_phone(formatted)}")
            raise PersistenceError("Error al completar el registro", detail=str(e)) from e

        await self.store.delete(formatted)
        logger.info(f"User #{user.id} registered ({mask_phone(formatted)})")

        token = create_access_token(
            user.id,
            user.phone,
            user.role.value,
            expires_minutes=self.settings.registration_token_expire_minutes,
        )
        return AuthResult(token=token, user=user)

    # -------------------------------------------------------------------------
    # Login & tokens
    # -------------------------------------------------------------------------

    async def login(self, phone: Optional[str], password: Optional[str]) -> AuthResult:
        """
        Raises:
            ValidationError: Phone or password missing
            FormatError: Phone is not 10 digits
            NotFoundError: Phone not registered
            InvalidCredentialsError: Wrong password
        """
        if _is_blank(phone) and _is_blank(password):
            raise ValidationError("Teléfono y contraseña son requeridos")
        if _is_blank(phone):
            raise ValidationError("Teléfono es requerido")
        if _is_blank(password):
            raise ValidationError("Contraseña es requerida")

        formatted = format_phone(phone, self.settings.phone_country_code)
        user = await self._find_user_by_phone(formatted)
        if user is None:
            raise NotFoundError("El teléfono no está registrado")

        if not verify_password(password, user.password_hash):
            logger.info(f"Failed login for {mask_phone(formatted)}")
            raise InvalidCredentialsError()

        token = create_access_token(
            user.id,
            user.phone,
            user.role.value,
            expires_minutes=self.settings.login_token_expire_minutes,
        )
        logger.info(f"User #{user.id} logged in")
        return AuthResult(token=token, user=user)

    async def verify_token(self, token: Optional[str]) -> User:
        """
        Resolve a bearer token to the current stored user.

        Raises:
            MissingTokenError: No token supplied
            InvalidTokenError / ExpiredTokenError: Signature or expiry failure
            NotFoundError: The user no longer exists
        """
        if _is_blank(token):
            raise MissingTokenError()

        claims = decode_access_token(token)
        user = await self.db.get(User, int(claims["sub"]))
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        return user
