"""
Password hashing and bearer token signing.

Passwords are hashed with passlib (argon2). Tokens are HS256 JWTs
signed with python-jose; claims carry the user id in `sub`, the
canonical phone and the role.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import jwt, ExpiredSignatureError, JWTError
from passlib.context import CryptContext

from restaurante.core.config import get_settings
from restaurante.core.errors import InvalidTokenError, ExpiredTokenError

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # Unrecognized or malformed hash in the users table
        return False


def create_access_token(
    user_id: int,
    phone: str,
    role: str,
    expires_minutes: int,
    extra: Optional[dict[str, Any]] = None,
) -> str:
    """Sign a bearer token for a user."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "phone": phone,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify signature and expiry of a bearer token.

    Raises:
        ExpiredTokenError: The token was valid but its lifetime elapsed
        InvalidTokenError: Bad signature, malformed token or missing subject
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as e:
        raise ExpiredTokenError(detail=str(e)) from e
    except JWTError as e:
        raise InvalidTokenError(detail=str(e)) from e

    sub = claims.get("sub")
    if sub is None or not str(sub).isdigit():
        raise InvalidTokenError(detail="Token without a valid subject")
    return claims
