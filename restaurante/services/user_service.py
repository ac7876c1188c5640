"""
User administration used by the admin console.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurante.core.config import get_settings
from restaurante.core.errors import ConflictError, NotFoundError, PersistenceError
from restaurante.core.security import hash_password
from restaurante.models import User
from restaurante.schemas import UserCreate, UserUpdate
from restaurante.services.auth_service import canonical_phone

logger = logging.getLogger(__name__)


class UserService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.country_code = get_settings().phone_country_code

    async def list_users(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        return user

    async def _phone_taken(self, phone: str, exclude_id: Optional[int] = None) -> bool:
        query = select(User.id).where(User.phone == phone)
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        return (await self.db.execute(query)).first() is not None

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("Este número de teléfono ya está registrado", detail=str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Error saving user")
            raise PersistenceError(detail=str(e)) from e

    async def create_user(self, data: UserCreate) -> User:
        phone = canonical_phone(data.phone, self.country_code)
        if await self._phone_taken(phone):
            raise ConflictError("Este número de teléfono ya está registrado")

        user = User(
            name=data.name,
            phone=phone,
            password_hash=hash_password(data.password),
            role=data.role,
        )
        self.db.add(user)
        await self._commit()
        logger.info(f"User #{user.id} created by admin ({user.role.value})")
        return user

    async def update_user(self, user_id: int, data: UserUpdate) -> User:
        user = await self.get_user(user_id)

        if data.phone:
            phone = canonical_phone(data.phone, self.country_code)
            if await self._phone_taken(phone, exclude_id=user_id):
                raise ConflictError("Este número de teléfono ya está registrado")
            user.phone = phone
        if data.name:
            user.name = data.name
        if data.role is not None:
            user.role = data.role
        # A blank password keeps the current one
        if data.password and data.password.strip():
            user.password_hash = hash_password(data.password)

        await self._commit()
        logger.info(f"User #{user_id} updated")
        return user

    async def delete_user(self, user_id: int) -> None:
        """Delete a user; their ratings and orders cascade."""
        user = await self.get_user(user_id)
        await self.db.delete(user)
        await self._commit()
        logger.info(f"User #{user_id} deleted")
