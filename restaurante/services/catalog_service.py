"""
Catalog Service

Categories and dishes. Reads are public; dish create/update/delete are
used by the admin console.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from restaurante.core.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from restaurante.models import Category, Dish
from restaurante.schemas import DishCreate, DishUpdate
from restaurante.services.media import decode_base64_payload

logger = logging.getLogger(__name__)


class CatalogService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_categories(self) -> list[Category]:
        result = await self.db.execute(select(Category).order_by(Category.id))
        return list(result.scalars().all())

    async def list_dishes(self) -> list[Dish]:
        result = await self.db.execute(
            select(Dish).options(selectinload(Dish.category)).order_by(Dish.id)
        )
        return list(result.scalars().all())

    async def list_dishes_by_category(self, category_id: int) -> list[Dish]:
        if await self.db.get(Category, category_id) is None:
            raise NotFoundError("Categoría no encontrada")

        result = await self.db.execute(
            select(Dish)
            .options(selectinload(Dish.category))
            .where(Dish.category_id == category_id)
            .order_by(Dish.id)
        )
        return list(result.scalars().all())

    async def get_dish(self, dish_id: int) -> Dish:
        result = await self.db.execute(
            select(Dish).options(selectinload(Dish.category)).where(Dish.id == dish_id)
        )
        dish = result.scalar_one_or_none()
        if dish is None:
            raise NotFoundError("Platillo no encontrado")
        return dish

    # -------------------------------------------------------------------------
    # Admin
    # -------------------------------------------------------------------------

    async def _require_category(self, category_id: int) -> None:
        if await self.db.get(Category, category_id) is None:
            raise ValidationError(f"La categoría {category_id} no existe")

    @staticmethod
    def _check_price(price: Decimal) -> None:
        if price <= 0:
            raise ValidationError("El precio debe ser mayor a 0")

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f"No se pudo {action} el platillo", detail=str(e.orig)) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Error trying to {action} dish")
            raise PersistenceError(detail=str(e)) from e

    async def create_dish(self, data: DishCreate) -> Dish:
        self._check_price(data.price)
        await self._require_category(data.category_id)

        image: Optional[bytes] = None
        if data.image_base64:
            image, _ = decode_base64_payload(data.image_base64, field="imagen")

        dish = Dish(
            name=data.name,
            description=data.description,
            price=data.price,
            category_id=data.category_id,
            image=image,
        )
        self.db.add(dish)
        await self._commit("crear")
        logger.info(f"Dish #{dish.id} created: {dish.name}")
        return await self.get_dish(dish.id)

    async def update_dish(self, dish_id: int, data: DishUpdate) -> Dish:
        dish = await self.get_dish(dish_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("price") is not None:
            self._check_price(changes["price"])
        if changes.get("category_id") is not None:
            await self._require_category(changes["category_id"])

        for field in ("name", "description", "price", "category_id"):
            if changes.get(field) is not None:
                setattr(dish, field, changes[field])
        if changes.get("image_base64"):
            dish.image, _ = decode_base64_payload(changes["image_base64"], field="imagen")

        await self._commit("actualizar")
        # Reload so the category relationship reflects a new category_id
        await self.db.refresh(dish, attribute_names=["category"])
        logger.info(f"Dish #{dish.id} updated")
        return dish

    async def delete_dish(self, dish_id: int) -> None:
        dish = await self.db.get(Dish, dish_id)
        if dish is None:
            raise NotFoundError("Platillo no encontrado")
        await self.db.delete(dish)
        # Dishes referenced by past orders cannot be removed
        await self._commit("eliminar")
        logger.info(f"Dish #{dish_id} deleted")
