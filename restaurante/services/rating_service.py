"""
Rating Service

One 1-5 star rating per (user, dish). Submitting again updates the
existing rating in place. The (user_id, dish_id) unique constraint backs
the check-then-write sequence: when two concurrent first ratings race,
the loser gets DuplicateError and may resubmit as an update.

Stars are rounded half up before validation (4.5 -> 5, 4.4 -> 4).
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import NoReturn, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurante.core.config import get_settings
from restaurante.core.errors import (
    DuplicateError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from restaurante.models import Dish, Rating, User, utcnow
from restaurante.services.media import to_data_url

logger = logging.getLogger(__name__)

MIN_STARS = 1
MAX_STARS = 5
RANDOM_PICK_MESSAGE = "No hay suficientes calificaciones, mostrando platillos aleatorios"


def round_stars(value: Union[int, float, str, Decimal]) -> int:
    """
    Round a star value half up to an integer and check the 1-5 range.

    Raises:
        ValidationError: Not a number, or outside [1, 5] after rounding
    """
    if isinstance(value, bool):
        raise ValidationError("La calificación debe ser un número")
    try:
        stars = Decimal(str(value).strip()).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError("La calificación debe ser un número")
    if not stars.is_finite():
        raise ValidationError("La calificación debe ser un número")

    stars = int(stars)
    if stars < MIN_STARS or stars > MAX_STARS:
        raise ValidationError("La calificación debe ser un número entero entre 1 y 5")
    return stars


def format_average(value) -> str:
    """Mean rounded half up to one decimal, "0.0" when there are no ratings."""
    if value is None:
        return "0.0"
    return str(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass
class RatingView:
    """A rating joined with the rater's and the dish's names."""
    id: int
    user_id: int
    dish_id: int
    stars: int
    comment: Optional[str]
    rated_at: datetime
    user_name: str
    dish_name: Optional[str] = None


@dataclass
class RatingSummary:
    ratings: list[RatingView]
    average: str
    count: int


@dataclass
class TopDish:
    id: int
    name: str
    description: Optional[str]
    price: float
    average: float
    count: int
    image: Optional[str]
    message: Optional[str] = None

    @classmethod
    def from_dish(cls, dish: Dish, average: float = 0.0, count: int = 0, message: Optional[str] = None) -> "TopDish":
        return cls(
            id=dish.id,
            name=dish.name,
            description=dish.description,
            price=float(dish.price),
            average=average,
            count=count,
            image=to_data_url(dish.image, "image/jpeg"),
            message=message,
        )


class RatingService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _require_dish(self, dish_id: int) -> Dish:
        dish = await self.db.get(Dish, dish_id)
        if dish is None:
            raise NotFoundError("Platillo no encontrado")
        return dish

    async def submit_rating(
        self,
        dish_id: Optional[int],
        user_id: int,
        stars: Optional[Union[int, float, str]],
        comment: Optional[str] = None,
    ) -> tuple[RatingView, bool]:
        """
        Insert or update the user's rating for a dish.

        Returns:
            The stored rating and whether it was newly created

        Raises:
            ValidationError: Missing dish id / stars, or stars out of range
            NotFoundError: Dish does not exist
            DuplicateError: A concurrent request inserted the same rating first
        """
        if dish_id is None:
            raise ValidationError("Calificación y platillo ID son requeridos")
        if stars is None or str(stars).strip() == "":
            raise ValidationError("Calificación y platillo ID son requeridos")

        await self._require_dish(dish_id)
        value = round_stars(stars)
        comment = comment.strip() if comment and comment.strip() else None

        result = await self.db.execute(
            select(Rating).where(Rating.user_id == user_id, Rating.dish_id == dish_id)
        )
        existing = result.scalar_one_or_none()

        try:
            if existing is not None:
                existing.stars = value
                existing.comment = comment
                existing.rated_at = utcnow()
                created = False
            else:
                self.db.add(Rating(user_id=user_id, dish_id=dish_id, stars=value, comment=comment))
                created = True
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            await self._raise_integrity_error(e, user_id, dish_id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Error saving rating")
            raise PersistenceError("Error al guardar calificación", detail=str(e)) from e

        logger.info(
            f"Rating {'created' if created else 'updated'}: user #{user_id} dish #{dish_id} = {value}"
        )
        return await self._load_view(user_id, dish_id), created

    async def _raise_integrity_error(self, error: IntegrityError, user_id: int, dish_id: int) -> NoReturn:
        """Map a failed rating write to the constraint that rejected it."""
        existing = await self.db.scalar(
            select(Rating.id).where(Rating.user_id == user_id, Rating.dish_id == dish_id)
        )
        if existing is not None:
            logger.warning(f"Duplicate rating user #{user_id} dish #{dish_id}: lost insert race")
            raise DuplicateError(
                "No puedes calificar el mismo platillo más de una vez",
                detail=str(error.orig),
            ) from error
        if await self.db.get(User, user_id) is None:
            raise NotFoundError("Usuario no encontrado") from error
        if await self.db.get(Dish, dish_id) is None:
            raise NotFoundError("Platillo no encontrado") from error
        logger.error(f"Rating write rejected for user #{user_id} dish #{dish_id}: {error.orig}")
        raise PersistenceError("Error al guardar calificación", detail=str(error.orig)) from error

    async def _load_view(self, user_id: int, dish_id: int) -> RatingView:
        result = await self.db.execute(
            select(Rating, User.name, Dish.name)
            .join(User, Rating.user_id == User.id)
            .join(Dish, Rating.dish_id == Dish.id)
            .where(Rating.user_id == user_id, Rating.dish_id == dish_id)
        )
        rating, user_name, dish_name = result.one()
        return RatingView(
            id=rating.id,
            user_id=rating.user_id,
            dish_id=rating.dish_id,
            stars=rating.stars,
            comment=rating.comment,
            rated_at=rating.rated_at,
            user_name=user_name,
            dish_name=dish_name,
        )

    async def list_ratings(self, dish_id: int) -> RatingSummary:
        """Ratings of a dish, newest first, with mean and count."""
        await self._require_dish(dish_id)

        result = await self.db.execute(
            select(Rating, User.name)
            .join(User, Rating.user_id == User.id)
            .where(Rating.dish_id == dish_id)
            .order_by(Rating.rated_at.desc(), Rating.id.desc())
        )
        ratings = [
            RatingView(
                id=rating.id,
                user_id=rating.user_id,
                dish_id=rating.dish_id,
                stars=rating.stars,
                comment=rating.comment,
                rated_at=rating.rated_at,
                user_name=user_name,
            )
            for rating, user_name in result.all()
        ]

        stats = await self.db.execute(
            select(func.avg(Rating.stars), func.count(Rating.id)).where(Rating.dish_id == dish_id)
        )
        average, count = stats.one()
        return RatingSummary(ratings=ratings, average=format_average(average), count=count or 0)

    async def delete_rating(self, rating_id: int, user_id: int) -> None:
        """
        Delete a rating owned by the requesting user.

        Ownership is checked first, so a rating that belongs to someone
        else and one that does not exist both yield ForbiddenError.
        """
        owned = await self.db.execute(
            select(Rating.id).where(Rating.id == rating_id, Rating.user_id == user_id)
        )
        if owned.scalar_one_or_none() is None:
            raise ForbiddenError()

        try:
            result = await self.db.execute(delete(Rating).where(Rating.id == rating_id))
            if result.rowcount == 0:
                await self.db.rollback()
                raise NotFoundError("Calificación no encontrada")
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Error al borrar calificación", detail=str(e)) from e

        logger.info(f"Rating #{rating_id} deleted by user #{user_id}")

    async def top_rated(self, limit: Optional[int] = None) -> list[TopDish]:
        """
        Best rated dishes by (mean desc, count desc).

        With no ratings at all, `limit` random dishes are returned. When
        fewer than `limit` dishes are rated, random unrated dishes fill the
        remaining slots. Padding dishes carry zero aggregates.
        """
        limit = limit or get_settings().top_rated_default_limit

        total_ratings = await self.db.scalar(select(func.count(Rating.id)))
        if not total_ratings:
            dishes = await self._random_dishes(limit, exclude=set())
            return [TopDish.from_dish(dish, message=RANDOM_PICK_MESSAGE) for dish in dishes]

        average = func.avg(Rating.stars).label("average")
        count = func.count(Rating.id).label("count")
        result = await self.db.execute(
            select(Dish, average, count)
            .join(Rating, Rating.dish_id == Dish.id)
            .group_by(Dish.id)
            .order_by(average.desc(), count.desc(), Dish.id)
            .limit(limit)
        )
        top = [
            TopDish.from_dish(dish, average=round(float(avg), 2), count=cnt)
            for dish, avg, cnt in result.all()
        ]

        if len(top) < limit:
            padding = await self._random_dishes(limit - len(top), exclude={d.id for d in top})
            top.extend(TopDish.from_dish(dish) for dish in padding)
        return top

    async def _random_dishes(self, count: int, exclude: set[int]) -> list[Dish]:
        query = select(Dish).order_by(func.random()).limit(count)
        if exclude:
            query = query.where(Dish.id.not_in(list(exclude)))
        result = await self.db.execute(query)
        return list(result.scalars().all())
