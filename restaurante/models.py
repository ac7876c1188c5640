"""
SQLAlchemy Database Models

Tables:
- users: registered shoppers and admins, unique on canonical phone
- categories / dishes: the catalog
- orders / order_lines: submitted carts, lines cascade with their order
- ratings: one 1-5 star rating per (user, dish)
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from restaurante.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    CLIENT = "client"
    ADMIN = "admin"


class OrderStatus(str, enum.Enum):
    """
    Order status workflow.

    Older clients used `pagado` and `completado`; they are accepted at the
    API boundary and mapped through LEGACY_STATUS_ALIASES.
    """
    PENDING = "pendiente"
    IN_PROGRESS = "en_proceso"
    DONE = "realizado"
    CANCELLED = "cancelado"


LEGACY_STATUS_ALIASES = {
    "pagado": OrderStatus.IN_PROGRESS,
    "completado": OrderStatus.DONE,
}


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        default=UserRole.CLIENT,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    ratings = relationship("Rating", back_populates="user", passive_deletes=True)
    orders = relationship("Order", back_populates="user", passive_deletes=True)

    def __repr__(self):
        return f"<User #{self.id} - {self.name} - {self.role.value}>"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    image = Column(LargeBinary, nullable=True)

    dishes = relationship("Dish", back_populates="category", passive_deletes=True)

    def __repr__(self):
        return f"<Category #{self.id} - {self.name}>"


class Dish(Base):
    __tablename__ = "dishes"
    __table_args__ = (
        CheckConstraint("price > 0", name="ck_dishes_price_positive"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    image = Column(LargeBinary, nullable=True)
    category_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    category = relationship("Category", back_populates="dishes")
    ratings = relationship("Rating", back_populates="dish", passive_deletes=True)

    def __repr__(self):
        return f"<Dish #{self.id} - {self.name} - {self.price}>"


class Order(Base):
    """
    A submitted cart.

    Exactly one of user_id / client_ref identifies who placed it, and a
    receipt is always stored together with its MIME type.
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (client_ref IS NULL)",
            name="ck_orders_single_party",
        ),
        CheckConstraint(
            "(receipt IS NULL) = (receipt_mime IS NULL)",
            name="ck_orders_receipt_mime",
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    client_ref = Column(String(100), nullable=True, index=True)
    payment_method = Column(String(30), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)
    receipt = Column(LargeBinary, nullable=True)
    receipt_mime = Column(String(100), nullable=True)
    status = Column(
        Enum(OrderStatus, name="order_status", values_callable=_enum_values),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    user = relationship("User", back_populates="orders")
    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLine.id",
    )

    def __repr__(self):
        return f"<Order #{self.id} - {self.payment_method} - {self.status.value}>"


class OrderLine(Base):
    __tablename__ = "order_lines"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_lines_quantity"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dish_id = Column(Integer, ForeignKey("dishes.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    order = relationship("Order", back_populates="lines")
    dish = relationship("Dish")

    def __repr__(self):
        return f"<OrderLine order={self.order_id} dish={self.dish_id} x{self.quantity}>"


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "dish_id", name="uq_ratings_user_dish"),
        CheckConstraint("stars BETWEEN 1 AND 5", name="ck_ratings_stars_range"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dish_id = Column(
        Integer,
        ForeignKey("dishes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stars = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    rated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="ratings")
    dish = relationship("Dish", back_populates="ratings")

    def __repr__(self):
        return f"<Rating #{self.id} user={self.user_id} dish={self.dish_id} {self.stars}*>"
