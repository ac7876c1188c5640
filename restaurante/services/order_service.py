"""
Order Service

Checkout, retrieval and back-office management of orders.

Submission writes the order header and its lines in a single transaction:
the header is flushed to obtain its id, the lines are added, and only then
is the transaction committed. Any store failure rolls everything back, so
a header without lines is never visible.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from restaurante.core.config import get_settings
from restaurante.core.errors import NotFoundError, PersistenceError, ValidationError
from restaurante.models import (
    Dish,
    LEGACY_STATUS_ALIASES,
    Order,
    OrderLine,
    OrderStatus,
    User,
)
from restaurante.schemas import CartItem
from restaurante.services.media import decode_base64_payload

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = Decimal("0.01")


@dataclass
class SubmittedOrder:
    """Outcome of a checkout."""
    order: Order
    items: list[tuple[str, int]]
    user: Optional[User] = None
    client_ref: Optional[str] = None


@dataclass
class Receipt:
    content: bytes
    mime: str


def parse_status(value: Optional[str]) -> OrderStatus:
    """
    Map a status string to the canonical enum, accepting legacy spellings.

    Raises:
        ValidationError: Not one of the allowed statuses
    """
    key = (value or "").strip().lower()
    if key in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[key]
    try:
        return OrderStatus(key)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Estado inválido. Opciones: {allowed}")


class OrderService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    # -------------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------------

    async def submit_order(
        self,
        cart: Sequence[CartItem],
        total: Optional[Union[Decimal, float, str]],
        payment_method: Optional[str],
        receipt_base64: Optional[str] = None,
        receipt_mime: Optional[str] = None,
        user_id: Optional[int] = None,
        client_ref: Optional[str] = None,
    ) -> SubmittedOrder:
        """
        Persist an order and its lines atomically.

        Raises:
            ValidationError: One of the checkout rules was violated
            PersistenceError: The store failed; nothing was written
        """
        if not cart:
            raise ValidationError("El carrito está vacío")
        if total is None or str(total).strip() == "":
            raise ValidationError("El total es requerido")
        if not payment_method or not payment_method.strip():
            raise ValidationError("El método de pago es requerido")

        payment_method = payment_method.strip().lower()
        if payment_method not in self.settings.payment_methods_list:
            raise ValidationError(
                f"Método de pago inválido. Opciones: {', '.join(self.settings.payment_methods_list)}"
            )

        client_ref = client_ref.strip() if client_ref and client_ref.strip() else None
        if (user_id is None) == (client_ref is None):
            raise ValidationError("El pedido debe pertenecer a un usuario o a un cliente anónimo")

        receipt: Optional[bytes] = None
        mime: Optional[str] = None
        if receipt_base64 and receipt_base64.strip():
            receipt, mime = decode_base64_payload(receipt_base64, receipt_mime)
            if not mime:
                raise ValidationError("El tipo MIME del comprobante es requerido")
        elif payment_method in self.settings.receipt_required_methods_list:
            raise ValidationError(f"El pago por {payment_method} requiere comprobante")

        try:
            declared_total = Decimal(str(total))
        except InvalidOperation:
            raise ValidationError("El total no es un número válido")
        if not declared_total.is_finite() or declared_total <= 0:
            raise ValidationError("El total debe ser mayor a 0")

        lines = await self._resolve_lines(cart)
        if self.settings.validate_order_total:
            expected = sum((dish.price * qty for dish, qty in lines), Decimal("0"))
            if abs(expected - declared_total) > TOTAL_TOLERANCE:
                raise ValidationError(
                    f"El total no coincide con el carrito (esperado {expected:.2f})"
                )

        order = Order(
            user_id=user_id,
            client_ref=client_ref,
            payment_method=payment_method,
            total=declared_total,
            receipt=receipt,
            receipt_mime=mime,
            status=OrderStatus.PENDING,
        )

        try:
            self.db.add(order)
            await self.db.flush()
            await self._insert_lines(order, lines)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Error creating order, transaction rolled back")
            raise PersistenceError("Error al crear pedido", detail=str(e)) from e

        logger.info(
            f"Order #{order.id} created: {len(lines)} lines, total {declared_total}, "
            f"{payment_method}, {'user #' + str(user_id) if user_id else 'anonymous'}"
        )

        user = await self.db.get(User, user_id) if user_id is not None else None
        return SubmittedOrder(
            order=order,
            items=[(dish.name, qty) for dish, qty in lines],
            user=user,
            client_ref=client_ref,
        )

    async def _resolve_lines(self, cart: Sequence[CartItem]) -> list[tuple[Dish, int]]:
        """Check every cart entry and load its dish."""
        for item in cart:
            if item.dish_id is None:
                raise ValidationError("Cada artículo del carrito requiere un id de platillo")
            if item.quantity is not None and item.quantity < 1:
                raise ValidationError("La cantidad debe ser al menos 1")

        ids = {item.dish_id for item in cart}
        result = await self.db.execute(select(Dish).where(Dish.id.in_(list(ids))))
        dishes = {dish.id: dish for dish in result.scalars().all()}

        missing = sorted(ids - dishes.keys())
        if missing:
            raise ValidationError(f"Platillos inexistentes en el carrito: {missing}")

        return [(dishes[item.dish_id], item.quantity or 1) for item in cart]

    async def _insert_lines(self, order: Order, lines: list[tuple[Dish, int]]) -> None:
        self.db.add_all(
            OrderLine(order_id=order.id, dish_id=dish.id, quantity=qty)
            for dish, qty in lines
        )
        await self.db.flush()

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    def _with_lines(self):
        return select(Order).options(
            selectinload(Order.lines).selectinload(OrderLine.dish)
        )

    async def list_orders(self) -> list[Order]:
        result = await self.db.execute(
            self._with_lines().order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def get_order(self, order_id: int) -> Order:
        result = await self.db.execute(self._with_lines().where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Pedido no encontrado")
        return order

    async def get_receipt(self, order_id: int) -> Receipt:
        result = await self.db.execute(
            select(Order.receipt, Order.receipt_mime).where(Order.id == order_id)
        )
        row = result.one_or_none()
        if row is None or row.receipt is None:
            raise NotFoundError("No se encontró comprobante")
        return Receipt(content=row.receipt, mime=row.receipt_mime)

    # -------------------------------------------------------------------------
    # Back office
    # -------------------------------------------------------------------------

    async def update_status(self, order_id: int, status: Optional[str]) -> tuple[int, OrderStatus]:
        new_status = parse_status(status)
        try:
            result = await self.db.execute(
                update(Order).where(Order.id == order_id).values(status=new_status)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                raise NotFoundError("Pedido no encontrado")
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Error al actualizar estado", detail=str(e)) from e

        logger.info(f"Order #{order_id} status -> {new_status.value}")
        return order_id, new_status

    async def delete_order(self, order_id: int) -> None:
        """Delete an order; its lines go with it (ON DELETE CASCADE)."""
        try:
            result = await self.db.execute(delete(Order).where(Order.id == order_id))
            if result.rowcount == 0:
                await self.db.rollback()
                raise NotFoundError("Pedido no encontrado")
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Error al eliminar pedido", detail=str(e)) from e

        logger.info(f"Order #{order_id} deleted")
