"""
Pydantic Schemas for Request/Response Validation

Request bodies use English field names and also accept the Spanish keys
sent by the mobile client (nombre, telefono, contraseña, carrito,
metodo_pago, comprobanteBase64, calificacion, ...).
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from restaurante.models import Category, Dish, Order, User, UserRole
from restaurante.services.media import encode_image, to_data_url


# Passwords are kept byte for byte
UNSTRIPPED_FIELDS = {"password", "password_confirm"}


class RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def strip_strings(cls, v, info: ValidationInfo):
        if isinstance(v, str) and info.field_name not in UNSTRIPPED_FIELDS:
            return v.strip()
        return v


def _parse_role(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.lower()
    if v == "cliente":
        return UserRole.CLIENT.value
    return v


# =============================================================================
# AUTH REQUESTS
# =============================================================================

class RegisterRequest(RequestModel):
    """Start a phone-verified registration."""
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name", "nombre"))
    phone: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("phone", "telefono"),
        examples=["5512345678"],
    )
    password: Optional[str] = Field(None, validation_alias=AliasChoices("password", "contraseña"))
    password_confirm: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("password_confirm", "confirmarContraseña"),
    )


class VerifyCodeRequest(RequestModel):
    phone: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("phone", "telefono"),
        examples=["+525512345678"],
    )
    code: Optional[Union[str, int]] = Field(
        None,
        validation_alias=AliasChoices("code", "codigo"),
        examples=["123456"],
    )


class LoginRequest(RequestModel):
    phone: Optional[str] = Field(None, validation_alias=AliasChoices("phone", "telefono"))
    password: Optional[str] = Field(None, validation_alias=AliasChoices("password", "contraseña"))


# =============================================================================
# ADMIN REQUESTS
# =============================================================================

class UserCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=100, validation_alias=AliasChoices("name", "nombre"))
    phone: str = Field(..., validation_alias=AliasChoices("phone", "telefono"))
    password: str = Field(..., min_length=1, validation_alias=AliasChoices("password", "contraseña"))
    role: UserRole = Field(
        default=UserRole.CLIENT,
        validation_alias=AliasChoices("role", "tipo_usuario"),
    )

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: Optional[str]) -> Optional[str]:
        return _parse_role(v)


class UserUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100, validation_alias=AliasChoices("name", "nombre"))
    phone: Optional[str] = Field(None, validation_alias=AliasChoices("phone", "telefono"))
    password: Optional[str] = Field(None, validation_alias=AliasChoices("password", "contraseña"))
    role: Optional[UserRole] = Field(None, validation_alias=AliasChoices("role", "tipo_usuario"))

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: Optional[str]) -> Optional[str]:
        return _parse_role(v)


class DishCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=150, validation_alias=AliasChoices("name", "nombre"))
    description: Optional[str] = Field(None, validation_alias=AliasChoices("description", "descripcion"))
    price: Decimal = Field(..., gt=0, validation_alias=AliasChoices("price", "precio"), examples=[120.5])
    category_id: int = Field(..., validation_alias=AliasChoices("category_id", "categoria_id"))
    image_base64: Optional[str] = Field(None, validation_alias=AliasChoices("image_base64", "imagen"))


class DishUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150, validation_alias=AliasChoices("name", "nombre"))
    description: Optional[str] = Field(None, validation_alias=AliasChoices("description", "descripcion"))
    price: Optional[Decimal] = Field(None, gt=0, validation_alias=AliasChoices("price", "precio"))
    category_id: Optional[int] = Field(None, validation_alias=AliasChoices("category_id", "categoria_id"))
    image_base64: Optional[str] = Field(None, validation_alias=AliasChoices("image_base64", "imagen"))


# =============================================================================
# ORDER & RATING REQUESTS
# =============================================================================

class CartItem(RequestModel):
    """Single cart entry: a dish and how many of it."""
    dish_id: Optional[int] = Field(None, validation_alias=AliasChoices("dish_id", "id", "platillo_id"))
    quantity: Optional[int] = Field(None, validation_alias=AliasChoices("quantity", "cantidad"))


class OrderCreate(RequestModel):
    """Cart snapshot submitted at checkout."""
    cart: List[CartItem] = Field(default_factory=list, validation_alias=AliasChoices("cart", "carrito"))
    total: Optional[Decimal] = Field(None, examples=[245.0])
    payment_method: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("payment_method", "metodo_pago"),
        examples=["transferencia", "local"],
    )
    receipt_base64: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("receipt_base64", "comprobanteBase64"),
    )
    receipt_mime: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("receipt_mime", "comprobanteMime"),
        examples=["image/png"],
    )
    client_ref: Optional[str] = Field(
        None,
        max_length=100,
        validation_alias=AliasChoices("client_ref", "cliente_ref"),
    )


class OrderStatusUpdate(RequestModel):
    status: str = Field(..., validation_alias=AliasChoices("status", "estado"), examples=["en_proceso"])


class RatingCreate(RequestModel):
    stars: Optional[Union[float, str]] = Field(
        None,
        validation_alias=AliasChoices("stars", "calificacion"),
        examples=[4],
    )
    comment: Optional[str] = Field(None, validation_alias=AliasChoices("comment", "comentario"))


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class UserPublic(BaseModel):
    """Public profile of a user."""
    id: int
    name: str
    phone: str
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class RegistrationStartResponse(BaseModel):
    message: str
    phone: str


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserPublic


class TokenCheckResponse(BaseModel):
    message: str
    user: UserPublic


class CategoryRef(BaseModel):
    id: int
    name: str


class CategoryOut(BaseModel):
    id: int
    name: str
    image: Optional[str] = None

    @classmethod
    def from_model(cls, category: Category) -> "CategoryOut":
        return cls(id=category.id, name=category.name, image=encode_image(category.image))


class DishOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    image: Optional[str] = None
    category: CategoryRef

    @classmethod
    def from_model(cls, dish: Dish) -> "DishOut":
        return cls(
            id=dish.id,
            name=dish.name,
            description=dish.description,
            price=float(dish.price),
            image=encode_image(dish.image),
            category=CategoryRef(id=dish.category.id, name=dish.category.name),
        )


class TopDishOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    average: float
    count: int
    image: Optional[str] = None
    message: Optional[str] = None


class RatingOut(BaseModel):
    id: int
    user_id: int
    dish_id: int
    stars: int
    comment: Optional[str] = None
    rated_at: datetime
    user_name: str
    dish_name: Optional[str] = None


class RatingSubmitResponse(BaseModel):
    success: bool = True
    message: str
    data: RatingOut


class RatingListResponse(BaseModel):
    success: bool = True
    ratings: List[RatingOut]
    average: str
    count: int


class OrderLineOut(BaseModel):
    dish_id: int
    name: str
    price: float
    quantity: int


class OrderOut(BaseModel):
    id: int
    user_id: Optional[int] = None
    client_ref: Optional[str] = None
    payment_method: str
    total: float
    status: str
    created_at: datetime
    receipt: Optional[str] = None
    lines: List[OrderLineOut]

    @classmethod
    def from_model(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.id,
            user_id=order.user_id,
            client_ref=order.client_ref,
            payment_method=order.payment_method,
            total=float(order.total),
            status=order.status.value,
            created_at=order.created_at,
            receipt=to_data_url(order.receipt, order.receipt_mime),
            lines=[
                OrderLineOut(
                    dish_id=line.dish_id,
                    name=line.dish.name,
                    price=float(line.dish.price),
                    quantity=line.quantity,
                )
                for line in order.lines
            ],
        )


class OrderCreateResponse(BaseModel):
    """Response after successfully creating an order."""
    success: bool = True
    message: str
    order_id: int
    user: Optional[UserPublic] = None
    client_ref: Optional[str] = None


class OrderStatusResponse(BaseModel):
    id: int
    status: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    verification_store: str
    notification_service: str
    timestamp: datetime


def user_public(user: User) -> UserPublic:
    return UserPublic.model_validate(user)
