"""
Application Error Taxonomy

Every business failure raised by the services is a RestauranteError
subclass carrying the HTTP status it maps to. The FastAPI exception
handlers in main.py turn them into the standard error envelope:

    {"success": false, "error": "<message>", "detail": <detail|null>}

`detail` holds internal information (driver messages, provider errors)
and is only sent to clients in development mode.
"""

from typing import Optional


class RestauranteError(Exception):
    """Base class for all expected application errors."""

    status_code: int = 500
    default_message: str = "Error interno del servidor"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(RestauranteError):
    """Malformed or missing input."""
    status_code = 400
    default_message = "Datos inválidos"


class FormatError(ValidationError):
    """Phone number does not have the expected shape."""
    default_message = "El número de teléfono debe tener 10 dígitos"


class InvalidCodeError(RestauranteError):
    status_code = 400
    default_message = "Código de verificación inválido"


class ExpiredError(RestauranteError):
    status_code = 400
    default_message = "Código expirado"


class ConflictError(RestauranteError):
    """A unique resource already exists."""
    status_code = 409
    default_message = "El recurso ya existe"


class DuplicateError(ConflictError):
    """Lost a race against a uniqueness constraint."""
    default_message = "Registro duplicado"


class NotFoundError(RestauranteError):
    status_code = 404
    default_message = "Recurso no encontrado"


class InvalidCredentialsError(RestauranteError):
    status_code = 401
    default_message = "Contraseña incorrecta"


class MissingTokenError(RestauranteError):
    status_code = 401
    default_message = "Token no proporcionado"


class InvalidTokenError(RestauranteError):
    status_code = 401
    default_message = "Token inválido"


class ExpiredTokenError(RestauranteError):
    status_code = 401
    default_message = "Token expirado"


class ForbiddenError(RestauranteError):
    status_code = 403
    default_message = "No autorizado"


class DeliveryError(RestauranteError):
    """The SMS provider could not deliver a message."""
    status_code = 502
    default_message = "Error al enviar SMS"


class PersistenceError(RestauranteError):
    """The relational store rejected or failed a write."""
    status_code = 500
    default_message = "Error al guardar en la base de datos"
