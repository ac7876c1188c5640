"""
Binary payload helpers.

Images and receipts travel as base64 strings inside JSON. Clients may send
either plain base64 or a data URL (`data:image/png;base64,...`); responses
use plain base64 for catalog images and data URLs where the MIME type
matters.
"""

import base64
import binascii
import re
from typing import Optional

from restaurante.core.errors import ValidationError

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def encode_image(data: Optional[bytes]) -> Optional[str]:
    if not data:
        return None
    return base64.b64encode(data).decode("ascii")


def to_data_url(data: Optional[bytes], mime: Optional[str]) -> Optional[str]:
    if not data:
        return None
    return f"data:{mime or 'image/jpeg'};base64,{encode_image(data)}"


def decode_base64_payload(
    payload: str,
    declared_mime: Optional[str] = None,
    field: str = "comprobante",
) -> tuple[bytes, Optional[str]]:
    """
    Decode a transport-encoded payload into raw bytes.

    Returns the bytes and the MIME type: the declared one if given,
    otherwise the one embedded in a data URL (None when neither exists).

    Raises:
        ValidationError: The payload is not valid base64 or is empty
    """
    mime = declared_mime or None
    match = _DATA_URL.match(payload.strip())
    if match:
        mime = mime or match.group("mime")
        payload = match.group("data")

    try:
        raw = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"El campo {field} no es base64 válido", detail=str(e)) from e

    if not raw:
        raise ValidationError(f"El campo {field} está vacío")
    return raw, mime
