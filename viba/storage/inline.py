"""Inline image payloads ("data URLs") and their raw-byte form."""

import base64
import binascii
import io
import re
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError

from viba.errors import ValidationError

DEFAULT_MEDIA_TYPE = "image/png"
DEFAULT_EXTENSION = "png"

MEDIA_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL)


@dataclass
class DecodedPayload:
    data: bytes
    media_type: str

    @property
    def extension(self) -> str:
        return extension_for(self.media_type)


def is_data_url(value: str) -> bool:
    return value.startswith("data:")


def extension_for(media_type: str) -> str:
    return MEDIA_TYPE_EXTENSIONS.get(media_type.lower(), DEFAULT_EXTENSION)


def to_data_url(data: bytes, media_type: str = DEFAULT_MEDIA_TYPE) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def sniff_media_type(data: bytes) -> Optional[str]:
    """Best guess of an image's media type from its bytes, or None."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError):
        return None
    if not fmt:
        return None
    return Image.MIME.get(fmt.upper())


def decode_payload(value: str, media_type: Optional[str] = None) -> DecodedPayload:
    """Decode a data URL or raw base64 string.

    A data URL's own media type wins. Raw base64 uses ``media_type`` when
    given, else whatever Pillow recognises, else ``image/png``.
    """
    match = _DATA_URL_RE.match(value.strip())
    if match:
        declared, encoded = match.group(1), match.group(2)
    else:
        declared, encoded = media_type, value.strip()

    try:
        data = base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"Image payload is not valid base64: {exc}") from exc
    if not data:
        raise ValidationError("Image payload is empty")

    resolved = declared or sniff_media_type(data) or DEFAULT_MEDIA_TYPE
    return DecodedPayload(data=data, media_type=resolved)

