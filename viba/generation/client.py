"""Thin async wrapper around the Gemini API (google-genai).

``describe`` returns model text, ``render`` returns the first inline image
as a data URL. A response without an image is a :class:`ContentPolicyError`,
not a transport failure.
"""

import base64
from dataclasses import dataclass
from typing import Iterable, List, Optional

from google import genai
from google.genai import types

from viba.errors import ContentPolicyError, ValidationError
from viba.generation.prompts import SYSTEM_INSTRUCTION
from viba.storage.inline import DEFAULT_MEDIA_TYPE, decode_payload, to_data_url


ASPECT_RATIO = "3:4"


@dataclass
class ImageInput:
    """Base64 image data (no data URL prefix) and its media type."""
    data: str
    media_type: str = DEFAULT_MEDIA_TYPE

    @classmethod
    def from_payload(cls, payload: str, media_type: Optional[str] = None) -> "ImageInput":
        if not payload or not payload.strip():
            raise ValidationError("Image payload is required")
        decoded = decode_payload(payload, media_type)
        return cls(
            data=base64.b64encode(decoded.data).decode("ascii"),
            media_type=decoded.media_type,
        )

    def as_data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


class GenerationNotConfigured(RuntimeError):
    pass


def _iter_parts(response) -> Iterable:
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            yield part


def _finish_reason(response) -> Optional[str]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    reason = getattr(candidates[0], "finish_reason", None)
    if reason is None:
        return None
    return getattr(reason, "name", str(reason))


def extract_text(response) -> str:
    texts = [part.text for part in _iter_parts(response) if getattr(part, "text", None)]
    return "".join(texts).strip()


def extract_image(response) -> str:
    """First inline image of ``response`` as a data URL."""
    for part in _iter_parts(response):
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if not data:
            continue
        mime = getattr(inline, "mime_type", None) or "image/png"
        if isinstance(data, str):
            return f"data:{mime};base64,{data}"
        return to_data_url(data, mime)

    reason = _finish_reason(response)
    text = extract_text(response)
    detail = f"finish_reason={reason}" if reason else "no candidates"
    if text:
        detail += f", text={text[:200]!r}"
    raise ContentPolicyError(f"No image generated ({detail})")


class GeminiClient:
    def __init__(self, api_key: Optional[str] = None, client: Optional[genai.Client] = None):
        self._api_key = api_key
        self._client = client

    def is_configured(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise GenerationNotConfigured(
                    "Gemini API key is missing. Set GEMINI_API_KEY (or API_KEY)."
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def ensure_ready(self) -> None:
        self._get_client()

    @staticmethod
    def _contents(images: List[ImageInput], instruction: str) -> list:
        parts = [
            types.Part.from_bytes(data=base64.b64decode(img.data), mime_type=img.media_type)
            for img in images
        ]
        return [*parts, instruction]

    async def describe(self, model: str, images: List[ImageInput], instruction: str) -> str:
        response = await self._get_client().aio.models.generate_content(
            model=model,
            contents=self._contents(images, instruction),
        )
        return extract_text(response)

    async def render(
        self,
        model: str,
        images: List[ImageInput],
        instruction: str,
        image_size: str = "1K",
    ) -> str:
        response = await self._get_client().aio.models.generate_content(
            model=model,
            contents=self._contents(images, instruction),
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                response_modalities=["TEXT", "IMAGE"],
                image_config=types.ImageConfig(aspect_ratio=ASPECT_RATIO, image_size=image_size),
            ),
        )
        return extract_image(response)
