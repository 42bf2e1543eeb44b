"""Closed error taxonomy shared by the generation pipeline and the API layer.

Every failure that crosses a component boundary is one of these classes.
``classify_error`` is the only place a foreign exception (SDK error,
timeout, anything else) is turned into one of them.
"""

import asyncio
from typing import Optional


class VibaError(Exception):
    """Base class for all typed failures."""

    code = "error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(VibaError):
    """Missing or malformed required input. Never retried."""

    code = "validation_error"
    status_code = 400


class QuotaExceededError(VibaError):
    """Upstream rate/quota signal. Surfaced immediately, never retried."""

    code = "quota_exceeded"
    status_code = 429


class TransientUpstreamError(VibaError):
    """Upstream failure that is worth another attempt."""

    code = "upstream_error"
    status_code = 502


class UpstreamTimeoutError(TransientUpstreamError):
    code = "upstream_timeout"
    status_code = 504


class ContentPolicyError(TransientUpstreamError):
    """The model answered, but not with an image (or with too little text)."""

    code = "content_policy"
    status_code = 422


class StorageError(VibaError):
    code = "storage_error"
    status_code = 502


class NotFoundError(VibaError):
    """Record or job absent, or not owned by the caller."""

    code = "not_found"
    status_code = 404


class ConflictError(VibaError):
    """A record with the requested id already exists."""

    code = "conflict"
    status_code = 409


_QUOTA_MARKERS = ("429", "quota", "RESOURCE_EXHAUSTED")


def _upstream_status(exc: BaseException) -> Optional[int]:
    # google.genai.errors.APIError carries the HTTP status as ``code``;
    # other HTTP clients use ``status_code`` or ``status``.
    for attr in ("code", "status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_quota_error(exc: BaseException) -> bool:
    if isinstance(exc, QuotaExceededError):
        return True
    if _upstream_status(exc) == 429:
        return True
    message = str(exc)
    return any(marker in message for marker in _QUOTA_MARKERS)


def classify_error(exc: BaseException) -> VibaError:
    """Map any exception raised by an upstream attempt onto the taxonomy."""
    if isinstance(exc, QuotaExceededError):
        return exc
    if isinstance(exc, VibaError):
        # A typed failure may still carry a quota message from the SDK.
        if isinstance(exc, TransientUpstreamError) and is_quota_error(exc):
            classified: VibaError = QuotaExceededError(exc.message)
        else:
            return exc
    elif isinstance(exc, asyncio.TimeoutError):
        classified = UpstreamTimeoutError(str(exc) or "Upstream call timed out")
    elif is_quota_error(exc):
        classified = QuotaExceededError(str(exc))
    else:
        classified = TransientUpstreamError(f"{type(exc).__name__}: {exc}")
    classified.__cause__ = exc
    return classified
