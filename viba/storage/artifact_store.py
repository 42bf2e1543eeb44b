"""Content store for generated and uploaded images.

Artifacts live under ``owners/{owner}/{generation_id}/{role}_{ts}_{index}.{ext}``.
Only the key is ever persisted; URLs are derived on every read so records
stay valid when the bucket moves or signed URLs expire.
"""

import asyncio
import functools
import logging
import time
from typing import Callable, Iterable, List, Optional

from viba.errors import StorageError
from viba.storage.backends import StorageBackend
from viba.storage.inline import decode_payload, is_data_url

logger = logging.getLogger(__name__)

KEY_PREFIX = "owners/"
ROLES = ("input", "output")


def build_key(owner: str, generation_id: str, role: str, timestamp: int, index: int, extension: str) -> str:
    return f"{KEY_PREFIX}{owner}/{generation_id}/{role}_{timestamp}_{index}.{extension}"


class ArtifactStore:
    """Uploads, resolves and deletes artifacts on a :class:`StorageBackend`.

    With no backend the store is unconfigured: ``upload`` hands the inline
    payload back unchanged and callers keep storing it as-is.
    """

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        public_base_url: Optional[str] = None,
        signed_url_ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._signed_url_ttl = signed_url_ttl
        self._clock = clock

    def is_configured(self) -> bool:
        return self._backend is not None

    @staticmethod
    def is_storage_key(value: str) -> bool:
        return isinstance(value, str) and value.startswith(KEY_PREFIX) and not is_data_url(value)

    async def _run(self, fn, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    async def upload(
        self,
        owner: str,
        generation_id: str,
        payload: str,
        role: str,
        index: int,
        media_type: Optional[str] = None,
    ) -> str:
        """Store an inline payload and return its key."""
        if role not in ROLES:
            raise ValueError(f"Unknown artifact role '{role}'")
        if not self.is_configured():
            return payload

        decoded = decode_payload(payload, media_type)
        timestamp = int(self._clock() * 1000)
        key = build_key(owner, generation_id, role, timestamp, index, decoded.extension)
        try:
            await self._run(self._backend.put, key, decoded.data, decoded.media_type)
        except Exception as exc:
            raise StorageError(f"Upload of {key} failed: {exc}") from exc
        return key

    async def resolve_url(self, key: str) -> str:
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        if not self.is_configured():
            raise StorageError("Storage backend is not configured")
        try:
            return await self._run(self._backend.signed_url, key, self._signed_url_ttl)
        except Exception as exc:
            raise StorageError(f"Could not sign URL for {key}: {exc}") from exc

    async def resolve_reference(self, value: str) -> str:
        """URL for a storage key; inline payloads pass through untouched."""
        if self.is_storage_key(value):
            return await self.resolve_url(value)
        return value

    async def delete(self, keys: Iterable[str]) -> None:
        """Delete ``keys`` in a single batched backend call."""
        batch: List[str] = [k for k in keys if self.is_storage_key(k)]
        if not batch:
            return
        if not self.is_configured():
            raise StorageError("Storage backend is not configured")
        try:
            await self._run(self._backend.remove, batch)
        except Exception as exc:
            raise StorageError(f"Delete of {len(batch)} artifact(s) failed: {exc}") from exc
        logger.info("Deleted %d artifact(s)", len(batch))
