"""Object storage backends for generation artifacts."""

from abc import ABC, abstractmethod
from typing import List

from supabase import Client


class StorageBackend(ABC):
    """Blocking object-storage interface. Called from an executor thread."""

    @abstractmethod
    def put(self, key: str, data: bytes, media_type: str) -> None:
        ...

    @abstractmethod
    def signed_url(self, key: str, expires_in: int) -> str:
        ...

    @abstractmethod
    def remove(self, keys: List[str]) -> None:
        """Delete all ``keys`` in one request."""
        ...


class SupabaseStorageBackend(StorageBackend):
    """Supabase Storage bucket accessed with the service-role client."""

    def __init__(self, client: Client, bucket: str):
        self._client = client
        self._bucket = bucket

    def _files(self):
        return self._client.storage.from_(self._bucket)

    def put(self, key: str, data: bytes, media_type: str) -> None:
        self._files().upload(
            key,
            data,
            file_options={"content-type": media_type, "upsert": "false"},
        )

    def signed_url(self, key: str, expires_in: int) -> str:
        response = self._files().create_signed_url(key, expires_in)
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise RuntimeError(f"No signed URL returned for {key}")
        return url

    def remove(self, keys: List[str]) -> None:
        self._files().remove(keys)
