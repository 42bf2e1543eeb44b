"""Creates, lists and deletes generation records.

Inline payloads are moved into the artifact store on create (when one is
configured) and storage keys are turned back into URLs on list. Deleting a
record removes its artifacts on a best-effort basis first.
"""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Optional

from viba.errors import NotFoundError, StorageError
from viba.history.models import GenerationRecord, GenerationStatus, GenerationType
from viba.history.repository import HistoryRepository
from viba.storage.artifact_store import ArtifactStore

logger = logging.getLogger(__name__)


class HistoryRecorder:
    def __init__(self, repository: HistoryRepository, store: ArtifactStore):
        self._repository = repository
        self._store = store

    async def _run(self, fn, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    async def _persist_artifact(self, owner: str, generation_id: str, value: str, role: str, index: int) -> str:
        if self._store.is_storage_key(value):
            return value
        try:
            return await self._store.upload(owner, generation_id, value, role, index)
        except StorageError as exc:
            logger.warning("Keeping %s #%d inline for %s: %s", role, index, generation_id, exc.message)
            return value

    async def _persist_all(self, owner: str, generation_id: str, values: List[str], role: str) -> List[str]:
        if not self._store.is_configured():
            return list(values)
        return list(
            await asyncio.gather(
                *(
                    self._persist_artifact(owner, generation_id, value, role, index)
                    for index, value in enumerate(values)
                )
            )
        )

    async def create(
        self,
        owner: str,
        type: GenerationType,
        input_files: List[str],
        output_files: List[str],
        parameters: Optional[Dict[str, Any]] = None,
        status: GenerationStatus = GenerationStatus.COMPLETED,
        error_message: Optional[str] = None,
        generation_id: Optional[str] = None,
    ) -> GenerationRecord:
        record = GenerationRecord(
            user_id=owner,
            type=type,
            status=status,
            parameters=parameters or {},
            error_message=error_message,
        )
        if generation_id:
            record.id = generation_id

        inputs, outputs = await asyncio.gather(
            self._persist_all(owner, record.id, input_files, "input"),
            self._persist_all(owner, record.id, output_files, "output"),
        )
        record.input_files = inputs
        record.output_files = outputs

        try:
            saved = await self._run(self._repository.insert, record)
        except Exception:
            await self._discard_uploads(record, set(input_files) | set(output_files))
            raise
        logger.info("Recorded %s generation %s for %s", type.value, saved.id, owner)
        return saved

    async def _discard_uploads(self, record: GenerationRecord, submitted: set) -> None:
        # Only keys produced by this call; keys the caller passed in belong to other records.
        keys = [ref for ref in record.storage_refs() if self._store.is_storage_key(ref) and ref not in submitted]
        if not keys:
            return
        try:
            await self._store.delete(keys)
        except StorageError as exc:
            logger.warning("Could not remove uploads of unsaved generation %s: %s", record.id, exc.message)
            return
        logger.info("Removed %d upload(s) of unsaved generation %s", len(keys), record.id)

    async def _resolve_one(self, value: str) -> str:
        try:
            return await self._store.resolve_reference(value)
        except StorageError as exc:
            logger.warning("Could not resolve artifact %s: %s", value, exc.message)
            return value

    async def resolve(self, record: GenerationRecord) -> GenerationRecord:
        """Copy of ``record`` with storage keys replaced by fresh URLs.

        A key that cannot be resolved is returned as-is.
        """
        inputs, outputs = await asyncio.gather(
            asyncio.gather(*(self._resolve_one(v) for v in record.input_files)),
            asyncio.gather(*(self._resolve_one(v) for v in record.output_files)),
        )
        return record.model_copy(update={"input_files": list(inputs), "output_files": list(outputs)})

    async def list(self, owner: str) -> List[GenerationRecord]:
        records = await self._run(self._repository.list_for_owner, owner)
        return list(await asyncio.gather(*(self.resolve(r) for r in records)))

    async def delete(self, owner: str, record_id: str) -> None:
        record = await self._run(self._repository.get, owner, record_id)
        if record is None:
            raise NotFoundError(f"Generation {record_id} not found")

        keys = [ref for ref in record.storage_refs() if self._store.is_storage_key(ref)]
        if keys:
            try:
                await self._store.delete(keys)
            except StorageError as exc:
                logger.warning("Artifact cleanup for %s failed, deleting record anyway: %s", record_id, exc.message)

        deleted = await self._run(self._repository.delete, owner, record_id)
        if not deleted:
            raise NotFoundError(f"Generation {record_id} not found")
