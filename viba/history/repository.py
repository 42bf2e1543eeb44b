"""Persistence for generation records (Supabase table or process memory)."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import Client

from viba.errors import ConflictError
from viba.history.models import GenerationRecord

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class HistoryRepository(ABC):
    """Blocking record store. Every query is scoped to an owner."""

    @abstractmethod
    def insert(self, record: GenerationRecord) -> GenerationRecord:
        """Raises ConflictError when a record with the same id exists, whoever owns it."""
        ...

    @abstractmethod
    def list_for_owner(self, owner: str) -> List[GenerationRecord]:
        """Records of ``owner``, newest first."""
        ...

    @abstractmethod
    def get(self, owner: str, record_id: str) -> Optional[GenerationRecord]:
        ...

    @abstractmethod
    def delete(self, owner: str, record_id: str) -> bool:
        """Returns False when nothing matched."""
        ...


class SupabaseHistoryRepository(HistoryRepository):
    def __init__(self, client: Client, table: str = "generation_history"):
        self._client = client
        self._table = table

    def _query(self):
        return self._client.table(self._table)

    def insert(self, record: GenerationRecord) -> GenerationRecord:
        try:
            response = self._query().insert(record.model_dump(mode="json")).execute()
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise ConflictError(f"Generation {record.id} already exists") from exc
            raise
        if response.data:
            return GenerationRecord.model_validate(response.data[0])
        return record

    def list_for_owner(self, owner: str) -> List[GenerationRecord]:
        response = (
            self._query()
            .select("*")
            .eq("user_id", owner)
            .order("created_at", desc=True)
            .execute()
        )
        return [GenerationRecord.model_validate(row) for row in response.data or []]

    def get(self, owner: str, record_id: str) -> Optional[GenerationRecord]:
        response = (
            self._query()
            .select("*")
            .eq("id", record_id)
            .eq("user_id", owner)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return GenerationRecord.model_validate(response.data[0])

    def delete(self, owner: str, record_id: str) -> bool:
        response = (
            self._query()
            .delete()
            .eq("id", record_id)
            .eq("user_id", owner)
            .execute()
        )
        return bool(response.data)


class InMemoryHistoryRepository(HistoryRepository):
    """Process-local store for development without Supabase."""

    def __init__(self):
        self._records: Dict[str, GenerationRecord] = {}

    def insert(self, record: GenerationRecord) -> GenerationRecord:
        if record.id in self._records:
            raise ConflictError(f"Generation {record.id} already exists")
        self._records[record.id] = record
        return record

    def list_for_owner(self, owner: str) -> List[GenerationRecord]:
        records = [r for r in self._records.values() if r.user_id == owner]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def get(self, owner: str, record_id: str) -> Optional[GenerationRecord]:
        record = self._records.get(record_id)
        if record is None or record.user_id != owner:
            return None
        return record

    def delete(self, owner: str, record_id: str) -> bool:
        if self.get(owner, record_id) is None:
            return False
        del self._records[record_id]
        return True
