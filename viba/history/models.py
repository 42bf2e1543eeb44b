"""Durable generation record."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, Field


class GenerationType(str, Enum):
    DERIVATION = "derivation"
    AVATAR = "avatar"
    TRY_ON = "try_on"
    SWAP = "swap"


class GenerationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationRecord(BaseModel):
    """One generation and its artifacts (storage keys or inline payloads)."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    type: GenerationType
    status: GenerationStatus = GenerationStatus.COMPLETED
    input_files: List[str] = Field(default_factory=list)
    output_files: List[str] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def storage_refs(self) -> List[str]:
        return [*self.input_files, *self.output_files]
