"""Job record data model for queued generations."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, Field

from viba.history.models import GenerationType


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobImage(BaseModel):
    data: str
    media_type: str = "image/png"


class JobRecord(BaseModel):
    """Tracks the lifecycle of one queued generation."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: GenerationType
    status: JobStatus = JobStatus.PENDING
    status_text: Optional[str] = None
    inputs: List[JobImage] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    save_to_history: bool = True
    results: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    failed_variants: int = 0
    generation_id: Optional[str] = None
    history_error: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    user_id: Optional[str] = None

    def reset_for_retry(self) -> None:
        self.status = JobStatus.PENDING
        self.status_text = None
        self.results = []
        self.description = None
        self.failed_variants = 0
        self.generation_id = None
        self.history_error = None
        self.error = None
        self.started_at = None
        self.completed_at = None
