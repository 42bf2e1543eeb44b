"""Job dispatcher interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from viba.jobs.models import JobRecord


class JobStateError(Exception):
    """The requested transition is not allowed from the job's current state."""


class JobDispatcher(ABC):
    """Abstract interface for job dispatching."""

    @abstractmethod
    async def submit(self, job: JobRecord) -> str:
        """Submit a job for processing. Returns job_id."""
        ...

    @abstractmethod
    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        """Get current status of a job."""
        ...

    @abstractmethod
    async def list_jobs(self, user_id: Optional[str] = None) -> List[JobRecord]:
        """Jobs in submission order, optionally only those of one user."""
        ...

    @abstractmethod
    async def retry(self, job_id: str) -> JobRecord:
        """Move a failed job back to pending."""
        ...

    @abstractmethod
    async def remove(self, job_id: str) -> None:
        """Forget a job that is not currently processing."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
