"""Worker function run by the queue for every job."""

import logging
from typing import Optional

from viba.generation.client import ImageInput
from viba.generation.orchestrator import GenerationOrchestrator
from viba.generation.runner import record_outcome, run_generation
from viba.history.recorder import HistoryRecorder
from viba.jobs.models import JobRecord

logger = logging.getLogger(__name__)

STATUS_TEXT = {
    "analyzing": "Analyzing image...",
    "generating": "Generating...",
    "retrying": "Retrying...",
}


class GenerationWorker:
    """Runs a job through the orchestrator and records it in history."""

    def __init__(self, orchestrator: GenerationOrchestrator, recorder: Optional[HistoryRecorder] = None):
        self._orchestrator = orchestrator
        self._recorder = recorder

    async def __call__(self, job: JobRecord) -> JobRecord:
        def on_status(code: str) -> None:
            job.status_text = STATUS_TEXT.get(code, code)

        job.status_text = "Processing..."
        inputs = [ImageInput(data=img.data, media_type=img.media_type) for img in job.inputs]
        outcome = await run_generation(self._orchestrator, job.type, inputs, job.parameters, on_status)

        job.results = outcome.images
        job.description = outcome.description
        job.failed_variants = outcome.failed_variants

        if job.save_to_history and job.user_id and self._recorder is not None:
            try:
                record = await record_outcome(self._recorder, job.user_id, job.type, inputs, outcome)
                job.generation_id = record.id
            except Exception as e:
                # The generation itself succeeded; report the history failure on the job.
                logger.exception("Recording job %s in history failed", job.id)
                job.history_error = f"{type(e).__name__}: {e}"
        return job
