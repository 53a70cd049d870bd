"""Durable job queue for conversions.

Jobs are stored in a saq (Redis) queue keyed by the conversion job id, so a
resubmission with the same id is dropped by the queue itself. Delivery is
at-least-once: saq heartbeats each active job and sweeps it back onto the queue
when its worker dies, as long as the retry budget allows.
"""

from __future__ import annotations

import posixpath
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import structlog
from saq import Job

from docpipe.domain.conversions.schemas import ConversionJob, ConversionOutcome, JobState, JobStatus

if TYPE_CHECKING:
    from saq import Queue

    from docpipe.config.base import SaqSettings
    from docpipe.domain.conversions.dispatcher import Dispatcher
    from docpipe.domain.conversions.schemas import JobRequest

logger = structlog.get_logger()

TASK_NAME = "run_conversion"

OnCompleted = Callable[[ConversionJob, ConversionOutcome], Awaitable[None]]
OnFailed = Callable[[ConversionJob, str], Awaitable[None]]


def download_url(output_ref: str) -> str:
    return f"/api/download/{posixpath.basename(output_ref)}"


class ConversionQueue:
    def __init__(self, queue: Queue, dispatcher: Dispatcher, settings: SaqSettings) -> None:
        self.queue = queue
        self.dispatcher = dispatcher
        self.settings = settings
        self._on_completed: list[OnCompleted] = []
        self._on_failed: list[OnFailed] = []

    async def submit(self, request: JobRequest) -> str:
        """Queue a conversion and return its id.

        Raises:
            UnknownJobType: ``request.type`` has no registered chain.
        """
        job_type = self.dispatcher.job_type(request.type)
        fields: dict[str, Any] = {
            "type": job_type,
            "input_ref": request.input_ref,
            "original_name": request.original_name,
            "options": request.options,
        }
        if request.id:
            fields["id"] = request.id
        job = ConversionJob(**fields)

        queued = await self.queue.enqueue(
            Job(
                TASK_NAME,
                kwargs={"job": job.model_dump(mode="json")},
                key=job.id,
                timeout=self.settings.JOB_TIMEOUT,
                heartbeat=self.settings.JOB_HEARTBEAT,
                retries=self.settings.JOB_RETRIES,
                ttl=self.settings.JOB_TTL,
            )
        )
        if queued is None:
            logger.info("Job already queued", job_id=job.id)
        else:
            logger.info("Job queued", job_id=job.id, job_type=job.type.value, original_name=job.original_name)
        return job.id

    def subscribe(self, on_completed: OnCompleted | None = None, on_failed: OnFailed | None = None) -> None:
        if on_completed is not None:
            self._on_completed.append(on_completed)
        if on_failed is not None:
            self._on_failed.append(on_failed)

    async def notify(self, saq_job: Job) -> None:
        """Fire subscribers for a job that reached a terminal state.

        Called after every processing attempt; a job put back on the queue
        for a retry is still ``Queued`` and fires nothing.
        """
        status = JobStatus.from_queue(saq_job.status)
        if status not in (JobStatus.COMPLETED, JobStatus.FAILED):
            return
        payload = (saq_job.kwargs or {}).get("job") or {}
        try:
            job = ConversionJob.model_validate(payload)
        except ValueError:
            logger.warning("Finished job has no readable payload", job_key=saq_job.key, status=status.value)
            return

        if status is JobStatus.COMPLETED:
            outcome = ConversionOutcome.model_validate(saq_job.result)
            for on_completed in self._on_completed:
                await self._fire(on_completed, job, outcome)
        else:
            error = saq_job.error or "Job failed"
            for on_failed in self._on_failed:
                await self._fire(on_failed, job, error)

    async def _fire(self, handler: Callable[..., Awaitable[None]], job: ConversionJob, arg: Any) -> None:
        try:
            await handler(job, arg)
        except Exception:
            logger.exception("Subscriber failed", job_id=job.id, handler=getattr(handler, "__name__", repr(handler)))

    async def status(self, job_id: str) -> JobState | None:
        saq_job = await self.queue.job(job_id)
        if saq_job is None:
            return None
        status = JobStatus.from_queue(saq_job.status)
        state = JobState(id=job_id, status=status)
        if status is JobStatus.COMPLETED and saq_job.result:
            state.outcome = saq_job.result
            state.download_url = download_url(saq_job.result["output_ref"])
        elif status is JobStatus.FAILED:
            state.error = _last_line(saq_job.error) or "Job failed"
        return state

    async def outcome(self, job_id: str) -> ConversionOutcome | None:
        saq_job = await self.queue.job(job_id)
        if saq_job is None or JobStatus.from_queue(saq_job.status) is not JobStatus.COMPLETED:
            return None
        return ConversionOutcome.model_validate(saq_job.result)


def _last_line(error: str | None) -> str | None:
    """saq stores the formatted traceback; the last line carries the message."""
    if not error:
        return None
    lines = [line for line in error.strip().splitlines() if line.strip()]
    return lines[-1] if lines else None
