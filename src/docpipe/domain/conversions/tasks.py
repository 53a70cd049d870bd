from __future__ import annotations

from typing import TYPE_CHECKING, Any

import anyio
import structlog
from pydantic import ValidationError as PayloadError

from docpipe.config.base import get_settings
from docpipe.domain.conversions.context import ConversionContext
from docpipe.domain.conversions.queue import ConversionQueue
from docpipe.domain.conversions.schemas import ConversionJob
from docpipe.lib.exceptions import ReportWriteError, ValidationError

if TYPE_CHECKING:
    from saq.types import Context

    from docpipe.domain.conversions.schemas import ConversionOutcome

logger = structlog.get_logger()

# one job at a time per worker process; scale with SAQ_PROCESSES
WORKER_CONCURRENCY = 1


async def log_completed(job: ConversionJob, outcome: ConversionOutcome) -> None:
    logger.info(
        "Conversion completed",
        job_id=job.id,
        job_type=job.type.value,
        tier_used=outcome.tier_used.value,
        output_ref=outcome.output_ref,
        failed_tiers=len(outcome.attempts),
    )


async def log_failed(job: ConversionJob, error: str) -> None:
    logger.error("Conversion failed", job_id=job.id, job_type=job.type.value, error=error)


async def startup(ctx: Context) -> None:
    settings = get_settings()
    conversion = ConversionContext.create(settings)
    conversion.queue = ConversionQueue(ctx["worker"].queue, conversion.dispatcher, settings.saq)
    conversion.queue.subscribe(log_completed, log_failed)
    ctx["conversion"] = conversion  # type: ignore[typeddict-unknown-key]
    logger.info("Conversion worker started", queue=settings.saq.QUEUE_NAME)


async def shutdown(ctx: Context) -> None:
    conversion: ConversionContext | None = ctx.get("conversion")  # type: ignore[assignment]
    if conversion is not None:
        await conversion.aclose()
    logger.info("Conversion worker stopped")


async def after_process(ctx: Context) -> None:
    conversion: ConversionContext | None = ctx.get("conversion")  # type: ignore[assignment]
    job = ctx.get("job")
    if conversion is None or conversion.queue is None or job is None:
        return
    await conversion.queue.notify(job)


async def run_conversion(ctx: Context, *, job: dict[str, Any]) -> dict[str, Any]:
    """Run one conversion job through its fallback chain.

    Invalid jobs and unwritable reports fail the saq job without retries. The
    input object is removed once the attempt is terminal, including a timeout
    on the last attempt; an attempt that will be retried leaves it in place
    for the next delivery.
    """
    conversion: ConversionContext = ctx["conversion"]  # type: ignore[typeddict-item]
    saq_job = ctx["job"]
    input_ref = job.get("input_ref")
    terminal = False
    try:
        conversion.dispatcher.job_type(job.get("type", ""))
        try:
            conversion_job = ConversionJob.model_validate(job)
        except PayloadError as err:
            raise ValidationError(f"Invalid job payload: {err}") from err
        log = logger.bind(job_id=conversion_job.id, job_type=conversion_job.type.value, attempt=saq_job.attempts)
        log.info("Conversion started", original_name=conversion_job.original_name)
        outcome = await conversion.run(conversion_job)
        terminal = True
    except (ValidationError, ReportWriteError):
        saq_job.retries = saq_job.attempts
        terminal = True
        raise
    finally:
        # covers errors and cancellation on the last attempt
        if input_ref and (terminal or not saq_job.retryable):
            with anyio.CancelScope(shield=True):
                await conversion.storage.discard(input_ref)
    return outcome.model_dump(mode="json")
