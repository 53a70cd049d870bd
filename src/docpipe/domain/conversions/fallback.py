"""Tiered fallback execution.

A job runs through its chain one tier at a time:

    Tier0 -> Tier1 -> ... -> TierN -> Succeeded | ExhaustedFailure

The first tier that returns an outcome wins. When every tier has failed the
diagnostic report tier writes an artifact describing the failures, so the
caller still receives something to download.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Sequence

import structlog

from docpipe.domain.conversions.schemas import TierAttempt
from docpipe.lib.exceptions import FailureReason, ReportWriteError, TierError

if TYPE_CHECKING:
    from docpipe.domain.conversions.schemas import ConversionJob, ConversionOutcome, TierName

logger = structlog.get_logger()


class Tier(ABC):
    """One strategy for producing a job's output."""

    name: ClassVar[TierName]

    @abstractmethod
    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        """Produce the outcome or raise ``TierError``."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name.value}>"


class ReportTier(ABC):
    """Terminal tier that turns a list of failures into an artifact."""

    name: ClassVar[TierName]

    @abstractmethod
    async def report(self, job: ConversionJob, attempts: Sequence[TierAttempt]) -> ConversionOutcome: ...


@dataclass(frozen=True)
class FallbackChain:
    tiers: tuple[Tier, ...]

    def __post_init__(self) -> None:
        if not self.tiers:
            raise ValueError("A fallback chain needs at least one tier")

    @property
    def names(self) -> list[str]:
        return [tier.name.value for tier in self.tiers]


@dataclass(frozen=True)
class TierSuccess:
    outcome: ConversionOutcome


@dataclass(frozen=True)
class TierFailure:
    tier: TierName
    reason: FailureReason
    message: str

    def to_attempt(self) -> TierAttempt:
        return TierAttempt(tier=self.tier, reason=self.reason.value, message=self.message)


TierResult = TierSuccess | TierFailure


async def attempt(tier: Tier, job: ConversionJob) -> TierResult:
    """Run one tier and fold its result into the success/failure sum type."""
    try:
        return TierSuccess(await tier.convert(job))
    except TierError as err:
        return TierFailure(tier.name, err.reason, err.message)
    except Exception as err:  # noqa: BLE001
        logger.exception("Tier raised unexpectedly", job_id=job.id, tier=tier.name.value)
        return TierFailure(tier.name, FailureReason.SERVICE_UNAVAILABLE, f"{type(err).__name__}: {err}")


class FallbackExecutor:
    def __init__(self, report_tier: ReportTier) -> None:
        self.report_tier = report_tier

    async def execute(self, job: ConversionJob, chain: FallbackChain) -> ConversionOutcome:
        failures: list[TierFailure] = []
        for index, tier in enumerate(chain.tiers):
            log = logger.bind(job_id=job.id, job_type=job.type.value, tier=tier.name.value, step=index)
            log.info("Tier started")
            result = await attempt(tier, job)
            if isinstance(result, TierSuccess):
                log.info("Tier succeeded", output_ref=result.outcome.output_ref)
                if not failures:
                    return result.outcome
                return result.outcome.model_copy(
                    update={"attempts": tuple(failure.to_attempt() for failure in failures)}
                )
            log.warning("Tier failed", reason=result.reason.value, error=result.message)
            failures.append(result)

        attempts = [failure.to_attempt() for failure in failures]
        logger.warning(
            "All tiers exhausted, writing diagnostic report",
            job_id=job.id,
            job_type=job.type.value,
            tiers=chain.names,
        )
        try:
            outcome = await self.report_tier.report(job, attempts)
        except Exception as err:
            logger.exception("Diagnostic report failed", job_id=job.id)
            raise ReportWriteError(f"Conversion failed and the error report could not be written: {err}") from err
        logger.info("Diagnostic report written", job_id=job.id, output_ref=outcome.output_ref)
        return outcome
