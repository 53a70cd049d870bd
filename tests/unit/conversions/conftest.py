from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from saq import Job
from saq.job import Status

from docpipe.domain.conversions.context import ConversionContext
from docpipe.domain.conversions.queue import ConversionQueue

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from docpipe.config.base import Settings
    from docpipe.domain.conversions.storage import ObjectStorage


class MemoryQueue:
    """Just enough of ``saq.Queue`` for submission and status lookups."""

    name = "memory"

    def __init__(self) -> None:
        self.jobs: dict[str, Job] = {}
        self.online = True

    async def enqueue(self, job: Job) -> Job | None:
        if job.key in self.jobs:
            return None
        job.queue = self  # type: ignore[assignment]
        job.status = Status.QUEUED
        self.jobs[job.key] = job
        return job

    async def job(self, job_key: str) -> Job | None:
        return self.jobs.get(job_key)

    async def count(self, kind: str) -> int:
        if not self.online:
            raise ConnectionError("queue offline")
        return len(self.jobs)

    async def disconnect(self) -> None:
        return None


@pytest.fixture(name="memory_queue")
def fx_memory_queue() -> MemoryQueue:
    return MemoryQueue()


@pytest.fixture(name="conversion")
async def fx_conversion(
    settings: Settings, storage: ObjectStorage, memory_queue: MemoryQueue
) -> AsyncGenerator[ConversionContext, None]:
    conversion = ConversionContext.create(settings, storage=storage)
    conversion.queue = ConversionQueue(memory_queue, conversion.dispatcher, settings.saq)  # type: ignore[arg-type]
    yield conversion
    await conversion.aclose()
