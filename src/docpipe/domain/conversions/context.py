from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
import structlog

from docpipe.config.base import Settings
from docpipe.domain.conversions.cloud import CloudTransformClient
from docpipe.domain.conversions.dispatcher import Dispatcher, build_dispatcher
from docpipe.domain.conversions.fallback import FallbackExecutor
from docpipe.domain.conversions.parsing import PdfFragmentParser
from docpipe.domain.conversions.queue import ConversionQueue
from docpipe.domain.conversions.storage import ObjectStorage
from docpipe.domain.conversions.tiers import DiagnosticReportTier

if TYPE_CHECKING:
    from docpipe.domain.conversions.schemas import ConversionJob, ConversionOutcome

logger = structlog.get_logger()


@dataclass
class ConversionContext:
    """Process-scoped collaborators, built once and passed explicitly."""

    settings: Settings
    storage: ObjectStorage
    cloud: CloudTransformClient
    parser: PdfFragmentParser
    dispatcher: Dispatcher
    executor: FallbackExecutor
    queue: ConversionQueue | None = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        storage: ObjectStorage | None = None,
        cloud_transport: httpx.AsyncBaseTransport | None = None,
    ) -> ConversionContext:
        storage = storage or ObjectStorage.from_settings(settings.storage)
        storage.provision()
        cloud = CloudTransformClient(settings.cloud, storage, transport=cloud_transport)
        parser = PdfFragmentParser(storage)
        context = cls(
            settings=settings,
            storage=storage,
            cloud=cloud,
            parser=parser,
            dispatcher=build_dispatcher(settings, storage, cloud, parser),
            executor=FallbackExecutor(DiagnosticReportTier(storage)),
        )
        logger.info("Conversion context ready", cloud_configured=cloud.configured)
        return context

    async def run(self, job: ConversionJob) -> ConversionOutcome:
        chain = self.dispatcher.resolve(job.type)
        return await self.executor.execute(job, chain)

    async def aclose(self) -> None:
        await self.cloud.aclose()
