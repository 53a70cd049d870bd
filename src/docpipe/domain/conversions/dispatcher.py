from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from docpipe.domain.conversions.fallback import FallbackChain
from docpipe.domain.conversions.schemas import JobType
from docpipe.domain.conversions.tiers import (
    CloudCompressionTier,
    CloudExportTier,
    ImageCompressionTier,
    ImageToPdfTier,
    LocalPdfCompressionTier,
    LocalTextExtractionTier,
    RawCopyTier,
    VideoTranscodeTier,
)
from docpipe.lib.exceptions import UnknownJobType

if TYPE_CHECKING:
    from docpipe.config.base import Settings
    from docpipe.domain.conversions.cloud import CloudTransformClient
    from docpipe.domain.conversions.parsing import PdfFragmentParser
    from docpipe.domain.conversions.storage import ObjectStorage


class Dispatcher:
    """Lookup table from job type to its fallback chain."""

    def __init__(self, table: Mapping[JobType, FallbackChain], *, require_all: bool = True) -> None:
        if require_all:
            missing = [job_type.value for job_type in JobType if job_type not in table]
            if missing:
                raise ValueError(f"No fallback chain registered for: {', '.join(missing)}")
        self._table = MappingProxyType(dict(table))

    @property
    def job_types(self) -> list[JobType]:
        return list(self._table)

    def job_type(self, value: str | JobType) -> JobType:
        try:
            job_type = JobType(value)
        except ValueError as err:
            raise UnknownJobType(str(value)) from err
        if job_type not in self._table:
            raise UnknownJobType(job_type.value)
        return job_type

    def resolve(self, value: str | JobType) -> FallbackChain:
        return self._table[self.job_type(value)]


def build_dispatcher(
    settings: Settings,
    storage: ObjectStorage,
    cloud: CloudTransformClient,
    parser: PdfFragmentParser,
) -> Dispatcher:
    max_attempts = settings.cloud.MAX_ATTEMPTS
    return Dispatcher(
        {
            JobType.CONVERT_DOC_TO_TEXT: FallbackChain(
                (
                    CloudExportTier(cloud, max_attempts=max_attempts, ocr_lang=settings.cloud.OCR_LANG),
                    LocalTextExtractionTier(parser, storage, tolerance=settings.conversion.LINE_TOLERANCE),
                )
            ),
            JobType.IMAGE_TO_DOC: FallbackChain((ImageToPdfTier(storage),)),
            JobType.COMPRESS_IMAGE: FallbackChain((ImageCompressionTier(storage),)),
            JobType.COMPRESS_VIDEO: FallbackChain(
                (
                    VideoTranscodeTier(storage, timeout=settings.conversion.FFMPEG_TIMEOUT),
                    RawCopyTier(storage, default_extension=".mp4"),
                )
            ),
            JobType.COMPRESS_DOC: FallbackChain(
                (
                    CloudCompressionTier(cloud, max_attempts=max_attempts),
                    LocalPdfCompressionTier(storage),
                    RawCopyTier(storage, default_extension=".pdf"),
                )
            ),
        }
    )
