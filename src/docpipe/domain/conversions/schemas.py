from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from docpipe.domain.conversions.profiles import DEFAULT_LEVEL


class JobType(str, enum.Enum):
    CONVERT_DOC_TO_TEXT = "ConvertDocToText"
    IMAGE_TO_DOC = "ImageToDoc"
    COMPRESS_IMAGE = "CompressImage"
    COMPRESS_VIDEO = "CompressVideo"
    COMPRESS_DOC = "CompressDoc"

    @classmethod
    def _missing_(cls, value: object) -> JobType | None:
        if isinstance(value, str):
            return _LEGACY_JOB_TYPES.get(value.lower())
        return None


# Wire names used by the first version of the upload API.
_LEGACY_JOB_TYPES = {
    "pdf-to-word": JobType.CONVERT_DOC_TO_TEXT,
    "image-to-pdf": JobType.IMAGE_TO_DOC,
    "compress-image": JobType.COMPRESS_IMAGE,
    "compress-video": JobType.COMPRESS_VIDEO,
    "compress-pdf": JobType.COMPRESS_DOC,
}


class JobStatus(str, enum.Enum):
    QUEUED = "Queued"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @classmethod
    def from_queue(cls, status: object) -> JobStatus:
        """Map a saq job status onto the public job status."""
        value = getattr(status, "value", status)
        return _QUEUE_STATUSES.get(str(value).lower(), cls.QUEUED)


_QUEUE_STATUSES = {
    "new": JobStatus.QUEUED,
    "deferred": JobStatus.QUEUED,
    "queued": JobStatus.QUEUED,
    "active": JobStatus.ACTIVE,
    "complete": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "aborted": JobStatus.FAILED,
    "aborting": JobStatus.FAILED,
}


class TierName(str, enum.Enum):
    CLOUD_TRANSFORM = "CloudTransform"
    LOCAL_TEXT_EXTRACTION = "LocalTextExtraction"
    IMAGE_TO_PDF = "ImageToPdf"
    IMAGE_COMPRESSION = "ImageCompression"
    VIDEO_TRANSCODE = "VideoTranscode"
    CLOUD_COMPRESSION = "CloudCompression"
    LOCAL_PDF_COMPRESSION = "LocalPdfCompression"
    RAW_COPY = "RawCopy"
    DIAGNOSTIC_REPORT = "DiagnosticReport"


class JobOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    compression_level: str = DEFAULT_LEVEL


class JobRequest(BaseModel):
    """Submission payload. ``type`` is checked against the dispatcher, not here.

    ``id`` is optional; resubmitting a request with the same id is a no-op.
    """

    id: str | None = None
    type: str
    input_ref: str
    original_name: str
    options: JobOptions = Field(default_factory=JobOptions)


class ConversionJob(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: JobType
    input_ref: str
    original_name: str
    options: JobOptions = Field(default_factory=JobOptions)
    status: JobStatus = JobStatus.QUEUED


class TierAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: TierName
    reason: str
    message: str


class ConversionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "completed"
    output_ref: str
    original_name: str
    type: JobType
    tier_used: TierName
    profile: dict[str, Any] | None = None
    attempts: tuple[TierAttempt, ...] = ()
    error: str | None = None


@dataclass
class JobState:
    """Public view of a queued job."""

    id: str
    status: JobStatus
    outcome: dict[str, Any] | None = None
    error: str | None = None
    download_url: str | None = None


@dataclass
class JobAccepted:
    id: str
    status: JobStatus = JobStatus.QUEUED


@dataclass
class CloudStatus:
    configured: bool
    message: str
