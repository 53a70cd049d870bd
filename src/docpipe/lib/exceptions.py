from __future__ import annotations

from enum import Enum


class FailureReason(str, Enum):
    """Why a single tier attempt failed."""

    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    MALFORMED_INPUT = "MalformedInput"
    TIMEOUT = "Timeout"


class DocpipeError(Exception):
    """Base exception for the conversion pipeline."""


class ValidationError(DocpipeError):
    """The job itself is invalid. Never retried."""


class UnknownJobType(ValidationError):
    def __init__(self, job_type: object) -> None:
        self.job_type = job_type
        super().__init__(f"Unknown job type: {job_type}")


class ParseError(DocpipeError):
    """The document parser could not read the input."""


class StorageError(DocpipeError):
    pass


class TierError(DocpipeError):
    """Raised by a tier to hand control to the next one in its chain."""

    def __init__(self, reason: FailureReason, message: str) -> None:
        self.reason = reason
        self.message = message
        super().__init__(message)


class ReportWriteError(DocpipeError):
    """The diagnostic report could not be written. Fatal for the job."""
