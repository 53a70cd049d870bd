from __future__ import annotations

import io
import os
import posixpath
import subprocess
import tempfile
from typing import TYPE_CHECKING, Sequence

import anyio
import pymupdf
import pypdfium2 as pdfium
import structlog
from imageio_ffmpeg import get_ffmpeg_exe
from PIL import Image as PILImage
from PIL import ImageOps, UnidentifiedImageError

from docpipe.domain.conversions.cloud import (
    TransformFailure,
    TransformFailureReason,
    TransformParams,
    compress_pdf_params,
    export_docx_params,
)
from docpipe.domain.conversions.fallback import ReportTier, Tier
from docpipe.domain.conversions.layout import DEFAULT_LINE_TOLERANCE, reconstruct_document
from docpipe.domain.conversions.profiles import CompressionProfile, MediaKind, resolve_profile
from docpipe.domain.conversions.reports import error_report_docx, error_report_text, extraction_docx
from docpipe.domain.conversions.schemas import ConversionOutcome, JobType, TierName
from docpipe.lib.exceptions import FailureReason, ParseError, StorageError, TierError

if TYPE_CHECKING:
    from docpipe.domain.conversions.cloud import CloudTransformClient
    from docpipe.domain.conversions.parsing import PdfFragmentParser
    from docpipe.domain.conversions.schemas import ConversionJob, TierAttempt
    from docpipe.domain.conversions.storage import ObjectStorage

logger = structlog.get_logger()

_CLOUD_REASONS = {
    TransformFailureReason.UNCONFIGURED: FailureReason.SERVICE_UNAVAILABLE,
    TransformFailureReason.QUOTA_EXCEEDED: FailureReason.SERVICE_UNAVAILABLE,
    TransformFailureReason.INVALID_INPUT: FailureReason.MALFORMED_INPUT,
    TransformFailureReason.TIMEOUT: FailureReason.TIMEOUT,
    TransformFailureReason.UNKNOWN: FailureReason.SERVICE_UNAVAILABLE,
}


def _outcome(
    job: ConversionJob,
    tier: TierName,
    output_ref: str,
    profile: CompressionProfile | None = None,
) -> ConversionOutcome:
    return ConversionOutcome(
        output_ref=output_ref,
        original_name=job.original_name,
        type=job.type,
        tier_used=tier,
        profile=profile.to_dict() if profile else None,
    )


def _log_reduction(job: ConversionJob, original_size: int, compressed_size: int) -> None:
    ratio = (1 - compressed_size / original_size) * 100 if original_size else 0.0
    logger.info(
        "Compression finished",
        job_id=job.id,
        original_mb=round(original_size / (1024 * 1024), 2),
        compressed_mb=round(compressed_size / (1024 * 1024), 2),
        reduction_pct=round(ratio, 1),
    )


def _extension(original_name: str, default: str) -> str:
    _, ext = posixpath.splitext(original_name)
    return ext.lower() or default


async def _read_input(storage: ObjectStorage, job: ConversionJob) -> bytes:
    try:
        return await anyio.to_thread.run_sync(storage.read_bytes, job.input_ref)
    except StorageError as err:
        raise TierError(FailureReason.MALFORMED_INPUT, str(err)) from err


async def _cloud_transform(
    cloud: CloudTransformClient,
    job: ConversionJob,
    params: TransformParams,
    output_name: str,
    max_attempts: int,
) -> str:
    """Run a cloud transform, retrying transient failures only."""
    attempt = 0
    while True:
        attempt += 1
        outcome = await cloud.transform(job.input_ref, params, output_name)
        if not isinstance(outcome, TransformFailure):
            return outcome.asset_ref
        logger.warning(
            "Cloud transform failed",
            job_id=job.id,
            operation=params.operation,
            attempt=attempt,
            reason=outcome.reason.value,
            error=outcome.message,
        )
        if not outcome.reason.retryable or attempt >= max_attempts:
            raise TierError(_CLOUD_REASONS[outcome.reason], f"{outcome.reason.value}: {outcome.message}")


class CloudExportTier(Tier):
    """High fidelity PDF to Word export through the cloud service."""

    name = TierName.CLOUD_TRANSFORM

    def __init__(self, cloud: CloudTransformClient, *, max_attempts: int = 2, ocr_lang: str = "en-US") -> None:
        self.cloud = cloud
        self.max_attempts = max_attempts
        self.ocr_lang = ocr_lang

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        asset_ref = await _cloud_transform(
            self.cloud, job, export_docx_params(self.ocr_lang), "converted.docx", self.max_attempts
        )
        return _outcome(job, self.name, asset_ref)


class LocalTextExtractionTier(Tier):
    """Rebuild the text layout locally and write it into a Word document."""

    name = TierName.LOCAL_TEXT_EXTRACTION

    def __init__(
        self,
        parser: PdfFragmentParser,
        storage: ObjectStorage,
        *,
        tolerance: float = DEFAULT_LINE_TOLERANCE,
    ) -> None:
        self.parser = parser
        self.storage = storage
        self.tolerance = tolerance

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        try:
            pages = await anyio.to_thread.run_sync(self.parser.parse, job.input_ref)
        except (ParseError, StorageError) as err:
            raise TierError(FailureReason.MALFORMED_INPUT, str(err)) from err

        document = reconstruct_document(pages, self.tolerance)
        content = await anyio.to_thread.run_sync(extraction_docx, document, job.original_name)
        output_ref = await anyio.to_thread.run_sync(self.storage.save_output, "fallback.docx", content)
        return _outcome(job, self.name, output_ref)


def image_to_pdf(content: bytes) -> bytes:
    try:
        pil_image = PILImage.open(io.BytesIO(content)).convert("RGB")
    except (UnidentifiedImageError, OSError) as err:
        raise TierError(FailureReason.MALFORMED_INPUT, f"Unreadable image: {err}") from err

    pdf = pdfium.PdfDocument.new()
    image = pdfium.PdfImage.new(pdf)
    image.set_bitmap(pdfium.PdfBitmap.from_pil(pil_image))
    width, height = image.get_size()

    matrix = pdfium.PdfMatrix().scale(width, height)
    image.set_matrix(matrix)

    page = pdf.new_page(width, height)
    page.insert_obj(image)
    page.gen_content()

    pdf_buffer = io.BytesIO()
    pdf.save(pdf_buffer)
    return pdf_buffer.getvalue()


class ImageToPdfTier(Tier):
    name = TierName.IMAGE_TO_PDF

    def __init__(self, storage: ObjectStorage) -> None:
        self.storage = storage

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        content = await _read_input(self.storage, job)
        pdf_content = await anyio.to_thread.run_sync(image_to_pdf, content)
        output_ref = await anyio.to_thread.run_sync(self.storage.save_output, "converted.pdf", pdf_content)
        return _outcome(job, self.name, output_ref)


def compress_image(content: bytes, profile: CompressionProfile) -> bytes:
    """Re-encode as progressive JPEG, shrinking to fit inside the profile box."""
    try:
        with PILImage.open(io.BytesIO(content)) as opened:
            image = ImageOps.exif_transpose(opened)
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            # thumbnail() keeps the aspect ratio and never enlarges
            image.thumbnail((profile.max_width, profile.max_height))
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=profile.quality, optimize=True, progressive=True)
    except (UnidentifiedImageError, OSError) as err:
        raise TierError(FailureReason.MALFORMED_INPUT, f"Unreadable image: {err}") from err
    return buffer.getvalue()


class ImageCompressionTier(Tier):
    name = TierName.IMAGE_COMPRESSION

    def __init__(self, storage: ObjectStorage) -> None:
        self.storage = storage

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        profile = resolve_profile(MediaKind.IMAGE, job.options.compression_level)
        logger.info("Compressing image", job_id=job.id, profile=profile.description)
        content = await _read_input(self.storage, job)
        compressed = await anyio.to_thread.run_sync(compress_image, content, profile)
        output_ref = await anyio.to_thread.run_sync(self.storage.save_output, "compressed.jpg", compressed)
        _log_reduction(job, len(content), len(compressed))
        return _outcome(job, self.name, output_ref, profile)


def ffmpeg_command(ffmpeg: str, source: str, target: str, profile: CompressionProfile) -> list[str]:
    scale = (
        f"scale={profile.max_width}:{profile.max_height}:force_original_aspect_ratio=decrease,"
        "scale=trunc(iw/2)*2:trunc(ih/2)*2"
    )
    command = [ffmpeg, "-y", "-i", source, "-c:v", "libx264", "-c:a", "aac", "-vf", scale]
    command += ["-preset", profile.preset or "medium", "-crf", str(profile.quality)]
    if profile.bitrate:
        # constrained CRF: quality target with a bitrate ceiling
        command += ["-maxrate", profile.bitrate, "-bufsize", profile.bitrate]
    if profile.audio_bitrate:
        command += ["-b:a", profile.audio_bitrate]
    command += ["-movflags", "+faststart", target]
    return command


class VideoTranscodeTier(Tier):
    name = TierName.VIDEO_TRANSCODE

    def __init__(self, storage: ObjectStorage, *, timeout: float = 1200.0) -> None:
        self.storage = storage
        self.timeout = timeout

    def _transcode(self, job: ConversionJob, profile: CompressionProfile) -> tuple[str, int, int]:
        try:
            ffmpeg = get_ffmpeg_exe()
        except RuntimeError as err:
            raise TierError(FailureReason.SERVICE_UNAVAILABLE, f"FFmpeg not found: {err}") from err

        with tempfile.TemporaryDirectory() as temp_dir:
            source = os.path.join(temp_dir, f"input{_extension(job.original_name, '.mp4')}")
            target = os.path.join(temp_dir, "compressed.mp4")
            try:
                self.storage.download(job.input_ref, source)
            except FileNotFoundError as err:
                raise TierError(FailureReason.MALFORMED_INPUT, f"Input not found: {job.input_ref}") from err

            command = ffmpeg_command(ffmpeg, source, target, profile)
            logger.info("Running ffmpeg", job_id=job.id, command=" ".join(command))
            try:
                proc = subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=self.timeout)
            except subprocess.TimeoutExpired as err:
                raise TierError(FailureReason.TIMEOUT, f"FFmpeg timed out after {self.timeout}s") from err
            except OSError as err:
                raise TierError(FailureReason.SERVICE_UNAVAILABLE, f"FFmpeg could not start: {err}") from err
            if proc.returncode != 0:
                stderr = proc.stderr.decode("utf-8", "ignore").strip().splitlines()
                raise TierError(
                    FailureReason.MALFORMED_INPUT,
                    f"FFmpeg exited with {proc.returncode}: {stderr[-1] if stderr else 'no output'}",
                )
            return self.storage.upload(target, "compressed.mp4"), os.path.getsize(source), os.path.getsize(target)

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        profile = resolve_profile(MediaKind.VIDEO, job.options.compression_level)
        logger.info("Compressing video", job_id=job.id, profile=profile.description)
        output_ref, original_size, compressed_size = await anyio.to_thread.run_sync(self._transcode, job, profile)
        _log_reduction(job, original_size, compressed_size)
        return _outcome(job, self.name, output_ref, profile)


class CloudCompressionTier(Tier):
    name = TierName.CLOUD_COMPRESSION

    def __init__(self, cloud: CloudTransformClient, *, max_attempts: int = 2) -> None:
        self.cloud = cloud
        self.max_attempts = max_attempts

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        profile = resolve_profile(MediaKind.DOCUMENT, job.options.compression_level)
        asset_ref = await _cloud_transform(
            self.cloud,
            job,
            compress_pdf_params(profile.cloud_level or "MEDIUM"),
            "compressed.pdf",
            self.max_attempts,
        )
        return _outcome(job, self.name, asset_ref, profile)


def _shrink_image(content: bytes, profile: CompressionProfile) -> bytes | None:
    try:
        with PILImage.open(io.BytesIO(content)) as opened:
            image = opened.convert("RGB")
    except (UnidentifiedImageError, OSError):
        return None
    image.thumbnail((profile.max_width, profile.max_height))
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=profile.quality, optimize=True)
    return buffer.getvalue()


def compress_pdf(content: bytes, profile: CompressionProfile) -> bytes:
    """Recompress embedded images and rewrite the PDF with stream compression."""
    try:
        doc = pymupdf.open(stream=content, filetype="pdf")
    except (pymupdf.FileDataError, RuntimeError, ValueError) as err:
        raise TierError(FailureReason.MALFORMED_INPUT, f"Unreadable PDF: {err}") from err

    with doc:
        if doc.needs_pass:
            raise TierError(FailureReason.MALFORMED_INPUT, "PDF is password protected")
        if doc.page_count == 0:
            raise TierError(FailureReason.MALFORMED_INPUT, "PDF has no pages")
        seen: set[int] = set()
        for page in doc:
            for image_info in page.get_images(full=True):
                xref, smask = image_info[0], image_info[1]
                # images with a soft mask lose their transparency as JPEG
                if smask or xref in seen:
                    continue
                seen.add(xref)
                extracted = doc.extract_image(xref)
                if not extracted:
                    continue
                replacement = _shrink_image(extracted["image"], profile)
                if replacement is not None and len(replacement) < len(extracted["image"]):
                    page.replace_image(xref, stream=replacement)
        return doc.tobytes(garbage=4, deflate=True, clean=True)


class LocalPdfCompressionTier(Tier):
    name = TierName.LOCAL_PDF_COMPRESSION

    def __init__(self, storage: ObjectStorage) -> None:
        self.storage = storage

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        profile = resolve_profile(MediaKind.DOCUMENT, job.options.compression_level)
        content = await _read_input(self.storage, job)
        compressed = await anyio.to_thread.run_sync(compress_pdf, content, profile)
        output_ref = await anyio.to_thread.run_sync(self.storage.save_output, "compressed.pdf", compressed)
        _log_reduction(job, len(content), len(compressed))
        return _outcome(job, self.name, output_ref, profile)


class RawCopyTier(Tier):
    """Hand the input back unchanged when no transform is possible."""

    name = TierName.RAW_COPY

    def __init__(self, storage: ObjectStorage, *, default_extension: str = "") -> None:
        self.storage = storage
        self.default_extension = default_extension

    async def convert(self, job: ConversionJob) -> ConversionOutcome:
        suffix = f"copy{_extension(job.original_name, self.default_extension)}"
        try:
            output_ref = await anyio.to_thread.run_sync(self.storage.copy, job.input_ref, suffix)
        except FileNotFoundError as err:
            raise TierError(FailureReason.MALFORMED_INPUT, f"Input not found: {job.input_ref}") from err
        return _outcome(job, self.name, output_ref)


class DiagnosticReportTier(ReportTier):
    """Writes the error report. Word documents for text conversions, plain text otherwise."""

    name = TierName.DIAGNOSTIC_REPORT

    def __init__(self, storage: ObjectStorage) -> None:
        self.storage = storage

    async def report(self, job: ConversionJob, attempts: Sequence[TierAttempt]) -> ConversionOutcome:
        if job.type is JobType.CONVERT_DOC_TO_TEXT:
            content = await anyio.to_thread.run_sync(error_report_docx, job, attempts)
            suffix = "error_report.docx"
        else:
            content = error_report_text(job, attempts).encode("utf-8")
            suffix = "error_report.txt"
        output_ref = await anyio.to_thread.run_sync(self.storage.save_output, suffix, content)
        return ConversionOutcome(
            output_ref=output_ref,
            original_name=job.original_name,
            type=job.type,
            tier_used=self.name,
            attempts=tuple(attempts),
            error="; ".join(attempt.message for attempt in attempts) or "Conversion failed",
        )
