from __future__ import annotations

import io
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Sequence

from docx import Document as WordDocument
from docx.shared import Pt, RGBColor

if TYPE_CHECKING:
    from docpipe.domain.conversions.layout import Document
    from docpipe.domain.conversions.schemas import ConversionJob, TierAttempt

TITLE_COLOR = RGBColor(0x2E, 0x86, 0xAB)
ERROR_COLOR = RGBColor(0xC0, 0x39, 0x2B)

TROUBLESHOOTING_STEPS = (
    "Verify the cloud transform credentials are configured",
    "Check if the file is password protected",
    "Ensure the file is not corrupted",
    "Try with a different file",
    "Contact support if the issue persists",
)


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


def _save(word: WordDocument) -> bytes:
    buffer = io.BytesIO()
    word.save(buffer)
    return buffer.getvalue()


def extraction_docx(document: Document, original_name: str, method: str = "Enhanced Text Extraction") -> bytes:
    """Word document holding the reconstructed text, one paragraph per line."""
    word = WordDocument()
    title = word.add_paragraph().add_run("PDF Conversion Report")
    title.bold = True
    title.font.size = Pt(16)
    title.font.color.rgb = TITLE_COLOR

    info = word.add_paragraph()
    info.add_run(f"Original File: {original_name}").add_break()
    info.add_run(f"Conversion Method: {method}").add_break()
    info.add_run(f"Date: {_timestamp()}")

    if document.is_empty:
        word.add_paragraph("No text content found in PDF.")
    for page in document.pages:
        word.add_heading(f"Page {page.number}", level=2)
        for line in page.lines:
            paragraph = word.add_paragraph()
            for index, fragment in enumerate(line.fragments):
                run = paragraph.add_run(fragment.text if index == 0 else f" {fragment.text}")
                run.bold = fragment.bold
                run.italic = fragment.italic
                if fragment.font_size:
                    run.font.size = Pt(fragment.font_size)
    return _save(word)


def error_report_lines(job: ConversionJob, attempts: Sequence[TierAttempt]) -> list[str]:
    lines = [
        "Conversion Error Report",
        "",
        f"File: {job.original_name}",
        f"Job: {job.id} ({job.type.value})",
        f"Date: {_timestamp()}",
        "",
        "Errors:",
    ]
    lines.extend(f"- {attempt.tier.value} [{attempt.reason}]: {attempt.message}" for attempt in attempts)
    lines.extend(["", "Troubleshooting Steps:"])
    lines.extend(f"{number}. {step}" for number, step in enumerate(TROUBLESHOOTING_STEPS, start=1))
    return lines


def error_report_text(job: ConversionJob, attempts: Sequence[TierAttempt]) -> str:
    return "\n".join(error_report_lines(job, attempts)) + "\n"


def error_report_docx(job: ConversionJob, attempts: Sequence[TierAttempt]) -> bytes:
    title, _, *body = error_report_lines(job, attempts)
    word = WordDocument()
    heading = word.add_paragraph().add_run(title)
    heading.bold = True
    heading.font.size = Pt(18)
    heading.font.color.rgb = ERROR_COLOR
    for line in body:
        paragraph = word.add_paragraph()
        run = paragraph.add_run(line)
        if line.endswith(":") and not line.startswith("-"):
            run.bold = True
    return _save(word)
