from __future__ import annotations

from typing import TYPE_CHECKING

import pymupdf
import structlog

from docpipe.domain.conversions.layout import TextFragment
from docpipe.lib.exceptions import ParseError

if TYPE_CHECKING:
    from docpipe.domain.conversions.storage import ObjectStorage

logger = structlog.get_logger()

# PyMuPDF span flag bits
_ITALIC = 1 << 1
_BOLD = 1 << 4

PerPageFragments = list[list[TextFragment]]


def page_fragments(page: pymupdf.Page) -> list[TextFragment]:
    """Positioned text runs of one page, in content-stream order.

    PyMuPDF measures ``y`` downwards from the top edge; fragments are flipped
    into the y-up convention the layout module expects.
    """
    height = page.rect.height
    fragments: list[TextFragment] = []
    for block in page.get_text("dict")["blocks"]:
        if block.get("type") != 0:
            continue
        for line in block["lines"]:
            for span in line["spans"]:
                text = span["text"]
                if not text.strip():
                    continue
                x, y = span["origin"]
                flags = span.get("flags", 0)
                fragments.append(
                    TextFragment(
                        text=text.strip(),
                        x=round(x, 2),
                        y=round(height - y, 2),
                        font_size=span.get("size", 12.0),
                        font_family=span.get("font", ""),
                        bold=bool(flags & _BOLD),
                        italic=bool(flags & _ITALIC),
                    )
                )
    return fragments


def parse_pdf_bytes(content: bytes) -> PerPageFragments:
    try:
        with pymupdf.open(stream=content, filetype="pdf") as doc:
            if doc.needs_pass:
                raise ParseError("PDF is password protected")
            return [page_fragments(page) for page in doc]
    except (pymupdf.FileDataError, RuntimeError, ValueError) as err:
        raise ParseError(f"Unable to parse PDF: {err}") from err


class PdfFragmentParser:
    """Document parsing collaborator backed by PyMuPDF."""

    def __init__(self, storage: ObjectStorage) -> None:
        self.storage = storage

    def parse(self, input_ref: str) -> PerPageFragments:
        pages = parse_pdf_bytes(self.storage.read_bytes(input_ref))
        logger.info(
            "Parsed document",
            input_ref=input_ref,
            pages=len(pages),
            fragments=sum(len(page) for page in pages),
        )
        return pages
