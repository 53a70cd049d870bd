"""Reading-order reconstruction for positioned text.

PDF parsers hand back text runs in content-stream order, which rarely matches
the order a reader sees them. This module sorts the runs of each page
top-to-bottom and left-to-right and groups them into visual lines. The
coordinate system is y-up: larger ``y`` is nearer the top of the page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

DEFAULT_LINE_TOLERANCE = 0.1


@dataclass(frozen=True)
class TextFragment:
    text: str
    x: float
    y: float
    font_size: float = 12.0
    font_family: str = ""
    bold: bool = False
    italic: bool = False


@dataclass(frozen=True)
class Line:
    fragments: tuple[TextFragment, ...]

    @property
    def text(self) -> str:
        return " ".join(fragment.text for fragment in self.fragments)


@dataclass(frozen=True)
class Page:
    number: int
    lines: tuple[Line, ...] = field(default_factory=tuple)

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)


@dataclass(frozen=True)
class Document:
    pages: tuple[Page, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not any(page.lines for page in self.pages)


def sort_fragments(fragments: Iterable[TextFragment]) -> list[TextFragment]:
    # sorted() is stable, so fragments sharing (x, y) keep their input order.
    return sorted(fragments, key=lambda fragment: (-fragment.y, fragment.x))


def group_lines(
    fragments: Sequence[TextFragment],
    tolerance: float = DEFAULT_LINE_TOLERANCE,
) -> list[Line]:
    """Group already sorted fragments into lines.

    A new line starts whenever a fragment's ``y`` differs from the previous
    fragment's ``y`` by more than ``tolerance``. Each line is then ordered
    left to right; fragments with equal ``x`` keep their incoming order.
    """
    lines: list[Line] = []
    current: list[TextFragment] = []
    last_y: float | None = None
    for fragment in fragments:
        if last_y is not None and abs(fragment.y - last_y) > tolerance:
            lines.append(_left_to_right(current))
            current = []
        current.append(fragment)
        last_y = fragment.y
    if current:
        lines.append(_left_to_right(current))
    return lines


def _left_to_right(fragments: list[TextFragment]) -> Line:
    return Line(tuple(sorted(fragments, key=lambda fragment: fragment.x)))


def reconstruct_page(
    number: int,
    fragments: Iterable[TextFragment],
    tolerance: float = DEFAULT_LINE_TOLERANCE,
) -> Page:
    return Page(number=number, lines=tuple(group_lines(sort_fragments(fragments), tolerance)))


def reconstruct_document(
    pages: Sequence[Iterable[TextFragment]] | Mapping[int, Iterable[TextFragment]],
    tolerance: float = DEFAULT_LINE_TOLERANCE,
) -> Document:
    """Build a Document from per-page fragment collections.

    ``pages`` is either a sequence (page numbers start at 1) or a mapping of
    page number to fragments.
    """
    if isinstance(pages, Mapping):
        numbered = sorted(pages.items())
    else:
        numbered = list(enumerate(pages, start=1))
    return Document(
        pages=tuple(reconstruct_page(number, fragments, tolerance) for number, fragments in numbered)
    )


def flatten_page(page: Page) -> str:
    return page.text


def flatten_document(document: Document) -> str:
    """Render a Document as plain text, one marker line per page."""
    blocks = []
    for page in document.pages:
        header = f"--- Page {page.number} ---"
        blocks.append(f"{header}\n{page.text}" if page.lines else header)
    return "\n".join(blocks)
