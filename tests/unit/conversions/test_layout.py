from __future__ import annotations

import pytest

from docpipe.domain.conversions.layout import (
    TextFragment,
    flatten_document,
    flatten_page,
    group_lines,
    reconstruct_document,
    reconstruct_page,
    sort_fragments,
)

pytestmark = pytest.mark.anyio


def _texts(page) -> list[list[str]]:
    return [[fragment.text for fragment in line.fragments] for line in page.lines]


def test_reading_order() -> None:
    fragments = [
        TextFragment("B", x=50, y=10),
        TextFragment("A", x=10, y=10),
        TextFragment("C", x=0, y=20),
    ]
    page = reconstruct_page(1, fragments)
    assert _texts(page) == [["C"], ["A", "B"]]
    assert flatten_page(page) == "C\nA B"


@pytest.mark.parametrize(
    ("second_y", "expected"),
    [
        (10.05, [["first", "second"]]),
        (10.2, [["second"], ["first"]]),
        (9.95, [["first", "second"]]),
    ],
)
def test_line_tolerance_boundary(second_y: float, expected: list[list[str]]) -> None:
    fragments = [TextFragment("first", x=0, y=10.0), TextFragment("second", x=5, y=second_y)]
    page = reconstruct_page(1, fragments, tolerance=0.1)
    assert _texts(page) == expected


def test_custom_tolerance_merges_lines() -> None:
    fragments = [TextFragment("a", x=0, y=10.0), TextFragment("b", x=5, y=11.0)]
    assert len(reconstruct_page(1, fragments, tolerance=0.1).lines) == 2
    assert len(reconstruct_page(1, fragments, tolerance=2.0).lines) == 1


def test_empty_page_has_no_lines() -> None:
    page = reconstruct_page(3, [])
    assert page.number == 3
    assert page.lines == ()
    assert flatten_page(page) == ""


def test_identical_positions_keep_input_order() -> None:
    fragments = [TextFragment(text, x=1, y=1) for text in ("one", "two", "three")]
    assert [fragment.text for fragment in sort_fragments(fragments)] == ["one", "two", "three"]


def test_group_lines_emits_final_line() -> None:
    fragments = sort_fragments(
        [TextFragment("x", x=0, y=30), TextFragment("y", x=0, y=20), TextFragment("z", x=0, y=10)]
    )
    lines = group_lines(fragments)
    assert [line.text for line in lines] == ["x", "y", "z"]


def test_baseline_jitter_keeps_left_to_right_order() -> None:
    fragments = [
        TextFragment("Hello", x=10, y=100.0),
        TextFragment("world", x=60, y=100.05),
        TextFragment("again", x=110, y=99.97),
    ]
    page = reconstruct_page(1, fragments)
    assert _texts(page) == [["Hello", "world", "again"]]


def test_same_x_in_a_line_keeps_input_order() -> None:
    fragments = [TextFragment("lower", x=5, y=10.0), TextFragment("upper", x=5, y=10.05)]
    # sorted by -y first, so "upper" comes in ahead of "lower"
    assert _texts(reconstruct_page(1, fragments)) == [["upper", "lower"]]


def test_reconstruction_is_idempotent() -> None:
    fragments = [
        TextFragment("world", x=60, y=100),
        TextFragment("Hello", x=10, y=100.04),
        TextFragment("Second", x=10, y=80),
        TextFragment("line", x=70, y=80),
    ]
    first = reconstruct_page(1, fragments)
    # lay the lines back out on a grid and rebuild
    reparsed = [
        TextFragment(fragment.text, x=float(column), y=float(-row))
        for row, line in enumerate(first.lines)
        for column, fragment in enumerate(line.fragments)
    ]
    second = reconstruct_page(1, reparsed)
    assert flatten_page(first) == "Hello world\nSecond line"
    assert flatten_page(second) == flatten_page(first)


def test_reconstruct_document_numbers_pages() -> None:
    document = reconstruct_document([[TextFragment("p1", x=0, y=0)], [], [TextFragment("p3", x=0, y=0)]])
    assert [page.number for page in document.pages] == [1, 2, 3]
    assert not document.is_empty
    assert flatten_document(document) == "--- Page 1 ---\np1\n--- Page 2 ---\n--- Page 3 ---\np3"


def test_reconstruct_document_from_mapping() -> None:
    document = reconstruct_document({2: [TextFragment("b", x=0, y=0)], 1: [TextFragment("a", x=0, y=0)]})
    assert [page.number for page in document.pages] == [1, 2]
    assert [page.text for page in document.pages] == ["a", "b"]


def test_empty_document() -> None:
    document = reconstruct_document([[], []])
    assert document.is_empty
    assert len(document.pages) == 2
