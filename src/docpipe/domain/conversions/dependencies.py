"""Conversion Controllers dependencies."""

from __future__ import annotations

from typing import TYPE_CHECKING

from litestar.exceptions import ServiceUnavailableException

if TYPE_CHECKING:
    from litestar.datastructures import State

    from docpipe.domain.conversions.context import ConversionContext


def provide_conversion(state: State) -> ConversionContext:
    """The process-wide conversion context built at startup."""
    conversion = state.get("conversion")
    if conversion is None or conversion.queue is None:
        raise ServiceUnavailableException(detail="Conversion service is not ready")
    return conversion
