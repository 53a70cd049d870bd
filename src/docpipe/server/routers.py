"""Application Modules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from docpipe.domain.conversions.controllers import ConversionController
from docpipe.domain.system.controllers import SystemController

if TYPE_CHECKING:
    from litestar.types import ControllerRouterHandler

route_handlers: list[ControllerRouterHandler] = [
    ConversionController,
    SystemController,
]
