from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from saq import Queue

from docpipe.config.base import get_settings
from docpipe.domain.conversions.context import ConversionContext
from docpipe.domain.conversions.queue import ConversionQueue

if TYPE_CHECKING:
    from litestar import Litestar

logger = structlog.get_logger()


async def on_startup(app: Litestar) -> None:
    """Build the conversion context and connect the submission queue."""
    settings = get_settings()
    conversion = ConversionContext.create(settings)
    queue = Queue.from_url(settings.redis.URL, name=settings.saq.QUEUE_NAME)
    await queue.connect()
    conversion.queue = ConversionQueue(queue, conversion.dispatcher, settings.saq)
    app.state.conversion = conversion
    logger.info("Conversion service started", queue=settings.saq.QUEUE_NAME)


async def on_shutdown(app: Litestar) -> None:
    conversion: ConversionContext | None = app.state.get("conversion")
    if conversion is None:
        return
    if conversion.queue is not None:
        await conversion.queue.queue.disconnect()
    await conversion.aclose()
