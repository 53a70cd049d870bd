from __future__ import annotations

from typing import Literal

import structlog
from litestar import Controller, MediaType, Response, get
from litestar.di import Provide
from redis.exceptions import RedisError

from docpipe.domain.conversions.context import ConversionContext
from docpipe.domain.conversions.dependencies import provide_conversion
from docpipe.domain.system.schemas import SystemHealth

from . import urls

logger = structlog.get_logger()


class SystemController(Controller):
    tags = ["System"]
    dependencies = {"conversion": Provide(provide_conversion, sync_to_thread=False)}
    signature_namespace = {"ConversionContext": ConversionContext}

    @get(
        operation_id="SystemHealth",
        name="system:health",
        path=urls.SYSTEM_HEALTH,
        media_type=MediaType.JSON,
        cache=False,
        summary="Health Check",
        description="Execute a health check against the job queue.",
    )
    async def check_system_health(self, conversion: ConversionContext) -> Response[SystemHealth]:
        """Check queue connectivity."""
        queue_status: Literal["online", "offline"]
        try:
            await conversion.queue.queue.count("queued")
            queue_status = "online"
        except (RedisError, OSError):
            logger.warning("Queue is unreachable", exc_info=True)
            queue_status = "offline"
        health = SystemHealth(queue_status=queue_status, cloud_configured=conversion.cloud.configured)
        return Response(
            content=health,
            status_code=200 if queue_status == "online" else 503,
            media_type=MediaType.JSON,
        )
