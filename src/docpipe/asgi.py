# pylint: disable=[invalid-name,import-outside-toplevel]
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar import Litestar


def create_app() -> Litestar:
    """Create ASGI application."""

    from litestar import Litestar

    from docpipe.config import app as config
    from docpipe.config.base import get_settings
    from docpipe.server import lifespan, openapi, plugins, routers

    settings = get_settings()

    return Litestar(
        cors_config=config.cors,
        compression_config=config.compression,
        debug=settings.app.DEBUG,
        openapi_config=openapi.config,
        route_handlers=routers.route_handlers,
        plugins=[
            plugins.structlog,
            plugins.saq,
            plugins.granian,
        ],
        on_startup=[lifespan.on_startup],
        on_shutdown=[lifespan.on_shutdown],
        # multipart overhead on top of the upload limit
        request_max_body_size=(settings.app.MAX_UPLOAD_MB + 1) * 1024 * 1024,
    )


app = create_app()
