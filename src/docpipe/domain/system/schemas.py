from dataclasses import dataclass
from typing import Literal

from docpipe.__about__ import __version__ as current_version
from docpipe.config.base import get_settings

__all__ = ("SystemHealth",)

settings = get_settings()


@dataclass
class SystemHealth:
    queue_status: Literal["online", "offline"]
    cloud_configured: bool
    app: str = settings.app.NAME
    version: str = current_version
