"""Compression profiles.

Maps a named quality level to the numeric parameters each compression tier
needs. The tables are built once at import time and never mutated.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

import structlog

logger = structlog.get_logger()

DEFAULT_LEVEL = "medium"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


@dataclass(frozen=True)
class CompressionProfile:
    """Concrete transform parameters for one (media kind, level) pair.

    ``quality`` is the JPEG quality for images and documents, and the CRF
    for video.
    """

    level: str
    quality: int
    max_width: int
    max_height: int
    description: str
    bitrate: str | None = None
    audio_bitrate: str | None = None
    preset: str | None = None
    cloud_level: str | None = None

    @property
    def resolution(self) -> str:
        return f"{self.max_width}x{self.max_height}"

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


_IMAGE_PROFILES = {
    "low": CompressionProfile(
        level="low",
        quality=50,
        max_width=1280,
        max_height=720,
        description="Low quality - Smallest file size",
    ),
    "medium": CompressionProfile(
        level="medium",
        quality=75,
        max_width=1920,
        max_height=1080,
        description="Medium quality - Balanced size and quality",
    ),
    "high": CompressionProfile(
        level="high",
        quality=90,
        max_width=2560,
        max_height=1440,
        description="High quality - Best quality with some compression",
    ),
    "custom": CompressionProfile(
        level="custom",
        quality=60,
        max_width=1600,
        max_height=900,
        description="Custom quality - User defined settings",
    ),
}

_VIDEO_PROFILES = {
    "low": CompressionProfile(
        level="low",
        quality=28,
        max_width=854,
        max_height=480,
        bitrate="500k",
        audio_bitrate="96k",
        preset="fast",
        description="Low quality - Smallest file size (480p)",
    ),
    "medium": CompressionProfile(
        level="medium",
        quality=23,
        max_width=1280,
        max_height=720,
        bitrate="1000k",
        audio_bitrate="128k",
        preset="medium",
        description="Medium quality - Balanced size and quality (720p)",
    ),
    "high": CompressionProfile(
        level="high",
        quality=20,
        max_width=1920,
        max_height=1080,
        bitrate="2000k",
        audio_bitrate="192k",
        preset="slow",
        description="High quality - Best quality with compression (1080p)",
    ),
    "custom": CompressionProfile(
        level="custom",
        quality=25,
        max_width=1024,
        max_height=576,
        bitrate="750k",
        audio_bitrate="112k",
        preset="medium",
        description="Custom quality - User defined settings",
    ),
}

# Document levels name the amount of compression, not the resulting quality:
# "low" keeps the most detail.
_DOCUMENT_PROFILES = {
    "low": CompressionProfile(
        level="low",
        quality=85,
        max_width=2480,
        max_height=3508,
        cloud_level="LOW",
        description="Low compression - Best quality, larger file size",
    ),
    "medium": CompressionProfile(
        level="medium",
        quality=70,
        max_width=1654,
        max_height=2339,
        cloud_level="MEDIUM",
        description="Medium compression - Balanced quality and size",
    ),
    "high": CompressionProfile(
        level="high",
        quality=50,
        max_width=1240,
        max_height=1754,
        cloud_level="HIGH",
        description="High compression - Smallest file size, reduced quality",
    ),
}

PROFILES: Mapping[MediaKind, Mapping[str, CompressionProfile]] = MappingProxyType(
    {
        MediaKind.IMAGE: MappingProxyType(_IMAGE_PROFILES),
        MediaKind.VIDEO: MappingProxyType(_VIDEO_PROFILES),
        MediaKind.DOCUMENT: MappingProxyType(_DOCUMENT_PROFILES),
    }
)


def resolve_profile(media_kind: MediaKind | str, level: str | None) -> CompressionProfile:
    """Return the profile for ``level``, or the medium profile for unknown levels."""
    table = PROFILES[MediaKind(media_kind)]
    profile = table.get((level or DEFAULT_LEVEL).lower())
    if profile is None:
        logger.info("Unknown compression level, using default", level=level, default=DEFAULT_LEVEL)
        profile = table[DEFAULT_LEVEL]
    return profile


def compression_options() -> dict[str, dict[str, dict[str, Any]]]:
    return {
        kind.value: {level: profile.to_dict() for level, profile in table.items()}
        for kind, table in PROFILES.items()
    }
