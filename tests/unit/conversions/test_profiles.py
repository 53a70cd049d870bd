from __future__ import annotations

import pytest

from docpipe.domain.conversions.profiles import (
    PROFILES,
    CompressionProfile,
    MediaKind,
    compression_options,
    resolve_profile,
)

pytestmark = pytest.mark.anyio


@pytest.mark.parametrize(
    ("level", "quality", "resolution"),
    [("low", 50, "1280x720"), ("medium", 75, "1920x1080"), ("high", 90, "2560x1440"), ("custom", 60, "1600x900")],
)
def test_image_profiles(level: str, quality: int, resolution: str) -> None:
    profile = resolve_profile(MediaKind.IMAGE, level)
    assert profile.quality == quality
    assert profile.resolution == resolution


def test_video_profile_carries_encoder_settings() -> None:
    profile = resolve_profile("video", "low")
    assert (profile.max_width, profile.max_height) == (854, 480)
    assert profile.bitrate == "500k"
    assert profile.audio_bitrate == "96k"
    assert profile.quality == 28
    assert profile.preset == "fast"


def test_document_low_level_compresses_least() -> None:
    low = resolve_profile(MediaKind.DOCUMENT, "low")
    high = resolve_profile(MediaKind.DOCUMENT, "high")
    assert low.quality > high.quality
    assert low.max_width > high.max_width
    assert (low.cloud_level, high.cloud_level) == ("LOW", "HIGH")


@pytest.mark.parametrize("level", ["bogus", "", None, "custom"])
def test_unknown_level_falls_back_to_medium(level: str | None) -> None:
    kind = MediaKind.DOCUMENT if level == "custom" else MediaKind.IMAGE
    assert resolve_profile(kind, level) == PROFILES[kind]["medium"]


def test_level_is_case_insensitive() -> None:
    assert resolve_profile(MediaKind.VIDEO, "HIGH").level == "high"


def test_tables_are_read_only() -> None:
    with pytest.raises(TypeError):
        PROFILES[MediaKind.IMAGE]["ultra"] = PROFILES[MediaKind.IMAGE]["low"]  # type: ignore[index]


def test_profile_to_dict_drops_unset_fields() -> None:
    profile = CompressionProfile(level="x", quality=1, max_width=2, max_height=3, description="d")
    assert profile.to_dict() == {"level": "x", "quality": 1, "max_width": 2, "max_height": 3, "description": "d"}


def test_compression_options_lists_every_kind() -> None:
    options = compression_options()
    assert set(options) == {"image", "video", "document"}
    assert set(options["image"]) == {"low", "medium", "high", "custom"}
    assert set(options["document"]) == {"low", "medium", "high"}
    assert options["video"]["medium"]["bitrate"] == "1000k"
