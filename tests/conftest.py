from __future__ import annotations

from typing import TYPE_CHECKING

import fsspec
import pytest

from docpipe.config import base
from docpipe.domain.conversions.storage import ObjectStorage

if TYPE_CHECKING:
    from pathlib import Path

    from pytest import MonkeyPatch


pytestmark = pytest.mark.anyio


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(name="settings")
def fx_settings() -> base.Settings:
    return base.Settings.from_env(".env.testing")


@pytest.fixture(autouse=True)
def _patch_settings(monkeypatch: MonkeyPatch, settings: base.Settings) -> None:
    """Patch the settings."""

    def get_settings(dotenv_filename: str = ".env.testing") -> base.Settings:
        return settings

    monkeypatch.setattr(base, "get_settings", get_settings)


@pytest.fixture(name="storage")
def fx_storage(tmp_path: Path) -> ObjectStorage:
    storage = ObjectStorage(fsspec.filesystem("file"), str(tmp_path / "data"))
    storage.provision()
    return storage
