from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pytest

from docpipe.domain.conversions.storage import ObjectStorage, unique_name
from docpipe.lib.exceptions import StorageError

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.anyio


def test_unique_name() -> None:
    first, second = unique_name("compressed.jpg"), unique_name("compressed.jpg")
    assert re.fullmatch(r"\d{13}_[0-9a-f]{8}_compressed\.jpg", first)
    assert first != second


def test_input_and_output_locations(storage: ObjectStorage) -> None:
    input_ref = storage.save_input("../../etc/passwd", b"x")
    assert input_ref.startswith(storage.input_dir + "/")
    assert input_ref.endswith("_passwd")

    output_ref = storage.save_output("out.txt", b"y")
    assert output_ref.startswith(storage.output_dir + "/")
    assert storage.output_ref(output_ref.rsplit("/", 1)[-1]) == output_ref
    assert storage.read_bytes(output_ref) == b"y"
    assert storage.size(output_ref) == 1


def test_copy_and_upload(storage: ObjectStorage, tmp_path: Path) -> None:
    source = storage.save_input("clip.mp4", b"frames")
    copied = storage.copy(source, "copy.mp4")
    assert storage.read_bytes(copied) == b"frames"

    local = tmp_path / "local.bin"
    local.write_bytes(b"local")
    uploaded = storage.upload(str(local), "compressed.mp4")
    assert storage.read_bytes(uploaded) == b"local"

    target = tmp_path / "downloaded.bin"
    storage.download(uploaded, str(target))
    assert target.read_bytes() == b"local"


def test_read_missing_object(storage: ObjectStorage) -> None:
    with pytest.raises(StorageError, match="Object not found"):
        storage.read_bytes(storage.output_ref("missing.txt"))


def test_provision_is_repeatable(storage: ObjectStorage) -> None:
    storage.provision()
    assert storage.exists(storage.input_dir)
    assert storage.exists(storage.output_dir)


async def test_discard(storage: ObjectStorage) -> None:
    ref = storage.save_input("a.txt", b"a")
    await storage.discard(ref)
    assert not storage.exists(ref)
    # already gone
    await storage.discard(ref)


@pytest.mark.parametrize(
    ("name", "media_type"),
    [("a.pdf", "application/pdf"), ("b.jpg", "image/jpeg"), ("c.unknownext", "application/octet-stream")],
)
def test_media_type(name: str, media_type: str) -> None:
    assert ObjectStorage.media_type(name) == media_type
