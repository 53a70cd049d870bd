from __future__ import annotations

import mimetypes
import posixpath
import time
from typing import TYPE_CHECKING
from uuid import uuid4

import anyio
import fsspec
import structlog
from s3fs import S3FileSystem

from docpipe.lib.exceptions import StorageError

if TYPE_CHECKING:
    from fsspec import AbstractFileSystem

    from docpipe.config.base import StorageSettings

logger = structlog.get_logger()


def unique_name(suffix: str) -> str:
    """Timestamp-qualified object name; re-runs of a job never reuse one."""
    return f"{int(time.time() * 1000)}_{uuid4().hex[:8]}_{suffix}"


class ObjectStorage:
    """Input and output objects on an fsspec filesystem.

    References handed around the pipeline are full paths on that filesystem,
    e.g. ``./data/outputs/1700000000000_ab12cd34_compressed.jpg`` or
    ``bucket/outputs/...`` for S3.
    """

    def __init__(
        self,
        fs: AbstractFileSystem,
        root: str,
        *,
        input_folder: str = "uploads",
        output_folder: str = "outputs",
    ) -> None:
        self.fs = fs
        self.root = root.rstrip("/")
        self.input_dir = posixpath.join(self.root, input_folder)
        self.output_dir = posixpath.join(self.root, output_folder)

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> ObjectStorage:
        if settings.PROTOCOL == "s3":
            fs = S3FileSystem(
                endpoint_url=settings.ENDPOINT_URL,
                key=settings.ROOT_USER,
                secret=settings.ROOT_PASSWORD,
                use_ssl=settings.USE_SSL,
            )
        else:
            fs = fsspec.filesystem(settings.PROTOCOL)
        return cls(
            fs,
            settings.ROOT,
            input_folder=settings.INPUT_FOLDER,
            output_folder=settings.OUTPUT_FOLDER,
        )

    def provision(self) -> None:
        """Create the input and output locations. Safe to call repeatedly."""
        for path in (self.input_dir, self.output_dir):
            self.fs.makedirs(path, exist_ok=True)
        logger.info("Storage provisioned", input_dir=self.input_dir, output_dir=self.output_dir)

    def output_ref(self, filename: str) -> str:
        return posixpath.join(self.output_dir, posixpath.basename(filename))

    def exists(self, ref: str) -> bool:
        return self.fs.exists(ref)

    def size(self, ref: str) -> int:
        return self.fs.size(ref)

    def read_bytes(self, ref: str) -> bytes:
        try:
            with self.fs.open(ref, "rb") as handle:
                return handle.read()
        except FileNotFoundError as err:
            raise StorageError(f"Object not found: {ref}") from err

    def write_bytes(self, ref: str, content: bytes) -> str:
        with self.fs.open(ref, "wb") as handle:
            handle.write(content)
        return ref

    def save_input(self, original_name: str, content: bytes) -> str:
        ref = posixpath.join(self.input_dir, unique_name(posixpath.basename(original_name) or "upload"))
        return self.write_bytes(ref, content)

    def save_output(self, suffix: str, content: bytes) -> str:
        return self.write_bytes(posixpath.join(self.output_dir, unique_name(suffix)), content)

    def download(self, ref: str, local_path: str) -> None:
        self.fs.get(ref, local_path)

    def upload(self, local_path: str, suffix: str) -> str:
        ref = posixpath.join(self.output_dir, unique_name(suffix))
        self.fs.put(local_path, ref)
        return ref

    def copy(self, ref: str, suffix: str) -> str:
        target = posixpath.join(self.output_dir, unique_name(suffix))
        self.fs.copy(ref, target)
        return target

    def delete(self, ref: str) -> None:
        if self.fs.exists(ref):
            self.fs.rm(ref)

    @staticmethod
    def media_type(ref: str) -> str:
        mime_type, _ = mimetypes.guess_type(ref)
        return mime_type or "application/octet-stream"

    async def discard(self, ref: str) -> None:
        """Remove a consumed input. Failures are logged, never raised."""
        try:
            await anyio.to_thread.run_sync(self.delete, ref)
        except OSError:
            logger.warning("Could not remove input", input_ref=ref, exc_info=True)
        else:
            logger.debug("Input removed", input_ref=ref)
