"""
Image files on the local filesystem.

Each uploaded image is stored as ``{uuid}.{ext}`` next to ``{uuid}.md5``,
which holds the raw MD5 digest bytes of the content. The extension is derived
from the compression type recorded in the manifest.
"""

import hashlib
import logging
from collections.abc import AsyncIterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from starlette.concurrency import run_in_threadpool

from imgapi.models.manifest import FILE_EXTENSIONS

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    sha1: str
    md5: bytes
    size: int


class BlobIngestError(Exception):
    """Reading the incoming stream or writing the content file failed mid-copy."""


class BlobStore:
    def __init__(self, image_dir: Path, chunk_size: int = 64 * 1024) -> None:
        self._image_dir = Path(image_dir)
        self._chunk_size = chunk_size

    @property
    def image_dir(self) -> Path:
        return self._image_dir

    def content_path(self, image_uuid: str, compression: str) -> Path:
        return self._image_dir / f"{image_uuid}.{FILE_EXTENSIONS[compression]}"

    def checksum_path(self, image_uuid: str) -> Path:
        return self._image_dir / f"{image_uuid}.md5"

    async def ingest(
        self,
        image_uuid: str,
        compression: str,
        chunks: AsyncIterable[bytes],
    ) -> IngestResult:
        """Write *chunks* to the content file, hashing them on the way through.

        The stream is consumed exactly once; every chunk feeds the SHA-1
        content digest, the MD5 transfer checksum and the file write.
        """
        content_path = self.content_path(image_uuid, compression)
        await run_in_threadpool(self._image_dir.mkdir, parents=True, exist_ok=True)
        handle = await run_in_threadpool(open, content_path, "wb")

        sha1 = hashlib.sha1()
        md5 = hashlib.md5()
        size = 0
        try:
            async for chunk in chunks:
                if not chunk:
                    continue
                sha1.update(chunk)
                md5.update(chunk)
                await run_in_threadpool(handle.write, chunk)
                size += len(chunk)
        except Exception as exc:
            raise BlobIngestError(f"Upload of {image_uuid} aborted after {size} bytes") from exc
        finally:
            await run_in_threadpool(handle.close)

        md5sum = md5.digest()
        await run_in_threadpool(self.checksum_path(image_uuid).write_bytes, md5sum)

        logger.info(
            "Image file stored",
            extra={"uuid": image_uuid, "path": str(content_path), "size": size},
        )
        return IngestResult(sha1=sha1.hexdigest(), md5=md5sum, size=size)

    def open(self, image_uuid: str, compression: str) -> tuple[BinaryIO, bytes]:
        """Return an open handle on the content file and its stored MD5 digest."""
        md5sum = self.checksum_path(image_uuid).read_bytes()
        handle = self.content_path(image_uuid, compression).open("rb")
        return handle, md5sum

    def iter_file(self, handle: BinaryIO) -> Iterator[bytes]:
        try:
            while chunk := handle.read(self._chunk_size):
                yield chunk
        finally:
            handle.close()

    def remove(self, image_uuid: str) -> list[Path]:
        """Delete every file belonging to *image_uuid*; return what was removed."""
        removed: list[Path] = []
        for path in self._image_dir.glob(f"{image_uuid}.*"):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            removed.append(path)
        return removed
