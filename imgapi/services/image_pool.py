"""
The image pool: authoritative registry of image manifests.

Holds every manifest in memory behind a single lock, enforces the image
lifecycle and persists the whole collection after each mutation before the
operation returns. Blob bytes are streamed outside the lock; only attaching
the resulting file record to the manifest is serialized.

Lifecycle:

    unactivated -> active       activate, requires an uploaded file
    active <-> disabled         enable / disable
    unactivated -> disabled     disable

Nothing ever returns to ``unactivated``.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import BinaryIO

from starlette.concurrency import run_in_threadpool

from imgapi.config import PersistFailurePolicy
from imgapi.core.exceptions import (
    ImageAlreadyActivatedError,
    InternalError,
    InvalidParameterError,
    NoActivationNoFileError,
    ResourceNotFoundError,
    ServiceUnavailableError,
    UploadError,
)
from imgapi.infra.storage.blob_store import BlobIngestError, BlobStore
from imgapi.infra.storage.manifest_store import ManifestStore
from imgapi.models.manifest import (
    FILE_EXTENSIONS,
    MANIFEST_VERSION,
    ImageFile,
    Manifest,
    ManifestState,
)
from imgapi.schemas.manifest import ManifestCreate
from imgapi.services.filters import Filter, match_manifest

logger = logging.getLogger(__name__)


@dataclass
class FileMetadata:
    md5sum: bytes
    size: int


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class ImagePool:
    def __init__(
        self,
        store: ManifestStore,
        blobs: BlobStore,
        failure_policy: PersistFailurePolicy = PersistFailurePolicy.KEEP,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._failure_policy = failure_policy
        self._lock = asyncio.Lock()
        self._uploads: set[str] = set()
        self._manifests: list[Manifest] = store.load()

    @property
    def blobs(self) -> BlobStore:
        return self._blobs

    def __len__(self) -> int:
        return len(self._manifests)

    # --- Reads ---

    async def get(self, image_uuid: str) -> Manifest:
        async with self._lock:
            manifest = self._find(image_uuid)
        logger.debug("Manifest fetched", extra={"uuid": image_uuid})
        return manifest

    async def list_manifests(self, filters: list[Filter]) -> list[Manifest]:
        async with self._lock:
            manifests = [m for m in self._manifests if match_manifest(filters, m)]
        logger.debug(
            "Manifests listed",
            extra={"filter_count": len(filters), "count": len(manifests)},
        )
        return manifests

    async def get_file(self, image_uuid: str) -> tuple[BinaryIO, FileMetadata]:
        async with self._lock:
            manifest = self._find(image_uuid)
        if not manifest.files:
            raise ResourceNotFoundError(image_uuid, f"Image {image_uuid} has no file")

        image_file = manifest.files[0]
        try:
            handle, md5sum = await run_in_threadpool(
                self._blobs.open, image_uuid, image_file.compression
            )
        except (OSError, KeyError) as exc:
            # KeyError: the stored compression has no known file extension
            logger.error(
                "Image file unreadable",
                extra={"uuid": image_uuid, "compression": image_file.compression},
            )
            raise InternalError(f"File for image {image_uuid} is unavailable") from exc

        logger.debug("Image file opened", extra={"uuid": image_uuid, "size": image_file.size})
        # Recorded size, not a stat of the file: a truncated blob shows up at the consumer
        return handle, FileMetadata(md5sum=md5sum, size=image_file.size)

    # --- Mutations ---

    async def create(self, draft: ManifestCreate) -> Manifest:
        manifest = Manifest(
            **draft.model_dump(),
            v=MANIFEST_VERSION,
            uuid=str(uuid.uuid4()),
            state=ManifestState.UNACTIVATED,
            disabled=True,
            public=True,
            published_at="",
            files=[],
        )
        async with self._lock:
            await self._commit([*self._manifests, manifest])

        logger.info(
            "Manifest created",
            extra={"uuid": manifest.uuid, "image_name": manifest.name, "owner": manifest.owner},
        )
        return manifest

    async def add_file(
        self,
        image_uuid: str,
        compression: str,
        chunks: AsyncIterable[bytes],
    ) -> Manifest:
        async with self._lock:
            manifest = self._find(image_uuid)
            # One upload per image: only an unactivated image without a file accepts one
            if manifest.state != ManifestState.UNACTIVATED or manifest.files:
                raise ImageAlreadyActivatedError(image_uuid, manifest.state.value)
            if compression not in FILE_EXTENSIONS:
                raise InvalidParameterError("compression", compression)
            if image_uuid in self._uploads:
                raise UploadError(f"An upload for image {image_uuid} is already in progress")
            self._uploads.add(image_uuid)

        try:
            try:
                result = await self._blobs.ingest(image_uuid, compression, chunks)
            except BlobIngestError as exc:
                logger.warning("Image upload failed", extra={"uuid": image_uuid, "reason": str(exc)})
                raise UploadError(details={"uuid": image_uuid}) from exc
            except OSError as exc:
                logger.error("Cannot store image file", extra={"uuid": image_uuid})
                raise InternalError(f"Cannot store file for image {image_uuid}") from exc

            image_file = ImageFile(sha1=result.sha1, size=result.size, compression=compression)

            async with self._lock:
                current = self._find(image_uuid)
                # The state may have moved (e.g. disabled) while bytes were streaming
                if current.state != ManifestState.UNACTIVATED or current.files:
                    raise ImageAlreadyActivatedError(image_uuid, current.state.value)
                updated = current.model_copy(update={"files": [image_file]})
                await self._commit(self._replaced(updated))
        finally:
            self._uploads.discard(image_uuid)

        logger.info(
            "Image file added",
            extra={
                "uuid": image_uuid,
                "sha1": image_file.sha1,
                "size": image_file.size,
                "compression": compression,
            },
        )
        return updated

    async def activate(self, image_uuid: str) -> Manifest:
        async with self._lock:
            manifest = self._find(image_uuid)
            if not manifest.files:
                logger.warning("Activation without file rejected", extra={"uuid": image_uuid})
                raise NoActivationNoFileError(image_uuid)
            if manifest.state != ManifestState.UNACTIVATED:
                logger.warning(
                    "Repeated activation rejected",
                    extra={"uuid": image_uuid, "current_state": manifest.state.value},
                )
                raise ImageAlreadyActivatedError(image_uuid, manifest.state.value)

            updated = manifest.model_copy(
                update={
                    "state": ManifestState.ACTIVE,
                    "disabled": False,
                    "published_at": _timestamp(),
                }
            )
            await self._commit(self._replaced(updated))

        logger.info(
            "State transition complete",
            extra={"uuid": image_uuid, "from_state": "unactivated", "new_state": "active"},
        )
        return updated

    async def set_disabled(self, image_uuid: str, disabled: bool) -> Manifest:
        async with self._lock:
            manifest = self._find(image_uuid)
            if not disabled and manifest.state == ManifestState.UNACTIVATED:
                # An image has to be activated before it can be enabled
                logger.warning("Enable of unactivated image rejected", extra={"uuid": image_uuid})
                raise ServiceUnavailableError(
                    f"Image {image_uuid} must be activated before it can be enabled",
                    details={"uuid": image_uuid, "state": manifest.state.value},
                )

            new_state = ManifestState.DISABLED if disabled else ManifestState.ACTIVE
            updated = manifest.model_copy(update={"state": new_state, "disabled": disabled})
            await self._commit(self._replaced(updated))

        logger.info(
            "State transition complete",
            extra={
                "uuid": image_uuid,
                "from_state": manifest.state.value,
                "new_state": new_state.value,
            },
        )
        return updated

    async def delete(self, image_uuid: str) -> None:
        async with self._lock:
            self._find(image_uuid)
            await self._commit([m for m in self._manifests if m.uuid != image_uuid])

        # Metadata is gone; leftover files after a crash here are unreferenced
        try:
            removed = await run_in_threadpool(self._blobs.remove, image_uuid)
        except OSError:
            logger.error("Failed to remove image files", exc_info=True, extra={"uuid": image_uuid})
            removed = []

        logger.info(
            "Manifest deleted",
            extra={"uuid": image_uuid, "files_removed": [p.name for p in removed]},
        )

    # --- Internals (callers hold the lock) ---

    def _find(self, image_uuid: str) -> Manifest:
        for manifest in self._manifests:
            if manifest.uuid == image_uuid:
                return manifest
        raise ResourceNotFoundError(image_uuid)

    def _replaced(self, updated: Manifest) -> list[Manifest]:
        return [updated if m.uuid == updated.uuid else m for m in self._manifests]

    async def _commit(self, manifests: list[Manifest]) -> None:
        try:
            await run_in_threadpool(self._store.save, manifests)
        except OSError as exc:
            if self._failure_policy is PersistFailurePolicy.KEEP:
                self._manifests = manifests
            logger.error(
                "Failed to persist manifest collection",
                exc_info=True,
                extra={
                    "path": str(self._store.path),
                    "policy": self._failure_policy.value,
                },
            )
            raise InternalError("Failed to persist manifests") from exc
        self._manifests = manifests
