"""
Durable storage of the whole manifest collection in one JSON file.

Saves go through a temporary file in the target's directory followed by
``os.replace``, so a reader (or a restart after a crash) only ever sees a
complete collection.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from imgapi.models.manifest import Manifest

logger = logging.getLogger(__name__)

_collection = TypeAdapter(list[Manifest])


class ManifestStoreError(Exception):
    """The collection file exists but cannot be read as a manifest list."""


class ManifestStore:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Manifest]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            logger.info("No manifest collection found, starting empty", extra={"path": str(self._path)})
            return []
        except OSError as exc:
            raise ManifestStoreError(f"Cannot read {self._path}: {exc}") from exc

        try:
            manifests = _collection.validate_json(raw)
        except ValidationError as exc:
            raise ManifestStoreError(f"Malformed manifest collection in {self._path}") from exc

        logger.info(
            "Manifest collection loaded",
            extra={"path": str(self._path), "count": len(manifests)},
        )
        return manifests

    def save(self, manifests: list[Manifest]) -> None:
        payload = _collection.dump_json(manifests)
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            mode="wb",
            delete=False,
            dir=str(directory),
            prefix="." + self._path.name + ".",
            suffix=".tmp",
        ) as handle:
            temp_path = Path(handle.name)
            try:
                handle.write(payload)
                handle.write(b"\n")
                handle.flush()
                os.fsync(handle.fileno())
            except OSError:
                handle.close()
                temp_path.unlink(missing_ok=True)
                raise

        try:
            os.replace(temp_path, self._path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        logger.debug("Manifest collection saved", extra={"path": str(self._path), "count": len(manifests)})
