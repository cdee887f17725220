"""
Shared fixtures for all tests.

Every test gets its own temporary image directory and manifest collection
file, so pools never share state on disk.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from imgapi.dependencies import get_image_pool
from imgapi.infra.storage.blob_store import BlobStore
from imgapi.infra.storage.manifest_store import ManifestStore
from imgapi.models.manifest import Manifest
from imgapi.schemas.manifest import ManifestCreate
from imgapi.services.image_pool import ImagePool


async def byte_stream(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


async def make_active_image(pool: ImagePool, content: bytes = b"hello", **fields: str) -> Manifest:
    manifest = await pool.create(ManifestCreate(**fields))
    await pool.add_file(manifest.uuid, "none", byte_stream(content))
    return await pool.activate(manifest.uuid)


# --- Fixtures ---


@pytest.fixture
def image_dir(tmp_path: Path) -> Path:
    return tmp_path / "images"


@pytest.fixture
def manifests_file(tmp_path: Path) -> Path:
    return tmp_path / "manifests.json"


@pytest.fixture
def store(manifests_file: Path) -> ManifestStore:
    return ManifestStore(manifests_file)


@pytest.fixture
def blobs(image_dir: Path) -> BlobStore:
    # Tiny chunks so downloads exercise the chunked reader
    return BlobStore(image_dir, chunk_size=4)


@pytest.fixture
def pool(store: ManifestStore, blobs: BlobStore) -> ImagePool:
    return ImagePool(store, blobs)


@pytest_asyncio.fixture(scope="function")
async def client(pool: ImagePool) -> AsyncGenerator[AsyncClient, None]:
    """Return an HTTPX AsyncClient wired to the test app and a per-test pool."""
    from imgapi.main import create_app

    test_app = create_app()

    # No type annotations to avoid FastAPI inspection
    async def override_get_image_pool():  # type: ignore[no-untyped-def]
        return pool

    test_app.dependency_overrides[get_image_pool] = override_get_image_pool
    test_app.state.image_pool = pool

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac

    test_app.dependency_overrides.clear()
