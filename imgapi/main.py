import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from imgapi.config import Settings, settings as default_settings
from imgapi.core.exceptions import register_exception_handlers
from imgapi.core.logging import configure_logging
from imgapi.core.middleware import RequestIdMiddleware
from imgapi.infra.storage.blob_store import BlobStore
from imgapi.infra.storage.manifest_store import ManifestStore, ManifestStoreError
from imgapi.services.image_pool import ImagePool

_start_time: float = 0.0


def build_image_pool(settings: Settings) -> ImagePool:
    return ImagePool(
        ManifestStore(settings.manifests_file),
        BlobStore(settings.image_dir, chunk_size=settings.download_chunk_size),
        failure_policy=settings.persist_failure_policy,
    )


def create_app(settings: Settings = default_settings) -> FastAPI:
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        global _start_time
        logger = logging.getLogger(__name__)

        logger.info(
            "Application starting",
            extra={"version": settings.app_version, "env": settings.env, "debug": settings.debug},
        )

        try:
            app.state.image_pool = build_image_pool(settings)
        except ManifestStoreError:
            logger.critical(
                "Manifest collection unreadable, refusing to start",
                exc_info=True,
                extra={"path": str(settings.manifests_file)},
            )
            raise
        logger.info(
            "Image pool ready",
            extra={
                "image_dir": str(settings.image_dir),
                "manifests_file": str(settings.manifests_file),
                "count": len(app.state.image_pool),
            },
        )

        _start_time = time.monotonic()
        logger.info("Application ready", extra={"version": settings.app_version})

        yield

        logger.info("Application shutting down")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "imgapi-compatible image registry. Stores image manifests and their "
            "files and manages the unactivated/active/disabled image lifecycle."
        ),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    from imgapi.api.router import router

    app.include_router(router)

    @app.get("/health", tags=["health"])
    async def health_check() -> JSONResponse:
        pool: ImagePool | None = getattr(app.state, "image_pool", None)
        pool_status = "healthy" if pool is not None else "unhealthy"
        storage_status = "healthy" if settings.image_dir.is_dir() else "missing"

        overall = "healthy" if pool_status == "healthy" else "unhealthy"
        uptime = int(time.monotonic() - _start_time) if _start_time else 0

        return JSONResponse(
            status_code=200 if overall == "healthy" else 503,
            content={
                "status": overall,
                "version": settings.app_version,
                "env": settings.env,
                "uptime_s": uptime,
                "checks": {
                    "image_pool": {
                        "status": pool_status,
                        "images": len(pool) if pool is not None else 0,
                    },
                    "image_dir": {"status": storage_status},
                },
            },
        )

    return app


app = create_app()
