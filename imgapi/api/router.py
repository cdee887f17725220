from fastapi import APIRouter

from imgapi.api.endpoints import images, ping

router = APIRouter()

router.include_router(ping.router)
router.include_router(images.router)
