from fastapi import APIRouter

from imgapi.schemas.manifest import Pong

router = APIRouter(tags=["ping"])


@router.get("/ping", response_model=Pong, summary="imgapi liveness probe")
async def ping() -> Pong:
    return Pong()
