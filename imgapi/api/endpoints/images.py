import base64
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.datastructures import QueryParams

from imgapi.core.exceptions import InvalidParameterError
from imgapi.dependencies import get_image_pool
from imgapi.models.manifest import Manifest, ManifestState
from imgapi.schemas.common import ErrorResponse
from imgapi.schemas.manifest import ManifestCreate
from imgapi.services.filters import Filter, get_filter, state_filter
from imgapi.services.image_pool import ImagePool

router = APIRouter(
    prefix="/images",
    tags=["images"],
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


def filters_from_query(query: QueryParams) -> list[Filter]:
    """Build list filters from query parameters.

    Unknown parameters are ignored; only the first value of a repeated
    parameter is used. Listings default to active images unless the caller
    asks for a state explicitly.
    """
    filters: list[Filter] = []
    explicit_state = False
    for key in query.keys():
        value = query.getlist(key)[0]
        if key == "state":
            if not value:
                continue
            explicit_state = True
        image_filter = get_filter(key, value)
        if image_filter is not None:
            filters.append(image_filter)

    if not explicit_state:
        filters.append(state_filter(ManifestState.ACTIVE.value))
    return filters


@router.get(
    "",
    response_model=list[Manifest],
    summary="List images matching the query filters",
)
async def list_images(
    request: Request,
    pool: Annotated[ImagePool, Depends(get_image_pool)],
) -> list[Manifest]:
    return await pool.list_manifests(filters_from_query(request.query_params))


@router.post(
    "",
    response_model=Manifest,
    summary="Create an unactivated image manifest",
)
async def create_image(
    payload: ManifestCreate,
    pool: Annotated[ImagePool, Depends(get_image_pool)],
) -> Manifest:
    return await pool.create(payload)


@router.get(
    "/{image_uuid}",
    response_model=Manifest,
    summary="Get an image manifest by UUID",
)
async def get_image(
    image_uuid: str,
    pool: Annotated[ImagePool, Depends(get_image_pool)],
) -> Manifest:
    return await pool.get(image_uuid)


@router.post(
    "/{image_uuid}",
    response_model=Manifest,
    summary="Perform a lifecycle action (activate/enable/disable)",
)
async def image_action(
    image_uuid: str,
    pool: Annotated[ImagePool, Depends(get_image_pool)],
    action: Annotated[str | None, Query()] = None,
) -> Manifest:
    if action == "activate":
        return await pool.activate(image_uuid)
    if action == "enable":
        return await pool.set_disabled(image_uuid, False)
    if action == "disable":
        return await pool.set_disabled(image_uuid, True)
    raise InvalidParameterError("action", action)


@router.delete(
    "/{image_uuid}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an image and its file",
)
async def delete_image(
    image_uuid: str,
    pool: Annotated[ImagePool, Depends(get_image_pool)],
) -> Response:
    await pool.delete(image_uuid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{image_uuid}/file",
    response_model=Manifest,
    summary="Upload the image file (request body is the raw file)",
)
async def add_image_file(
    image_uuid: str,
    request: Request,
    pool: Annotated[ImagePool, Depends(get_image_pool)],
    compression: Annotated[str | None, Query()] = None,
) -> Manifest:
    if not compression:
        raise InvalidParameterError("compression", compression)
    return await pool.add_file(image_uuid, compression, request.stream())


@router.get(
    "/{image_uuid}/file",
    response_class=StreamingResponse,
    summary="Download the image file",
)
async def get_image_file(
    image_uuid: str,
    pool: Annotated[ImagePool, Depends(get_image_pool)],
) -> StreamingResponse:
    handle, metadata = await pool.get_file(image_uuid)
    # Content-MD5 is base64 of the raw digest (RFC 1864); imgadm checks both headers
    headers = {
        "Content-MD5": base64.b64encode(metadata.md5sum).decode("ascii"),
        "Content-Length": str(metadata.size),
    }
    return StreamingResponse(
        pool.blobs.iter_file(handle),
        media_type="application/octet-stream",
        headers=headers,
    )
