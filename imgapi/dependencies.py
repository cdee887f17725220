from fastapi import Request

from imgapi.services.image_pool import ImagePool


async def get_image_pool(request: Request) -> ImagePool:
    """Dependency that returns the process-wide image pool built at startup."""
    return request.app.state.image_pool
