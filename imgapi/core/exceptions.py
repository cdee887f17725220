import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "InternalError"
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None, details: object = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ResourceNotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "ResourceNotFound"
    default_message = "Not Found"

    def __init__(self, image_uuid: str, message: str | None = None) -> None:
        super().__init__(message or f"Image {image_uuid} not found", details={"uuid": image_uuid})


class InvalidParameterError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "InvalidParameter"
    default_message = "Given parameter was invalid."

    def __init__(self, parameter: str, value: object = None) -> None:
        super().__init__(
            f"Invalid value for parameter '{parameter}'",
            details={"parameter": parameter, "value": value},
        )


class ImageAlreadyActivatedError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "ImageAlreadyActivated"
    default_message = "Image is already activated."

    def __init__(self, image_uuid: str, state: str) -> None:
        super().__init__(details={"uuid": image_uuid, "state": state})


class NoActivationNoFileError(AppException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "NoActivationNoFile"
    default_message = "Image must have a file to be activated."

    def __init__(self, image_uuid: str) -> None:
        super().__init__(details={"uuid": image_uuid})


class UploadError(AppException):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "Upload"
    default_message = "There was a problem with the upload."


class ServiceUnavailableError(AppException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "ServiceUnavailableError"
    default_message = "Service Unavailable"


class InternalError(AppException):
    pass


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            exc.error_code,
            exc_info=exc if exc.status_code >= 500 else None,
            extra={
                "error_code": exc.error_code,
                "status_code": exc.status_code,
                "path": request.url.path,
                "detail": exc.message,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {"code": exc.error_code, "message": exc.message, "details": exc.details}
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Convert errors to plain dicts to ensure JSON serializability
        errors = [
            {
                "loc": list(e.get("loc", [])),
                "msg": e.get("msg", ""),
                "type": e.get("type", ""),
            }
            for e in exc.errors()
        ]
        logger.info(
            "Request validation failed",
            extra={"path": request.url.path, "error_count": len(errors)},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "ValidationFailed",
                    "message": "Validation of parameters failed.",
                    "details": errors,
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=True,
            extra={"path": request.url.path, "exc_type": type(exc).__name__},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "InternalError",
                    "message": "Internal Server Error",
                    "details": None,
                }
            },
        )
