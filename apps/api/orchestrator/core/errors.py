from __future__ import annotations

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class ServiceError(HTTPException):
    """Base for errors raised by services and rendered as `{"detail", "code"}`."""

    code = "error"
    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.default_status, detail=detail)

    def __str__(self) -> str:
        return str(self.detail)


class UnauthenticatedError(ServiceError):
    code = "unauthenticated"
    default_status = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(ServiceError):
    code = "forbidden"
    default_status = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    code = "not_found"
    default_status = status.HTTP_404_NOT_FOUND


class ValidationFailed(ServiceError):
    code = "validation"
    default_status = 422


class ProviderConfigError(ServiceError):
    code = "provider_config"
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    _ = request
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )
