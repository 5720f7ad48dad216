from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

from .application.services.results import AuthError


class APIException(HTTPException):
    def __init__(self, status_code: int, detail: str, data: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.data = data


def auth_error_exception(error: AuthError) -> APIException:
    """Turn a typed AuthError into the HTTP exception the handler renders"""
    headers = None
    if error.wait_minutes is not None:
        headers = {"Retry-After": str(error.wait_minutes * 60)}
    return APIException(error.http_status, error.message, data=error.to_data(), headers=headers)


def create_error_response(error_message: str, data: Optional[Dict[str, Any]] = None) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "message": error_message,
        "data": data
    }


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render every HTTPException in the ``{success, message, data}`` envelope"""
    data = getattr(exc, "data", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail), data),
        headers=getattr(exc, "headers", None)
    )
