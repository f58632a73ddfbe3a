"""
onball/errors.py
Centralized API error envelope.

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from onball.exceptions import OnBallException

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    IRREVERSIBLE_ACTION = "IRREVERSIBLE_ACTION"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_PLAYER = "DUPLICATE_PLAYER"
    CONSISTENCY_ERROR = "CONSISTENCY_ERROR"
    STORE_ERROR = "STORE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_NAMES = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    422: "Validation Error",
    500: "Internal Error",
    503: "Service Unavailable",
}


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


def to_error_response(exc: OnBallException) -> JSONResponse:
    """Convert a domain exception to the JSON error envelope"""
    body = ErrorResponse(
        error=ERROR_NAMES.get(exc.status_code, "Error"),
        message=exc.message,
        code=exc.code,
        details=exc.details,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope handlers to an application"""

    @app.exception_handler(OnBallException)
    async def onball_error_handler(request: Request, exc: OnBallException):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
        return to_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

        error_details = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "success": False,
                "error": "Validation Error",
                "message": "Request body failed validation",
                "code": ErrorCode.VALIDATION_ERROR,
                "details": {"errors": error_details},
            },
        )
