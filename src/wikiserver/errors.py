"""JSON error responses for the /api surface.

Every API error body has the same shape the pages endpoints use on
success, with success set to false:

    {"success": false, "error": "There is no page with ID 3"}
"""

from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """An API failure that maps directly to a JSON error body."""

    def __init__(
        self,
        status_code: int,
        message: str,
        headers: Optional[dict[str, str]] = None,
        **extra: Any,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.headers = headers
        self.extra = extra


def error_body(message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": message, **extra}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, **exc.extra),
        headers=exc.headers,
    )


def missing_fields(exc: RequestValidationError) -> list[str]:
    """Body fields a request left out, e.g. ["name", "markdown"]."""
    fields = []
    for error in exc.errors():
        loc = error.get("loc", ())
        if error.get("type") == "missing" and len(loc) >= 2 and loc[0] == "body":
            fields.append(str(loc[-1]))
    return fields


def bad_request_response(exc: RequestValidationError) -> JSONResponse:
    """400 for a malformed /api payload, naming what was missing."""
    return JSONResponse(
        status_code=400,
        content=error_body("Bad request payload", missing=missing_fields(exc)),
    )
