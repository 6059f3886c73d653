"""
API error handling. Every error response is {"error": "<message>"}.

Messages are fixed strings. Paths, commands and tracebacks stay in the
server log and never reach the caller.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = structlog.get_logger(__name__)

DELIVERY_HEADER = "X-GitHub-Delivery"
NOT_FOUND = "Not found"
INTERNAL_ERROR = "Internal server error"


class APIError(Exception):
    """API error with HTTP status and a machine-readable code for the log."""

    def __init__(self, status: int, code: str, message: str):
        self.status = status
        self.code = code
        self.message = message

    def response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status,
                            content={"error": self.message})


class MalformedPayloadError(ValueError):
    """Request body is not a JSON object of the expected shape."""


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return exc.response()


async def http_error_handler(request: Request,
                             exc: StarletteHTTPException) -> JSONResponse:
    # Unknown route and unsupported method look the same to the caller
    if exc.status_code in (404, 405):
        return APIError(404, "not_found", NOT_FOUND).response()
    return JSONResponse(status_code=exc.status_code,
                        content={"error": str(exc.detail)})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Runs outside the route, so request-scoped context is not bound here
    logger.error("unhandled_error", method=request.method,
                 path=request.url.path,
                 delivery=request.headers.get(DELIVERY_HEADER), exc_info=exc)
    return APIError(500, "internal_error", INTERNAL_ERROR).response()


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
