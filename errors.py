from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from logging_config import get_logger

logger = get_logger(__name__)


class APIError(Exception):
    def __init__(self, message: str, status: int = 400):
        self.message = message
        self.status = status
        super().__init__(message)


class NotFound(APIError):
    def __init__(self, message: str = "Room not found."):
        super().__init__(message, 404)


class Unauthorized(APIError):
    def __init__(self, message: str = "Unauthorized."):
        super().__init__(message, 401)


class InvalidInput(APIError):
    def __init__(self, message: str = "Invalid input."):
        super().__init__(message, 400)


class ProtocolIgnored(Exception):
    """A WebSocket frame that is not valid for the connection's current binding.

    Raised inside the hub's dispatch and dropped there without answering the
    client.
    """


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        logger.debug(f"{request.method} {request.url.path} -> {exc.status}: {exc.message}")
        return JSONResponse(status_code=exc.status, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = InvalidInput()
        logger.debug(f"{request.method} {request.url.path} -> {error.status}: {exc.errors()}")
        return JSONResponse(status_code=error.status, content={"error": error.message})

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error."})
