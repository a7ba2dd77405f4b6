"""
Exception handlers. Every error leaves the API as {error, details?} JSON;
stack traces stay in the server log.
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from dancelink.core.exceptions import BookingError
from dancelink.core.logging import get_logger

logger = get_logger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_error", error=exc.message, details=exc.details)
        else:
            logger.info("request_rejected", status_code=exc.status_code, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_body()))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "Validation error", "details": errors})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", error=str(exc))
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(exc)})
