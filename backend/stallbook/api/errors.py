"""
Translate domain errors into HTTP responses.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stallbook.core.exceptions import StallBookingError
from stallbook.core.logging import get_logger

logger = get_logger(__name__)


async def stall_booking_error_handler(request: Request, exc: StallBookingError) -> JSONResponse:
    logger.info("request_rejected", error=exc.kind, status_code=exc.status_code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StallBookingError, stall_booking_error_handler)
