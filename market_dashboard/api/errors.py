"""
Error responses shared by all routes: {"success": false, "message": ...}
"""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from market_dashboard.models.responses import ErrorResponse

logger = logging.getLogger(__name__)


def validation_message(error: ValidationError) -> str:
    """First validation problem, without pydantic's 'Value error, ' prefix"""
    first = error.errors()[0]
    message = str(first.get("msg", "Invalid request"))
    return message.removeprefix("Value error, ")


def bad_request(error: ValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail=validation_message(error))


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(message=message).model_dump())


def register_error_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ())[1:])
            message = f"Invalid {location}: {errors[0].get('msg')}" if location else str(errors[0].get("msg"))
        else:
            message = "Invalid request"
        return error_response(400, message)
