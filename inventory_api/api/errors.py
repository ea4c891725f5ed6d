from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inventory_api.application.errors import (
    DuplicateError, InvalidOperationError, InventoryError, NotFoundError, ValidationError,
)
from shared.core import get_logger

logger = get_logger(__name__)

STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidOperationError: 400,
    DuplicateError: 409,
}


def status_code_for(exc: InventoryError) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


async def inventory_error_handler(request: Request, exc: InventoryError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info(
        f"{exc.kind} on {request.method} {request.url.path}",
        extra={'extra_fields': {'error': exc.kind, 'status_code': status_code}}
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "value": error.get("input"),
        }
        for error in exc.errors()
    ]
    body = ValidationError("Request validation failed", details).to_dict()
    return JSONResponse(status_code=400, content=jsonable_encoder(body))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InventoryError, inventory_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
