"""
Exception handlers: every failure leaves the API as ``{"success": false, "message": ...}``.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import OrderEngineError, StoreError
from app.core.logging import get_logger
from app.core.metrics import order_engine_errors_total
from app.core.tracing import current_trace

logger = get_logger(__name__)


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


def _field_path(loc: tuple) -> str:
    # ("body", "items", 0, "quantity") -> "items[0].quantity"
    path = ""
    for part in loc:
        if part in ("body", "query", "path", "header"):
            continue
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


async def handle_engine_error(request: Request, exc: OrderEngineError) -> JSONResponse:
    order_engine_errors_total.labels(error_type=exc.code).inc()

    if isinstance(exc, StoreError) or exc.status_code >= 500:
        logger.error(
            "request_failed",
            error_code=exc.code,
            error_message=exc.message,
            path=request.url.path,
            **exc.context,
        )
        trace = current_trace()
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            traceId=trace.trace_id if trace else None,
        )

    logger.info(
        "request_rejected",
        error_code=exc.code,
        error_message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    errors = exc.context.get("errors")
    if errors:
        return error_response(exc.status_code, exc.message, errors=errors)
    return error_response(exc.status_code, exc.message)


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    order_engine_errors_total.labels(error_type="VALIDATION_ERROR").inc()
    errors = {
        _field_path(tuple(error["loc"])) or "body": error["msg"] for error in exc.errors()
    }
    logger.info("request_validation_failed", path=request.url.path, errors=errors)
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", errors=errors)


async def handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderEngineError, handle_engine_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
