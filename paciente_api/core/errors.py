"""Uniform JSON error responses."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

POOL_EXHAUSTED_MESSAGE = "Servicio saturado, intente nuevamente más tarde"
INVALID_REQUEST_MESSAGE = "Solicitud inválida"


class ApiError(Exception):
    """An error answered with ``{"error": ..., "details"?: ...}``."""

    def __init__(self, status_code: int, error: str, details: Any = None) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details


def error_body(error: str, details: Any = None, *, development: bool) -> dict[str, Any]:
    """Build the error payload; ``details`` only leaks in development mode."""

    body: dict[str, Any] = {"error": error}
    if development and details is not None:
        body["details"] = jsonable_encoder(details)
    return body


def error_response(
    status_code: int, error: str, details: Any = None, *, development: bool
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(error, details, development=development),
    )


@contextmanager
def store_errors(message: str) -> Iterator[None]:
    """Translate store failures into :class:`ApiError`.

    A pool wait that timed out becomes a 503; every other SQLAlchemy error
    becomes a 500 carrying ``message``.
    """

    try:
        yield
    except PoolTimeoutError as exc:
        logger.warning("connection pool exhausted", extra={"error": str(exc)})
        raise ApiError(
            status.HTTP_503_SERVICE_UNAVAILABLE, POOL_EXHAUSTED_MESSAGE, str(exc)
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception(message)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, message, str(exc)) from exc


def _development(request: Request) -> bool:
    return request.app.state.settings.development


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        exc.status_code, exc.error, exc.details, development=_development(request)
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    response = error_response(
        exc.status_code, str(exc.detail), development=_development(request)
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("request validation failed", extra={"errors": exc.errors()})
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        INVALID_REQUEST_MESSAGE,
        exc.errors(),
        development=_development(request),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
