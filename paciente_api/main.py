from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from paciente_api.core.config import Settings, get_settings
from paciente_api.core.errors import (
    POOL_EXHAUSTED_MESSAGE,
    ApiError,
    error_response,
    register_exception_handlers,
    store_errors,
)
from paciente_api.db.session import Database, get_database
from paciente_api.logging_utils import bind_request_id, configure_logging, reset_request_id
from paciente_api.services.patients import (
    DuplicatePatient,
    NoUpdatableFields,
    PatientNotFound,
    UnknownPatientFields,
    create_patient,
    find_by_dni,
    missing_required_fields,
    update_patient,
)

logger = logging.getLogger(__name__)

REQUEST_COUNTER = Counter(
    "paciente_api_requests_total",
    "Total number of processed HTTP requests.",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "paciente_api_request_duration_seconds",
    "HTTP request latency in seconds.",
    ["method", "path"],
)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for logging and echo it back to the caller."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = bind_request_id(request_id)

        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)

        response.headers["X-Request-ID"] = request_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Answer anything the routes did not handle with a generic 500."""

    def __init__(self, app: FastAPI, settings: Settings) -> None:  # type: ignore[override]
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("unhandled error", extra={"path": request.url.path})
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Error interno del servidor",
                str(exc),
                development=self.settings.development,
            )


def route_label(request: Request) -> str:
    """Return the matched route template so path parameters never become labels."""

    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if template is None:
        return "unmatched"
    return request.scope.get("root_path", "") + template


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Emit structured access logs and feed metrics."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start_time = time.perf_counter()
        path = request.url.path
        method = request.method

        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - start_time
            route = route_label(request)
            REQUEST_COUNTER.labels(method=method, path=route, status="500").inc()
            REQUEST_LATENCY.labels(method=method, path=route).observe(elapsed)
            logger.error(
                "request failed",
                extra={
                    "method": method,
                    "path": path,
                    "route": route,
                    "duration_ms": round(elapsed * 1000, 2),
                },
            )
            raise

        elapsed = time.perf_counter() - start_time
        status_code = response.status_code
        route = route_label(request)

        REQUEST_COUNTER.labels(method=method, path=route, status=str(status_code)).inc()
        REQUEST_LATENCY.labels(method=method, path=route).observe(elapsed)

        logger.info(
            "request completed",
            extra={
                "method": method,
                "path": path,
                "route": route,
                "status_code": status_code,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )

        return response


class DatabaseGateMiddleware(BaseHTTPMiddleware):
    """Refuse to route requests while the store cannot hand out a connection."""

    def __init__(self, app: FastAPI, database: Database, settings: Settings) -> None:  # type: ignore[override]
        super().__init__(app)
        self.database = database
        self.settings = settings

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        try:
            await run_in_threadpool(self.database.ping)
        except PoolTimeoutError as exc:
            logger.warning("connection pool exhausted", extra={"error": str(exc)})
            return error_response(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                POOL_EXHAUSTED_MESSAGE,
                str(exc),
                development=self.settings.development,
            )
        except SQLAlchemyError as exc:
            logger.error(
                "database connectivity check failed",
                exc_info=exc,
            )
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Error de conexión a la base de datos",
                str(exc),
                development=self.settings.development,
            )

        return await call_next(request)


router = APIRouter()


@router.get("/")
def index() -> dict[str, str]:
    return {"message": "API del servidor de Pacientes funcionando correctamente"}


@router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics for scraping."""

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint used by infrastructure probes."""

    return {"status": "ok"}


@router.get("/api/patients/check/{dni}")
def check_patient(dni: str, database: Database = Depends(get_database)) -> dict[str, Any]:
    """Report whether a patient with ``dni`` is registered."""

    with store_errors("Error al verificar el paciente"), database.connect() as connection:
        table = database.patient_table(connection)
        patient = find_by_dni(connection, table, dni)

    if patient is None:
        return {"exists": False}
    return {"exists": True, "patient": patient}


def _request_fields(payload: Any) -> dict[str, Any]:
    """Treat an absent or non-object JSON body as carrying no fields."""

    return payload if isinstance(payload, dict) else {}


@router.post("/api/patients", status_code=status.HTTP_201_CREATED)
def register_patient(
    payload: Any = Body(default=None),
    database: Database = Depends(get_database),
) -> dict[str, Any]:
    """Create a patient from every submitted column."""

    fields = _request_fields(payload)
    if missing_required_fields(fields):
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            "Faltan datos obligatorios (dni, nombre, apellido, sexo)",
        )

    try:
        with store_errors("Error al registrar el paciente"), database.transaction() as connection:
            table = database.patient_table(connection)
            patient = create_patient(connection, table, fields)
    except UnknownPatientFields as exc:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            f"Campos desconocidos: {', '.join(exc.fields)}",
        ) from exc
    except DuplicatePatient as exc:
        raise ApiError(
            status.HTTP_409_CONFLICT, "Ya existe un paciente con ese DNI"
        ) from exc

    return {"success": True, "patient": patient}


@router.put("/api/patients/{patient_id}")
def modify_patient(
    patient_id: str,
    payload: Any = Body(default=None),
    database: Database = Depends(get_database),
) -> dict[str, Any]:
    """Update the contact, address and measurement fields of a patient."""

    try:
        key = int(patient_id)
    except ValueError:
        # Identifiers are store-assigned integers; anything else matches no row.
        raise ApiError(status.HTTP_404_NOT_FOUND, "Paciente no encontrado") from None

    try:
        with store_errors("Error al actualizar el paciente"), database.transaction() as connection:
            table = database.patient_table(connection)
            patient = update_patient(connection, table, key, _request_fields(payload))
    except PatientNotFound as exc:
        raise ApiError(status.HTTP_404_NOT_FOUND, "Paciente no encontrado") from exc
    except NoUpdatableFields as exc:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            "No se proporcionaron campos válidos para actualizar",
        ) from exc

    return {"success": True, "patient": patient}


# Placeholders until appointments, prescriptions and studies are modelled.


@router.get("/api/patients/{patient_id}/appointments")
def patient_appointments(patient_id: str) -> dict[str, Any]:
    return {"message": "Funcionalidad de citas médicas en desarrollo", "appointments": []}


@router.get("/api/patients/{patient_id}/prescriptions")
def patient_prescriptions(patient_id: str) -> dict[str, Any]:
    return {"message": "Funcionalidad de recetas médicas en desarrollo", "prescriptions": []}


@router.get("/api/patients/{patient_id}/medical-tests")
def patient_medical_tests(patient_id: str) -> dict[str, Any]:
    return {"message": "Funcionalidad de estudios médicos en desarrollo", "medicalTests": []}


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """Build the application around an explicitly owned connection pool."""

    settings = settings or get_settings()
    configure_logging(settings.log_level.upper())
    database = database or Database(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("starting %s", settings.app_name)
        yield
        database.dispose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database

    register_exception_handlers(app)

    # Starlette wraps in reverse order: the last middleware added runs first.
    app.add_middleware(DatabaseGateMiddleware, database=database, settings=settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(ErrorHandlingMiddleware, settings=settings)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(router)

    return app


def run() -> None:
    """Serve the application with uvicorn."""

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
