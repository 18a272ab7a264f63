from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import Connection, Table, create_engine, make_url
from sqlalchemy.engine import Engine

from paciente_api.core.config import Settings
from paciente_api.models.patient import reflect_patient_table

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine and its bounded connection pool.

    Created once per application and disposed on shutdown. Every caller
    borrows connections through :meth:`connect` or :meth:`transaction`, both
    of which return the connection to the pool on every exit path.
    """

    def __init__(self, settings: Settings) -> None:
        url = make_url(settings.sqlalchemy_url())
        connect_args: dict[str, object] = {}
        if url.get_backend_name() == "sqlite":
            # Pooled connections are handed to FastAPI's worker threads.
            connect_args["check_same_thread"] = False

        self.engine: Engine = create_engine(
            url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        self.patient_table_name = settings.patient_table
        self._patient_table: Table | None = None
        self._reflect_lock = threading.Lock()

    def ping(self) -> None:
        """Acquire one pooled connection and release it straight away."""

        with self.engine.connect():
            pass

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        with self.engine.connect() as connection:
            yield connection

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Provide a connection inside a transaction committed on success."""

        with self.engine.begin() as connection:
            yield connection

    def patient_table(self, connection: Connection) -> Table:
        """Return the reflected patient table, reflecting it on first use."""

        if self._patient_table is None:
            with self._reflect_lock:
                if self._patient_table is None:
                    self._patient_table = reflect_patient_table(
                        connection, self.patient_table_name
                    )
                    logger.info(
                        "reflected patient table",
                        extra={
                            "table": self.patient_table_name,
                            "columns": sorted(self._patient_table.c.keys()),
                        },
                    )
        return self._patient_table

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("database pool disposed")


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the application's :class:`Database`."""

    return request.app.state.database

