from __future__ import annotations

from sqlalchemy import Connection, MetaData, Table

REQUIRED_FIELDS: tuple[str, ...] = ("dni", "nombre", "apellido", "sexo")

# Contact, address and anthropometric data; identity columns stay read-only.
UPDATABLE_FIELDS: tuple[str, ...] = (
    "email",
    "telefono",
    "calle",
    "numero",
    "piso",
    "departamento",
    "cpostal",
    "barrio",
    "ciudad",
    "provincia",
    "peso",
    "talla",
)


def reflect_patient_table(connection: Connection, name: str) -> Table:
    """Load the column layout of the externally managed patient table."""

    metadata = MetaData()
    return Table(name, metadata, autoload_with=connection)
