"""Data access for the patient table."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Connection, Row, Table, insert, select, update

from paciente_api.models.patient import REQUIRED_FIELDS, UPDATABLE_FIELDS

logger = logging.getLogger(__name__)


class PatientError(Exception):
    """Base class for patient rule violations detected before writing."""


class MissingRequiredFields(PatientError, ValueError):
    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"missing required fields: {', '.join(fields)}")
        self.fields = fields


class UnknownPatientFields(PatientError, ValueError):
    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"unknown fields: {', '.join(fields)}")
        self.fields = fields


class DuplicatePatient(PatientError):
    def __init__(self, dni: Any) -> None:
        super().__init__(f"patient with dni {dni!r} already exists")
        self.dni = dni


class PatientNotFound(PatientError, LookupError):
    def __init__(self, patient_id: Any) -> None:
        super().__init__(f"patient {patient_id!r} not found")
        self.patient_id = patient_id


class NoUpdatableFields(PatientError, ValueError):
    pass


def serialize_patient(row: Row[Any]) -> dict[str, Any]:
    return dict(row._mapping)


def missing_required_fields(payload: Mapping[str, Any]) -> list[str]:
    """Return required fields that are absent or empty in ``payload``."""

    return [field for field in REQUIRED_FIELDS if not payload.get(field)]


def select_updatable_fields(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Keep whitelisted keys; an explicit ``null`` still counts as a change."""

    return {field: payload[field] for field in UPDATABLE_FIELDS if field in payload}


def find_by_dni(
    connection: Connection, table: Table, dni: Any, *, for_update: bool = False
) -> dict[str, Any] | None:
    """Return the first row matching ``dni``.

    No ordering is applied: when several rows share a ``dni`` the store's
    natural scan order decides which one comes back.
    """

    stmt = select(table).where(table.c.dni == dni)
    if for_update:
        stmt = stmt.with_for_update()
    row = connection.execute(stmt).first()
    return serialize_patient(row) if row is not None else None


def get_by_id(
    connection: Connection, table: Table, patient_id: Any, *, for_update: bool = False
) -> dict[str, Any] | None:
    stmt = select(table).where(table.c.id == patient_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = connection.execute(stmt).first()
    return serialize_patient(row) if row is not None else None


def create_patient(
    connection: Connection, table: Table, payload: Mapping[str, Any]
) -> dict[str, Any]:
    """Insert a patient using every submitted column and return the stored row.

    Raises :class:`MissingRequiredFields`, :class:`UnknownPatientFields` or
    :class:`DuplicatePatient` before anything is written.
    """

    missing = missing_required_fields(payload)
    if missing:
        raise MissingRequiredFields(missing)

    dni = payload["dni"]
    if find_by_dni(connection, table, dni, for_update=True) is not None:
        raise DuplicatePatient(dni)

    unknown = sorted(set(payload) - set(table.c.keys()))
    if unknown:
        raise UnknownPatientFields(unknown)

    result = connection.execute(insert(table).values(dict(payload)))
    patient_id = result.inserted_primary_key[0]
    logger.info("patient created", extra={"patient_id": patient_id})

    created = get_by_id(connection, table, patient_id)
    if created is None:  # pragma: no cover - row vanished inside our transaction
        raise PatientNotFound(patient_id)
    return created


def update_patient(
    connection: Connection, table: Table, patient_id: Any, payload: Mapping[str, Any]
) -> dict[str, Any]:
    """Apply the whitelisted subset of ``payload`` to one patient."""

    if get_by_id(connection, table, patient_id, for_update=True) is None:
        raise PatientNotFound(patient_id)

    changes = select_updatable_fields(payload)
    if not changes:
        raise NoUpdatableFields("no updatable fields supplied")

    connection.execute(update(table).where(table.c.id == patient_id).values(changes))
    logger.info(
        "patient updated",
        extra={"patient_id": patient_id, "fields": sorted(changes)},
    )

    updated = get_by_id(connection, table, patient_id)
    if updated is None:  # pragma: no cover - row vanished inside our transaction
        raise PatientNotFound(patient_id)
    return updated
