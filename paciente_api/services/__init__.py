"""Service layer utilities for the Pacientes API."""

from paciente_api.services.patients import (
    DuplicatePatient,
    MissingRequiredFields,
    NoUpdatableFields,
    PatientError,
    PatientNotFound,
    UnknownPatientFields,
    create_patient,
    find_by_dni,
    get_by_id,
    update_patient,
)

__all__ = [
    "DuplicatePatient",
    "MissingRequiredFields",
    "NoUpdatableFields",
    "PatientError",
    "PatientNotFound",
    "UnknownPatientFields",
    "create_patient",
    "find_by_dni",
    "get_by_id",
    "update_patient",
]
