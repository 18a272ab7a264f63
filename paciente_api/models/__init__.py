"""Table descriptions for the Pacientes API."""

from paciente_api.models.patient import (
    REQUIRED_FIELDS,
    UPDATABLE_FIELDS,
    reflect_patient_table,
)

__all__ = [
    "REQUIRED_FIELDS",
    "UPDATABLE_FIELDS",
    "reflect_patient_table",
]
