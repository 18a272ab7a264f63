"""Connection pool ownership."""

from paciente_api.db.session import Database, get_database

__all__ = ["Database", "get_database"]
