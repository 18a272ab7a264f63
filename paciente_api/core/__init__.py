"""Configuration and error handling for the Pacientes API."""
