"""HTTP API over the ``rec_paciente`` patient table."""
