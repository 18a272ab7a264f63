from paciente_api.main import run

run()
