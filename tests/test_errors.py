from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text

from paciente_api.core.config import Settings
from paciente_api.main import create_app


def _client(**overrides) -> TestClient:
    return TestClient(create_app(Settings(_env_file=None, **overrides)))


def test_unreachable_store_is_reported_without_details(tmp_path):
    client = _client(database_url=f"sqlite:///{tmp_path / 'missing' / 'x.db'}")

    response = client.get("/api/patients/check/12345678")

    assert response.status_code == 500
    assert response.json() == {"error": "Error de conexión a la base de datos"}


def test_unreachable_store_details_in_development(tmp_path):
    client = _client(
        database_url=f"sqlite:///{tmp_path / 'missing' / 'x.db'}",
        environment="development",
    )

    response = client.get("/")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Error de conexión a la base de datos"
    assert "unable to open database file" in body["details"]


def test_exhausted_pool_fails_fast(database_url):
    app = create_app(
        Settings(
            _env_file=None,
            database_url=database_url,
            db_pool_size=1,
            db_max_overflow=0,
            db_pool_timeout=0.1,
        )
    )
    client = TestClient(app)

    held = app.state.database.engine.connect()
    try:
        response = client.get("/api/patients/check/12345678")
    finally:
        held.close()

    assert response.status_code == 503
    assert response.json() == {"error": "Servicio saturado, intente nuevamente más tarde"}
    assert client.get("/api/patients/check/12345678").status_code == 200


def test_store_error_inside_handler(tmp_path):
    url = f"sqlite:///{tmp_path / 'empty.db'}"
    engine = create_engine(url)
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE unrelated (id INTEGER PRIMARY KEY)"))
    engine.dispose()

    production = _client(database_url=url)
    response = production.get("/api/patients/check/12345678")
    assert response.status_code == 500
    assert response.json() == {"error": "Error al verificar el paciente"}

    development = _client(database_url=url, environment="development")
    response = development.post(
        "/api/patients",
        json={"dni": "1", "nombre": "Ana", "apellido": "Diaz", "sexo": "F"},
    )
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Error al registrar el paciente"
    assert "rec_paciente" in body["details"]


def test_unhandled_exception_is_normalized(app):
    def explode():
        raise RuntimeError("kaboom")

    app.add_api_route("/explode", explode, methods=["GET"])
    client = TestClient(app)

    response = client.get("/explode")

    assert response.status_code == 500
    assert response.json() == {"error": "Error interno del servidor"}


def test_unhandled_exception_details_in_development(database_url):
    app = create_app(
        Settings(_env_file=None, database_url=database_url, environment="development")
    )

    def explode():
        raise RuntimeError("kaboom")

    app.add_api_route("/explode", explode, methods=["GET"])
    response = TestClient(app).get("/explode")

    assert response.status_code == 500
    assert response.json() == {"error": "Error interno del servidor", "details": "kaboom"}


def test_unknown_route_uses_error_shape(client):
    response = client.get("/api/unknown")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


def test_missing_fields_answered_before_touching_store(tmp_path):
    url = f"sqlite:///{tmp_path / 'empty.db'}"
    engine = create_engine(url)
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE unrelated (id INTEGER PRIMARY KEY)"))
    engine.dispose()

    response = _client(database_url=url).post("/api/patients", json={"dni": "1"})

    assert response.status_code == 400
    assert response.json() == {
        "error": "Faltan datos obligatorios (dni, nombre, apellido, sexo)"
    }


def test_malformed_json_is_invalid_request(client):
    response = client.post(
        "/api/patients",
        content="{not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Solicitud inválida"}
