from collections.abc import Callable, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Column, Float, Integer, MetaData, String, Table, create_engine, func, select

from paciente_api.core.config import Settings
from paciente_api.main import create_app

metadata = MetaData()

# Stand-in for the externally managed table; the application only reflects it.
rec_paciente = Table(
    "rec_paciente",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("dni", String(20), nullable=False),
    Column("nombre", String(100), nullable=False),
    Column("apellido", String(100), nullable=False),
    Column("sexo", String(1), nullable=False),
    Column("fecha_nacimiento", String(10)),
    Column("email", String(255)),
    Column("telefono", String(32)),
    Column("calle", String(100)),
    Column("numero", String(10)),
    Column("piso", String(10)),
    Column("departamento", String(10)),
    Column("cpostal", String(10)),
    Column("barrio", String(100)),
    Column("ciudad", String(100)),
    Column("provincia", String(100)),
    Column("peso", Float),
    Column("talla", Float),
)


@pytest.fixture
def database_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'pacientes.db'}"
    engine = create_engine(url)
    metadata.create_all(engine)
    engine.dispose()
    return url


@pytest.fixture
def settings(database_url: str) -> Settings:
    return Settings(_env_file=None, database_url=database_url, environment="production")


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def count_patients(database_url: str) -> Iterator[Callable[[], int]]:
    engine = create_engine(database_url)

    def _count() -> int:
        with engine.connect() as connection:
            return connection.execute(select(func.count()).select_from(rec_paciente)).scalar_one()

    yield _count
    engine.dispose()


@pytest.fixture
def ana(client: TestClient) -> dict:
    response = client.post(
        "/api/patients",
        json={"dni": "12345678", "nombre": "Ana", "apellido": "Diaz", "sexo": "F"},
    )
    assert response.status_code == 201
    return response.json()["patient"]
