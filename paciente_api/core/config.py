from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "Pacientes API"
    environment: str = "production"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    db_driver: str = "mysql+pymysql"
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "pacientes"
    database_url: str | None = None
    db_pool_size: int = 10
    db_max_overflow: int = 0
    db_pool_timeout: float = 30.0
    patient_table: str = "rec_paciente"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def development(self) -> bool:
        """Whether error details may be echoed back to clients."""

        return self.environment.strip().lower() == "development"

    def sqlalchemy_url(self) -> str | URL:
        """Return the engine URL, preferring an explicit ``database_url``."""

        if self.database_url:
            return self.database_url
        return URL.create(
            self.db_driver,
            username=self.db_user,
            password=self.db_password or None,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
