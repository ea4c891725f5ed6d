from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "inventory"
    POSTGRES_USER: str = "inventory"
    POSTGRES_PASSWORD: str = "inventory"
    # Takes precedence over the POSTGRES_* fields when set (e.g. sqlite:// for local runs)
    DATABASE_URL: Optional[str] = None

    SERVICE_NAME: str = "inventory-service"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    RUN_MIGRATIONS: bool = True

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60
    DEFAULT_ACTOR: str = "System"

    DEFAULT_PAGE_LIMIT: int = 50
    MAX_PAGE_LIMIT: int = 500

    LOW_STOCK_WINDOW_DAYS: int = 30
    DEPLETION_HORIZON_DAYS: int = 7
    DAYS_UNTIL_EMPTY_SENTINEL: float = 999

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def migration_url(self) -> str:
        """database_url escaped for alembic.ini-style interpolation"""
        return self.database_url.replace("%", "%%")

@lru_cache
def get_settings() -> Settings:
    return Settings()
