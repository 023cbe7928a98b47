from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    """
    Service configuration, read from the environment or ``.env``.

    DATABASE_URL and SECRET_KEY have no defaults; the service refuses to
    start without them.
    """

    # Database. postgresql+psycopg in production, sqlite+aiosqlite locally
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30  # seconds
    DB_POOL_RECYCLE: int = 1800  # seconds

    # Tokens
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    APP_NAME: str = "Medistock Receiving Workflow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # JSON list or comma-separated string
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Receiving workflow rules
    ENFORCE_APPROVER_SEPARATION: bool = False  # assignee may not approve or reject own record
    REQUIRE_LINE_RESULTS_ON_SUBMIT: bool = False  # no pending line results at submit

    DASHBOARD_DEFAULT_TIMEFRAME_DAYS: int = 30
    DASHBOARD_RECENT_LIMIT: int = 10

    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
