import json
from typing import Any, List

from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "FYP Portal API"

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "fypDB"

    UPLOAD_DIR: str = "uploads"
    # comma-separated or JSON list
    CORS_ORIGINS_STR: str = "*"

    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_cors_origins(self.CORS_ORIGINS_STR)


settings = Settings()
