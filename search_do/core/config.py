from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from typing import Any, Dict, Optional


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./search_do.db"

    # Environment discriminator, used as the default node prefix
    ENVIRONMENT: str = "development"

    # Hyper Estraier node
    ESTRAIER_HOST: str = "localhost"
    ESTRAIER_PORT: int = 1978
    ESTRAIER_USER: str = "admin"
    ESTRAIER_PASSWORD: str = "admin"
    ESTRAIER_NODE_PREFIX: Optional[str] = None

    # Transport timeouts (seconds)
    ESTRAIER_CONNECT_TIMEOUT: float = 5.0
    ESTRAIER_READ_TIMEOUT: float = 30.0

    # Index backend implementation
    SEARCH_BACKEND: str = "hyper_estraier"

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator('ESTRAIER_HOST', 'ENVIRONMENT', mode='before')
    @classmethod
    def validate_not_blank(cls, v, info):
        if v is None or not str(v).strip():
            raise ValueError(f'{info.field_name} cannot be empty')
        return str(v).strip()

    @field_validator('ESTRAIER_PORT')
    @classmethod
    def validate_port(cls, v):
        if not 0 < v < 65536:
            raise ValueError(f'ESTRAIER_PORT must be between 1 and 65535, got {v}')
        return v

    @field_validator('SEARCH_BACKEND', mode='before')
    @classmethod
    def normalize_backend(cls, v):
        return str(v).strip().lower()

    @field_validator('LOG_LEVEL', mode='before')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = str(v).upper()
        if v_upper not in valid_levels:
            raise ValueError(f'LOG_LEVEL must be one of {sorted(valid_levels)}, got {v!r}')
        return v_upper

    model_config = ConfigDict(env_file=".env", extra="ignore")

    def backend_config(self) -> Dict[str, Any]:
        """Connection settings in the key set understood by the backends."""
        return {
            "backend": self.SEARCH_BACKEND,
            "host": self.ESTRAIER_HOST,
            "port": self.ESTRAIER_PORT,
            "user": self.ESTRAIER_USER,
            "password": self.ESTRAIER_PASSWORD,
            "node_prefix": self.ESTRAIER_NODE_PREFIX,
            "connect_timeout": self.ESTRAIER_CONNECT_TIMEOUT,
            "read_timeout": self.ESTRAIER_READ_TIMEOUT,
        }


settings = Settings()
