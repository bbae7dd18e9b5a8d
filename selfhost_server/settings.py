import os
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from selfhost_server.utils.exceptions import (
    ConfigError,
    InvalidValueError,
    MissingRequiredError,
)

ROOT_DIR = Path(__file__).parent.parent
ENV_FILE_PATH = ROOT_DIR / '.env'
ENV_LOCAL_FILE_PATH = ROOT_DIR / '.env.local'

REQUIRED_FIELDS = ('DATABASE_URL',)


def get_setting_env_file() -> list[Path] | None:
    """Return the development override files, or None when they must not be read."""
    if 'PYTEST_VERSION' in os.environ:
        return None
    if os.getenv('ENVIRONMENT', '').strip().lower() == 'production':
        return None

    return [ENV_FILE_PATH, ENV_LOCAL_FILE_PATH]


class Settings(BaseSettings):
    HOST: str = '0.0.0.0'
    PORT: int = Field(3000, ge=1, le=65535)

    DATABASE_URL: str

    # Database connection pooling settings (lifetimes in seconds)
    DB_MAX_CONNECTIONS: int = Field(10, gt=0)
    DB_MAX_LIFETIME: int = Field(3600, gt=0)
    DB_IDLE_TIMEOUT: int = Field(600, gt=0)

    LOG_LEVEL: str = 'INFO'
    ENVIRONMENT: str = 'development'
    API_SENTRY_DSN: str | None = None

    # Graceful shutdown configuration
    SHUTDOWN_GRACE_PERIOD_SECONDS: int = Field(30, gt=0)

    model_config = SettingsConfigDict(
        env_file=get_setting_env_file(),
        env_file_encoding='utf-8',
        extra='ignore',
        frozen=True,
    )

    @field_validator('DATABASE_URL')
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('must not be empty')
        try:
            make_url(v)
        except (ArgumentError, ValueError) as e:
            raise ValueError(f'not a valid database URL: {e}') from e
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'unknown log level {v!r}')
        return level

    @property
    def max_lifetime(self) -> timedelta:
        return timedelta(seconds=self.DB_MAX_LIFETIME)

    @property
    def idle_timeout(self) -> timedelta:
        return timedelta(seconds=self.DB_IDLE_TIMEOUT)


def _to_config_error(exc: ValidationError) -> ConfigError:
    errors = exc.errors()

    # A missing connection string is reported ahead of any other problem.
    for err in errors:
        name = str(err['loc'][0]) if err['loc'] else ''
        if name not in REQUIRED_FIELDS:
            continue
        raw = err.get('input')
        if err['type'] == 'missing' or not isinstance(raw, str) or not raw.strip():
            return MissingRequiredError(name)

    first = errors[0]
    field = str(first['loc'][0]) if first['loc'] else 'settings'
    return InvalidValueError(field, first.get('input'), first['msg'])


def load_settings(env_file: Any = ...) -> Settings:
    """
    Load settings from the process environment.

    Unset optional values fall back to their defaults. The development
    override files are read when present and skipped silently otherwise.

    Raises:
        MissingRequiredError: DATABASE_URL is unset or empty.
        InvalidValueError: an optional value is present but not valid.
    """
    if env_file is ...:
        env_file = get_setting_env_file()

    try:
        return Settings(_env_file=env_file)
    except ValidationError as e:
        raise _to_config_error(e) from e
