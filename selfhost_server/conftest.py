import pytest

from selfhost_server.database import DatabaseService
from selfhost_server.settings import Settings, load_settings

ENV_VARS = (
    'DATABASE_URL',
    'DB_MAX_CONNECTIONS',
    'DB_MAX_LIFETIME',
    'DB_IDLE_TIMEOUT',
    'HOST',
    'PORT',
    'LOG_LEVEL',
    'ENVIRONMENT',
    'SHUTDOWN_GRACE_PERIOD_SECONDS',
    'API_SENTRY_DSN',
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def database_url(tmp_path) -> str:
    return f'sqlite:///{tmp_path / "health.db"}'


@pytest.fixture
def settings(monkeypatch, database_url) -> Settings:
    monkeypatch.setenv('DATABASE_URL', database_url)
    return load_settings(env_file=None)


@pytest.fixture
def database(settings):
    db = DatabaseService.open(settings)
    yield db
    db.close()
