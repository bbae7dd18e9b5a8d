import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from selfhost_server import SERVICE_NAME, __version__
from selfhost_server import server as server_module
from selfhost_server.database import DatabaseService
from selfhost_server.server import create_app, init_sentry, main


@pytest.fixture
def client(settings, database):
    return TestClient(create_app(settings, database))


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(server_module, 'setup_logging', lambda *args, **kwargs: None)


def test_root(client):
    response = client.get('/')
    assert response.status_code == 200
    body = response.json()
    assert body['service'] == SERVICE_NAME
    assert body['version'] == __version__
    assert '/health/db' in body['endpoints']


@pytest.mark.parametrize('path', ['/health', '/healthz'])
def test_liveness(client, path):
    response = client.get(path)
    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'healthy'
    assert body['service'] == SERVICE_NAME
    assert body['timestamp']


def test_liveness_ignores_database(client, database):
    database.close()

    response = client.get('/health')
    assert response.status_code == 200
    assert response.json()['status'] == 'healthy'


def test_database_health(client):
    response = client.get('/health/db')
    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'healthy'
    assert body['max_connections'] == 10
    assert body['idle_connections'] <= body['pool_size'] <= 10
    assert body['is_closed'] is False


def test_database_health_after_close(client, database):
    database.close()

    response = client.get('/health/db')
    assert response.status_code == 503
    body = response.json()
    assert body['status'] == 'unhealthy'
    assert body['error_type'] == 'PoolClosedError'
    assert body['is_closed'] is True
    assert body['max_connections'] == 10


def test_database_health_unreachable(settings, tmp_path):
    engine = create_engine(f'sqlite:///{tmp_path / "missing" / "x.db"}')
    database = DatabaseService(engine)
    client = TestClient(create_app(settings, database))

    response = client.get('/health/db')
    assert response.status_code == 503
    assert response.json()['error_type'] == 'ProbeFailedError'
    assert client.get('/healthz').status_code == 200
    database.close()


def test_unknown_route(client):
    response = client.get('/does-not-exist')
    assert response.status_code == 404
    assert response.json() == {
        'error': 'Not Found',
        'message': 'The requested resource was not found',
    }


def test_shutdown_closes_pool(settings, database):
    with TestClient(create_app(settings, database)) as client:
        assert client.get('/health/db').status_code == 200
        assert not database.is_closed

    assert database.is_closed


def test_sentry_disabled_without_dsn(settings):
    assert init_sentry(settings) is False


class FakeServer:
    instances = []

    def __init__(self, config):
        self.config = config
        self.ran = False
        FakeServer.instances.append(self)

    def run(self):
        self.ran = True


@pytest.fixture
def fake_server(monkeypatch):
    FakeServer.instances = []
    monkeypatch.setattr(server_module.uvicorn, 'Server', FakeServer)
    return FakeServer


def test_main_without_database_url(fake_server):
    assert main() == 1
    assert fake_server.instances == []


def test_main_invalid_setting(monkeypatch, database_url, fake_server):
    monkeypatch.setenv('DATABASE_URL', database_url)
    monkeypatch.setenv('DB_MAX_CONNECTIONS', 'abc')

    assert main() == 1
    assert fake_server.instances == []


def test_main_malformed_database_url(monkeypatch, fake_server):
    monkeypatch.setenv('DATABASE_URL', 'postgresql://u:p@host:notaport/db')

    assert main() == 1
    assert fake_server.instances == []


def test_main_database_unreachable(monkeypatch, tmp_path, fake_server):
    monkeypatch.setenv('DATABASE_URL', f'sqlite:///{tmp_path / "missing" / "x.db"}')

    assert main() == 1
    assert fake_server.instances == []


def test_main_runs_and_closes_pool(monkeypatch, database_url, fake_server):
    monkeypatch.setenv('DATABASE_URL', database_url)
    monkeypatch.setenv('PORT', '8123')

    assert main() == 0

    [server] = fake_server.instances
    assert server.ran
    assert server.config.port == 8123
    assert server.config.timeout_graceful_shutdown == 30
    assert server.config.app.state.database.is_closed
