import pytest
from fastapi.testclient import TestClient

from api.src.config import get_settings as get_api_settings
from api.src.db.database import get_engine, get_sessionmaker
from api.src.main import app
from api.src.services.dispatch import get_dispatcher
from controller.src.config import Settings as ControllerSettings
from controller.src.config import get_settings as get_controller_settings

def _clear_caches():
    get_api_settings.cache_clear()
    get_controller_settings.cache_clear()
    get_sessionmaker.cache_clear()
    get_engine.cache_clear()

@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("WORKSPACE_ROOT", str(tmp_path / "workspaces"))
    monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", "")
    _clear_caches()
    yield
    _clear_caches()
    app.dependency_overrides.clear()

class FakeDispatcher:
    """Accepts run requests without executing anything."""

    def __init__(self):
        self.settings = ControllerSettings(_env_file=None)
        self.requests = []
        self.cancelled = []

    def submit(self, request) -> str:
        self.requests.append(request)
        return f"run-{len(self.requests)}"

    def cancel(self, run_id: str) -> bool:
        self.cancelled.append(run_id)
        return False

    def active_runs(self):
        return []

    def shutdown(self, wait: bool = True):
        pass

@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()

@pytest.fixture
def client(dispatcher):
    """Client whose runs go to a FakeDispatcher."""
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client

@pytest.fixture
def live_client():
    """Client backed by the real dispatcher, so runs execute."""
    with TestClient(app) as test_client:
        yield test_client
