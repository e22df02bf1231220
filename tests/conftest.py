import pytest
import pytest_asyncio

from agent.executor import ToolExecutor
from agent.tools import build_registry
from backend.core.database import init_db
from core.config import settings
from fakes import JWT_SECRET, build_store


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", JWT_SECRET)


@pytest_asyncio.fixture
async def store(tmp_path):
    training_store, engine = build_store(tmp_path / "trainer.db")
    await init_db(engine)
    yield training_store
    await engine.dispose()


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def executor(registry, store):
    return ToolExecutor(registry, store, max_result_chars=settings.TOOL_RESULT_MAX_CHARS, parallel=True)
