import pytest

from kiln.config import registry


@pytest.fixture(autouse=True)
def clear_registry():
    registry.clear()
    yield
    registry.clear()


@pytest.fixture
def no_external_tools(monkeypatch):
    """Pretend postcss and terser are not installed."""
    monkeypatch.setattr("kiln.asset_processors.find_executable", lambda *args, **kwargs: None)
