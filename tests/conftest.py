"""
Shared fixtures. The fakes themselves live in fakes.py.
"""
import pytest

from kitchen_bridge.config import reset_config
from kitchen_bridge.observability import recent_events

from fakes import ManualSleep


@pytest.fixture(autouse=True)
def _isolate_globals(monkeypatch):
    reset_config()
    recent_events.clear()
    monkeypatch.delenv("KB_PERSONA", raising=False)
    yield
    reset_config()
    recent_events.clear()


@pytest.fixture
def manual_sleep():
    return ManualSleep()
