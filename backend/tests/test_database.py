"""
Unit tests for picking the Supabase key per client role.
"""

import pytest

from notesrag.config import get_settings
from notesrag.core import database


@pytest.fixture
def created(monkeypatch):
    calls = []
    monkeypatch.setattr(database, "create_client", lambda url, key, options=None: calls.append((url, key, options)) or object())
    database.get_supabase.cache_clear()
    yield calls
    database.get_supabase.cache_clear()


def _use(monkeypatch, **overrides):
    settings = get_settings().model_copy(update=overrides)
    monkeypatch.setattr(database, "get_settings", lambda: settings)


class TestGetSupabase:
    def test_api_uses_anon_key(self, created, monkeypatch):
        _use(monkeypatch, SUPABASE_SERVICE_KEY="service-key")
        database.get_supabase("api")
        [(url, key, options)] = created
        assert key == "test-anon-key"
        assert options.persist_session is False

    def test_worker_uses_service_key(self, created, monkeypatch):
        _use(monkeypatch, SUPABASE_SERVICE_KEY="service-key", SUPABASE_TIMEOUT_SECONDS=5)
        database.get_supabase("worker")
        [(_, key, options)] = created
        assert key == "service-key"
        assert options.storage_client_timeout == 5

    def test_worker_without_service_key(self, created, monkeypatch):
        _use(monkeypatch, SUPABASE_SERVICE_KEY="")
        with pytest.raises(ValueError, match="SUPABASE_SERVICE_KEY"):
            database.get_supabase("worker")
        assert created == []

    def test_client_cached_per_role(self, created, monkeypatch):
        _use(monkeypatch, SUPABASE_SERVICE_KEY="service-key")
        assert database.get_supabase("api") is database.get_supabase("api")
        database.get_supabase("worker")
        assert len(created) == 2
