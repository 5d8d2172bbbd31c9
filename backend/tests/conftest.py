"""
Shared pytest setup.

Settings are read from the environment, so the required keys get dummy
values before any notesrag module is imported.
"""

import os

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest

from fakes import FakeSupabase


@pytest.fixture
def db() -> FakeSupabase:
    fake = FakeSupabase()
    fake.seed("subjects", [{"id": "sub-bio", "name": "Biology"}])
    return fake
