"""
Unit tests for JWT validation, the provider factories and the auth dependency.
"""

import asyncio

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from notesrag.config import get_settings
from notesrag.core import llm_provider
from notesrag.core.dependencies import get_current_user_id
from notesrag.core.security import create_access_token, decode_access_token


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# -- tokens --

class TestTokens:
    def test_round_trip(self):
        payload = decode_access_token(create_access_token("user-1", {"role": "student"}))
        assert payload["sub"] == "user-1"
        assert payload["role"] == "student"

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "user-1"}, "not-the-secret", algorithm="HS256")
        assert decode_access_token(token) is None

    def test_garbage(self):
        assert decode_access_token("not.a.jwt") is None


class TestCurrentUser:
    def test_valid_token(self):
        assert asyncio.run(get_current_user_id(_bearer(create_access_token("user-7")))) == "user-7"

    def test_invalid_token(self):
        with pytest.raises(HTTPException) as exc:
            asyncio.run(get_current_user_id(_bearer("garbage")))
        assert exc.value.status_code == 401

    def test_token_without_subject(self):
        settings = get_settings()
        token = jwt.encode({"role": "x"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
        with pytest.raises(HTTPException) as exc:
            asyncio.run(get_current_user_id(_bearer(token)))
        assert exc.value.status_code == 401


# -- provider factories --

class TestProviders:
    def test_unknown_llm_provider(self, monkeypatch):
        settings = get_settings().model_copy(update={"LLM_PROVIDER": "bogus"})
        monkeypatch.setattr(llm_provider, "get_settings", lambda: settings)
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            llm_provider.create_llm()

    def test_unknown_embedding_provider(self, monkeypatch):
        settings = get_settings().model_copy(update={"EMBEDDING_PROVIDER": "bogus"})
        monkeypatch.setattr(llm_provider, "get_settings", lambda: settings)
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            llm_provider.create_embeddings()
