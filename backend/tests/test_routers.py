"""
API tests for the knowledge and chat routes.
Services are wired by hand onto app.state; auth is overridden with a fixed user.
"""

import json

from fastapi.testclient import TestClient
from qdrant_client import AsyncQdrantClient

from notesrag.background.document_tasks import IngestionWorker
from notesrag.core.dependencies import get_current_user_id
from notesrag.core.services import Services
from notesrag.features.chat.citations import render_citation
from notesrag.features.chat.memory import ChatStore
from notesrag.features.chat.orchestrator import QueryOrchestrator
from notesrag.features.chat.resolver import CitationResolver
from notesrag.features.knowledge.embedding import Embedder
from notesrag.features.knowledge.repository import DocumentRepository, ObjectStore
from notesrag.features.knowledge.vector_index import VectorIndex
from notesrag.main import create_app

from fakes import FakeQueuePool, ScriptedChatModel, TopicEmbeddings

USER = "user-1"


def _client(db, pool: FakeQueuePool | None = None) -> tuple[TestClient, Services]:
    documents = DocumentRepository(db)
    store = ObjectStore(db, "files")
    embedder = Embedder(TopicEmbeddings(), 384)
    qdrant = AsyncQdrantClient(location=":memory:")
    index = VectorIndex(qdrant, "test-chunks", 384)
    chat_store = ChatStore(db)
    llm = ScriptedChatModel(["unused"])
    services = Services(
        documents=documents,
        store=store,
        embedder=embedder,
        index=index,
        ingestion_worker=IngestionWorker(documents, store, embedder, index),
        qdrant=qdrant,
        chat_store=chat_store,
        llm=llm,
        resolver=CitationResolver(documents, store, 60),
        orchestrator=QueryOrchestrator(documents, chat_store, embedder, index, llm),
        queue_pool=pool or FakeQueuePool(),
    )
    app = create_app()
    app.state.services = services
    app.dependency_overrides[get_current_user_id] = lambda: USER
    return TestClient(app), services


def _frames(body: str) -> list[dict]:
    return [json.loads(block[len("data: "):]) for block in body.split("\n\n") if block.startswith("data: ")]


# -- system --

class TestHealth:
    def test_health(self, db):
        client, _ = _client(db)
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# -- knowledge --

class TestKnowledgeRoutes:
    def test_upload_stores_and_enqueues(self, db):
        pool = FakeQueuePool()
        client, _ = _client(db, pool)
        response = client.post(
            "/api/knowledge/upload",
            files={"file": ("Ghi chú tế bào.txt", b"Mitochondria make ATP", "text/plain")},
            data={"subject_id": "sub-bio"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["subject_id"] == "sub-bio"
        assert body["path"].startswith(f"{USER}/")
        assert body["path"].endswith("-Ghi_chu_te_bao.txt")
        assert pool.jobs == [("ingest_file", (body["id"],))]
        assert db.storage.buckets["files"][body["path"]] == b"Mitochondria make ATP"

    def test_upload_rejects_unsupported_type(self, db):
        client, _ = _client(db)
        response = client.post(
            "/api/knowledge/upload",
            files={"file": ("setup.exe", b"MZ", "application/octet-stream")},
            data={"subject_id": "sub-bio"},
        )
        assert response.status_code == 415
        assert response.json()["detail"]["type"] == "UnsupportedFileError"

    def test_upload_rolls_back_when_queue_down(self, db):
        client, _ = _client(db, FakeQueuePool(fail=True))
        response = client.post(
            "/api/knowledge/upload",
            files={"file": ("notes.txt", b"ATP", "text/plain")},
            data={"subject_id": "sub-bio"},
        )
        assert response.status_code == 503
        assert db.rows("files") == []
        assert db.storage.buckets["files"] == {}

    def test_list_only_own_files(self, db):
        mine = db.add_file(USER, "sub-bio", "mine.txt", b"x")
        db.add_file("user-2", "sub-bio", "theirs.txt", b"y")
        client, _ = _client(db)
        response = client.get("/api/knowledge/", params={"subject_id": "sub-bio"})
        assert [f["id"] for f in response.json()["data"]] == [mine]

    def test_signed_url(self, db):
        file_id = db.add_file(USER, "sub-bio", "mine.txt", b"x")
        client, _ = _client(db)
        body = client.get(f"/api/knowledge/{file_id}/url").json()
        assert body["url"].startswith("https://storage.test/")
        assert body["expires_in"] == 60

    def test_signed_url_for_foreign_file(self, db):
        file_id = db.add_file("user-2", "sub-bio", "theirs.txt", b"y")
        client, _ = _client(db)
        assert client.get(f"/api/knowledge/{file_id}/url").status_code == 404

    def test_delete_removes_everything(self, db):
        file_id = db.add_file(USER, "sub-bio", "cells.txt", b"Mitochondria make ATP")
        client, _ = _client(db)
        assert client.delete(f"/api/knowledge/{file_id}").status_code == 200
        assert db.rows("files", id=file_id) == []
        assert db.storage.buckets["files"] == {}


# -- chat --

class TestChatRoutes:
    def test_empty_scope_is_400(self, db):
        client, _ = _client(db)
        response = client.post("/api/chat/", json={"message": "What is ATP?", "file_ids": []})
        assert response.status_code == 400
        assert response.json()["detail"]["type"] == "EmptyScopeError"

    def test_blank_message_is_422(self, db):
        client, _ = _client(db)
        assert client.post("/api/chat/", json={"message": ""}).status_code == 422

    def test_refusal_streams_as_sse(self, db):
        file_id = db.add_file(USER, "sub-bio", "cells.txt", b"Mitochondria make ATP")
        client, _ = _client(db)
        response = client.post(
            "/api/chat/",
            json={"message": "Who won the football final?", "subject_id": "sub-bio", "file_ids": [file_id]},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = _frames(response.text)
        assert [f["type"] for f in frames] == ["metadata", "token", "done"]
        assert frames[1]["content"] == "Not found in your notes for Biology"

    def test_messages_with_resolved_citations(self, db):
        file_id = db.add_file(USER, "sub-bio", "cells.txt", b"Mitochondria make ATP")
        db.seed("chats", [{"id": "chat-1", "user_id": USER, "title": "ATP"}])
        db.seed("messages", [
            {"id": "m1", "chat_id": "chat-1", "role": "user", "content": "What makes ATP?"},
            {
                "id": "m2",
                "chat_id": "chat-1",
                "role": "assistant",
                "content": "Mitochondria" + render_citation(3, file_id, 1, "Mitochondria make ATP"),
            },
        ])
        client, _ = _client(db)
        body = client.get("/api/chat/chat-1/messages").json()
        user_msg, answer = body["messages"]
        assert user_msg["segments"] is None
        citation = answer["segments"][1]
        assert citation["display_id"] == 1
        assert citation["source_id"] == 3
        assert citation["url"].startswith("https://storage.test/")

    def test_foreign_chat_is_404(self, db):
        db.seed("chats", [{"id": "chat-9", "user_id": "user-2", "title": "x"}])
        client, _ = _client(db)
        assert client.get("/api/chat/chat-9/messages").status_code == 404
