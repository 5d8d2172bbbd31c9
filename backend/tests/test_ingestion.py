"""
Tests for the ingestion worker and its arq task wrapper.
"""

import asyncio
from types import SimpleNamespace

import pytest
from arq import Retry
from qdrant_client import AsyncQdrantClient

from notesrag.background.document_tasks import IngestionWorker
from notesrag.background.worker import ingest_file
from notesrag.core.exceptions import (
    DocumentNotFoundError,
    DownloadError,
    EmbeddingMismatchError,
    EmbeddingUnavailableError,
    UnsupportedFileError,
)
from notesrag.features.knowledge.embedding import Embedder
from notesrag.features.knowledge.repository import DocumentRepository, ObjectStore
from notesrag.features.knowledge.vector_index import VectorIndex

from fakes import BrokenEmbeddings, ShortBatchEmbeddings, TopicEmbeddings

NOTES = ("Mitochondria are the powerhouse of the cell and make ATP. " * 60).encode()


def _worker(db, embeddings=None) -> IngestionWorker:
    embeddings = embeddings or TopicEmbeddings()
    index = VectorIndex(AsyncQdrantClient(location=":memory:"), "test-chunks", 384)
    return IngestionWorker(
        DocumentRepository(db),
        ObjectStore(db, "files"),
        Embedder(embeddings, 384),
        index,
    )


# -- IngestionWorker --

class TestIngestionWorker:
    def test_ingests_text_file(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        worker = _worker(db)

        async def run():
            result = await worker.process(file_id)
            return result, await worker.index.count_file(file_id)

        result, stored = asyncio.run(run())
        assert result.pages == 1
        assert result.chunks >= 3
        assert stored == result.chunks

    def test_chunks_embedded_in_one_call(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        embeddings = TopicEmbeddings()
        asyncio.run(_worker(db, embeddings).process(file_id))
        assert [kind for kind, _ in embeddings.calls] == ["documents"]

    def test_reingest_does_not_duplicate(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        worker = _worker(db)

        async def run():
            first = await worker.process(file_id)
            await worker.process(file_id)
            return first.chunks, await worker.index.count_file(file_id)

        chunks, stored = asyncio.run(run())
        assert stored == chunks

    def test_concurrent_runs_same_file(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        worker = _worker(db)

        async def run():
            results = await asyncio.gather(worker.process(file_id), worker.process(file_id))
            hits = await worker.index.search(
                TopicEmbeddings().vector("mitochondria"), [file_id], limit=100
            )
            return results, hits

        results, hits = asyncio.run(run())
        assert results[0].chunks == results[1].chunks
        assert len(hits) == results[0].chunks
        assert {h.file_id for h in hits} == {file_id}
        assert {h.subject_id for h in hits} == {"sub-bio"}

    def test_empty_file_completes_with_zero_chunks(self, db):
        file_id = db.add_file("user-1", "sub-bio", "blank.txt", b"   \n")
        embeddings = TopicEmbeddings()
        result = asyncio.run(_worker(db, embeddings).process(file_id))
        assert result.chunks == 0
        assert embeddings.calls == []

    def test_zero_byte_blob_completes_with_zero_chunks(self, db):
        file_id = db.add_file("user-1", "sub-bio", "scan.pdf", b"", file_type="application/pdf")
        embeddings = TopicEmbeddings()
        result = asyncio.run(_worker(db, embeddings).process(file_id))
        assert (result.pages, result.chunks) == (0, 0)
        assert embeddings.calls == []

    def test_missing_record(self, db):
        with pytest.raises(DocumentNotFoundError):
            asyncio.run(_worker(db).process("no-such-file"))

    def test_missing_blob(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        db.storage.buckets["files"].clear()
        with pytest.raises(DownloadError) as exc:
            asyncio.run(_worker(db).process(file_id))
        assert exc.value.retryable

    def test_short_embedding_batch(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        worker = _worker(db, ShortBatchEmbeddings())
        with pytest.raises(EmbeddingMismatchError):
            asyncio.run(worker.process(file_id))

    def test_wrong_dimensions(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        worker = _worker(db, TopicEmbeddings(size=768))
        with pytest.raises(EmbeddingMismatchError):
            asyncio.run(worker.process(file_id))

    def test_embedding_outage(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        with pytest.raises(EmbeddingUnavailableError):
            asyncio.run(_worker(db, BrokenEmbeddings()).process(file_id))


# -- ingest_file (arq task) --

class _RaisingWorker:
    def __init__(self, error: Exception):
        self.error = error

    async def process(self, file_id: str):
        raise self.error


def _ctx(error: Exception, job_try: int = 1) -> dict:
    return {"services": SimpleNamespace(ingestion_worker=_RaisingWorker(error)), "job_try": job_try}


class TestIngestFileTask:
    def test_success_returns_result(self, db):
        file_id = db.add_file("user-1", "sub-bio", "cells.txt", NOTES)
        ctx = {"services": SimpleNamespace(ingestion_worker=_worker(db)), "job_try": 1}
        result = asyncio.run(ingest_file(ctx, file_id))
        assert result["file_id"] == file_id
        assert result["chunks"] > 0

    def test_stale_job_is_dropped(self):
        result = asyncio.run(ingest_file(_ctx(DocumentNotFoundError("gone")), "gone"))
        assert result == {"skipped": True, "reason": "not_found", "file_id": "gone"}

    def test_transient_error_retries_with_backoff(self):
        with pytest.raises(Retry) as exc:
            asyncio.run(ingest_file(_ctx(DownloadError("a/b.pdf", "timeout"), job_try=2), "f"))
        assert exc.value.defer_score == 20_000

    def test_permanent_error_is_raised(self):
        with pytest.raises(UnsupportedFileError):
            asyncio.run(ingest_file(_ctx(UnsupportedFileError("x.exe")), "f"))
