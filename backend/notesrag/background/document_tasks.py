"""
Background ingestion: turns an uploaded file into searchable vector chunks.

Pipeline per file:
  1. Load the file record (missing record = stale job).
  2. Download the blob.
  3. Extract text per page (1-based page numbers).
  4. Chunk each page (≈1000 chars, 200 overlap).
  5. Embed all chunks in one call.
  6. Upsert one point per chunk.

Point ids are derived from (file, page, chunk) so a retried or duplicated job
overwrites the same points instead of adding new ones.
"""

import asyncio
import logging

from notesrag.core.exceptions import DocumentNotFoundError
from notesrag.features.knowledge.chunking import chunk_pages
from notesrag.features.knowledge.embedding import Embedder
from notesrag.features.knowledge.extraction import extract_pages
from notesrag.features.knowledge.repository import DocumentRepository, ObjectStore
from notesrag.features.knowledge.schemas import IngestionResult
from notesrag.features.knowledge.vector_index import VectorIndex

logger = logging.getLogger(__name__)


class IngestionWorker:
    """Processes file-ready jobs. Safe to run concurrently and to retry in full."""

    def __init__(
        self,
        documents: DocumentRepository,
        store: ObjectStore,
        embedder: Embedder,
        index: VectorIndex,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
    ):
        self.documents = documents
        self.store = store
        self.embedder = embedder
        self.index = index
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    async def process(self, file_id: str) -> IngestionResult:
        logger.info(f"🚀 Starting ingestion for file_id: {file_id}")

        record = await asyncio.to_thread(self.documents.get, file_id)
        if record is None:
            raise DocumentNotFoundError(file_id)

        file_bytes = await asyncio.to_thread(self.store.download, record.storage_path)

        pages = await asyncio.to_thread(extract_pages, file_bytes, record.name or record.storage_path, record.mime_type)
        if not pages:
            logger.warning(f"⚠️ No extractable text in {file_id}; it will not be searchable.")
            return IngestionResult(file_id=file_id, pages=0, chunks=0)

        chunks = chunk_pages(pages, self.chunk_size, self.chunk_overlap)
        logger.info(f"✅ Extracted {len(pages)} pages, generated {len(chunks)} chunks.")

        vectors = await self.embedder.embed_texts([chunk.text for chunk in chunks])

        stored = await self.index.upsert_chunks(file_id, record.scope_id, chunks, vectors)
        logger.info(f"🎉 Stored {stored} chunks for file {file_id}.")
        return IngestionResult(file_id=file_id, pages=len(pages), chunks=stored)
