"""
Knowledge feature: Qdrant vector index adapter.

One flat collection holds every chunk of every user. Payload layout:
  content, fileId, subjectId, loc.pageNumber
Access isolation comes from the filters built here, never from the collection.
"""

import asyncio
import logging
import uuid

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from notesrag.core.exceptions import VectorIndexConfigError, VectorIndexUnavailableError
from notesrag.features.knowledge.schemas import TextChunk

logger = logging.getLogger(__name__)

# Fixed namespace so the same (file, page, chunk) always maps to the same point id.
CHUNK_ID_NAMESPACE = uuid.UUID("8f1d2c6e-3b7a-4c59-9e0f-5a2b61d7c4e3")


def chunk_point_id(file_id: str, page_number: int, chunk_index: int) -> str:
    """Deterministic point id: re-ingesting a file overwrites its points in place."""
    return str(uuid.uuid5(CHUNK_ID_NAMESPACE, f"{file_id}:{page_number}:{chunk_index}"))


class SearchHit(BaseModel):
    point_id: str
    file_id: str
    subject_id: str | None = None
    page_number: int
    content: str
    score: float


def build_scope_filter(file_ids: list[str], subject_id: str | None = None) -> models.Filter:
    """Conjunctive filter: subjectId equality and fileId set membership."""
    must: list[models.Condition] = [
        models.FieldCondition(key="fileId", match=models.MatchAny(any=list(file_ids))),
    ]
    if subject_id:
        must.append(models.FieldCondition(key="subjectId", match=models.MatchValue(value=subject_id)))
    return models.Filter(must=must)


def build_file_filter(file_id: str) -> models.Filter:
    return models.Filter(
        must=[models.FieldCondition(key="fileId", match=models.MatchValue(value=file_id))]
    )


class VectorIndex:
    """Async wrapper over one Qdrant collection."""

    def __init__(self, client: AsyncQdrantClient, collection_name: str, vector_size: int = 384):
        self.client = client
        self.collection_name = collection_name
        self.vector_size = vector_size
        self._ready = False
        self._lock = asyncio.Lock()

    async def ensure_collection(self) -> None:
        """Create the collection on first use; verify its vector size otherwise."""
        if self._ready:
            return
        async with self._lock:
            if self._ready:
                return
            try:
                exists = await self.client.collection_exists(self.collection_name)
                if not exists:
                    logger.info(f"Collection '{self.collection_name}' not found. Creating it...")
                    await self.client.create_collection(
                        collection_name=self.collection_name,
                        vectors_config=models.VectorParams(
                            size=self.vector_size,
                            distance=models.Distance.COSINE,
                        ),
                    )
                    for field in ("fileId", "subjectId"):
                        await self.client.create_payload_index(
                            collection_name=self.collection_name,
                            field_name=field,
                            field_schema=models.PayloadSchemaType.KEYWORD,
                        )
                else:
                    info = await self.client.get_collection(self.collection_name)
                    params = info.config.params.vectors
                    size = getattr(params, "size", None)
                    if size != self.vector_size:
                        raise VectorIndexConfigError(self.collection_name, self.vector_size, size)
            except VectorIndexConfigError:
                raise
            except Exception as e:
                raise VectorIndexUnavailableError("collection setup", str(e)) from e
            self._ready = True

    async def upsert_chunks(
        self,
        file_id: str,
        subject_id: str | None,
        chunks: list[TextChunk],
        vectors: list[list[float]],
    ) -> int:
        """Upsert one point per chunk in a single batched call."""
        if not chunks:
            return 0
        await self.ensure_collection()
        points = [
            models.PointStruct(
                id=chunk_point_id(file_id, chunk.page_number, chunk.chunk_index),
                vector=vector,
                payload={
                    "content": chunk.text,
                    "fileId": file_id,
                    "subjectId": subject_id,
                    "loc": {"pageNumber": chunk.page_number},
                },
            )
            for chunk, vector in zip(chunks, vectors, strict=True)
        ]
        try:
            await self.client.upsert(collection_name=self.collection_name, points=points, wait=True)
        except Exception as e:
            raise VectorIndexUnavailableError("upsert", str(e)) from e
        return len(points)

    async def search(
        self,
        vector: list[float],
        file_ids: list[str],
        subject_id: str | None = None,
        limit: int = 5,
        score_threshold: float | None = None,
    ) -> list[SearchHit]:
        await self.ensure_collection()
        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                query_filter=build_scope_filter(file_ids, subject_id),
                limit=limit,
                score_threshold=score_threshold,
                with_payload=True,
            )
        except Exception as e:
            raise VectorIndexUnavailableError("search", str(e)) from e

        hits = []
        for point in response.points:
            payload = point.payload or {}
            loc = payload.get("loc") or {}
            hits.append(SearchHit(
                point_id=str(point.id),
                file_id=payload.get("fileId", ""),
                subject_id=payload.get("subjectId"),
                page_number=loc.get("pageNumber", 1),
                content=payload.get("content", ""),
                score=point.score,
            ))
        return hits

    async def delete_file(self, file_id: str) -> None:
        """Delete every chunk of one file."""
        await self.ensure_collection()
        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=models.FilterSelector(filter=build_file_filter(file_id)),
                wait=True,
            )
        except Exception as e:
            raise VectorIndexUnavailableError("delete", str(e)) from e

    async def count_file(self, file_id: str) -> int:
        await self.ensure_collection()
        try:
            result = await self.client.count(
                collection_name=self.collection_name,
                count_filter=build_file_filter(file_id),
                exact=True,
            )
        except Exception as e:
            raise VectorIndexUnavailableError("count", str(e)) from e
        return result.count
