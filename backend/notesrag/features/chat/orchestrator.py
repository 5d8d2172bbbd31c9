"""
Chat feature: Query orchestration.

A question goes through two phases:
  prepare()  scope check → chat + user message → embed → search → confidence.
             Errors here surface before any frame is sent.
  stream()   metadata frame → refusal text or streamed model tokens →
             persisted assistant message → done frame.

Both phases share one deadline. Nothing is persisted for an answer that
fails, times out or is abandoned by the client.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, TypeVar

from langchain_core.language_models import BaseChatModel

from notesrag.core.exceptions import EmptyScopeError, GenerationError, QueryTimeoutError
from notesrag.features.chat.citations import (
    citations_of,
    cited_document_ids,
    ids_strictly_increasing,
    parse_citations,
)
from notesrag.features.chat.confidence import INDEX_SCORE_THRESHOLD, ConfidenceResult, score_confidence
from notesrag.features.chat.memory import ChatStore
from notesrag.features.chat.prompts import (
    NO_ANSWER_TEXT,
    REFUSAL_PREFIX,
    build_answer_prompt,
    refusal_text,
)
from notesrag.features.chat.schemas import RetrievedPassage, ScopeFilter
from notesrag.features.chat.streaming import (
    RefusalPrefixGuard,
    done_frame,
    error_frame,
    extract_text,
    metadata_frame,
    token_frame,
)
from notesrag.features.knowledge.embedding import Embedder
from notesrag.features.knowledge.repository import DocumentRepository
from notesrag.features.knowledge.vector_index import SearchHit, VectorIndex

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PreparedAnswer:
    chat_id: str
    new_chat: bool
    question: str
    scope: ScopeFilter
    passages: list[RetrievedPassage]
    confidence: ConfidenceResult
    deadline: float
    prompt: str | None = None
    refusal: str | None = None


class QueryOrchestrator:
    """Answers questions strictly from the user's indexed notes."""

    def __init__(
        self,
        documents: DocumentRepository,
        chats: ChatStore,
        embedder: Embedder,
        index: VectorIndex,
        llm: BaseChatModel,
        top_k: int = 5,
        timeout: float = 60.0,
    ):
        self.documents = documents
        self.chats = chats
        self.embedder = embedder
        self.index = index
        self.llm = llm
        self.top_k = top_k
        self.timeout = timeout

    # ── Deadline helpers ─────────────────────────────────

    def new_deadline(self) -> float:
        return asyncio.get_running_loop().time() + self.timeout

    async def _within(self, deadline: float, awaitable: Awaitable[T]) -> T:
        remaining = max(0.0, deadline - asyncio.get_running_loop().time())
        try:
            return await asyncio.wait_for(awaitable, remaining)
        except TimeoutError as e:
            raise QueryTimeoutError(self.timeout) from e

    # ── Phase 1: prepare ─────────────────────────────────

    async def resolve_scope(
        self,
        user_id: str,
        subject_id: str | None,
        file_ids: list[str] | None,
        chat_id: str | None = None,
    ) -> ScopeFilter:
        """Validate the requested files; reuse the chat's earlier files when none are given.

        Raises:
            EmptyScopeError: If no usable file remains.
        """
        requested = list(file_ids or [])
        if not requested and chat_id:
            chat = await asyncio.to_thread(self.chats.get_chat, chat_id, user_id)
            if chat:
                requested = await asyncio.to_thread(self.chats.attached_file_ids, chat_id)

        if not requested:
            raise EmptyScopeError()
        valid = await asyncio.to_thread(self.documents.owned_file_ids, user_id, requested, subject_id)
        if not valid:
            raise EmptyScopeError()
        return ScopeFilter(subject_id=subject_id, file_ids=valid)

    def _to_passages(self, hits: list[SearchHit], scope: ScopeFilter) -> list[RetrievedPassage]:
        passages: list[RetrievedPassage] = []
        for hit in hits:
            # same conditions as the index-side filter
            if not scope.allows(hit.file_id, hit.subject_id):
                logger.warning(f"Dropping out-of-scope hit {hit.point_id} (file {hit.file_id})")
                continue
            passages.append(RetrievedPassage(
                source_index=len(passages) + 1,
                document_id=hit.file_id,
                page_number=hit.page_number,
                text=hit.content,
                similarity_score=hit.score,
            ))
        return passages

    async def prepare(
        self,
        user_id: str,
        question: str,
        scope: ScopeFilter,
        chat_id: str | None = None,
        deadline: float | None = None,
    ) -> PreparedAnswer:
        if not scope.file_ids:
            raise EmptyScopeError()
        if deadline is None:
            deadline = self.new_deadline()

        chat, new_chat = await self._within(
            deadline, asyncio.to_thread(self.chats.get_or_create_chat, user_id, chat_id, question)
        )
        history = await self._within(deadline, asyncio.to_thread(self.chats.load_history, chat["id"]))
        await self._within(
            deadline, asyncio.to_thread(self.chats.save_user_message, chat["id"], question, scope.file_ids)
        )

        vector = await self._within(deadline, self.embedder.embed_text(question))
        hits = await self._within(deadline, self.index.search(
            vector,
            file_ids=scope.file_ids,
            subject_id=scope.subject_id,
            limit=self.top_k,
            score_threshold=INDEX_SCORE_THRESHOLD,
        ))
        passages = self._to_passages(hits, scope)
        confidence = score_confidence(passages)
        logger.info(
            f"🔎 Chat {chat['id']}: {len(passages)} passages, mean={confidence.mean_score:.3f}, "
            f"confidence={confidence.level.value}, refuse={confidence.refuse}"
        )

        prepared = PreparedAnswer(
            chat_id=chat["id"],
            new_chat=new_chat,
            question=question,
            scope=scope,
            passages=passages,
            confidence=confidence,
            deadline=deadline,
        )
        if confidence.refuse:
            scope_name = await self._within(
                deadline, asyncio.to_thread(self.documents.get_subject_name, scope.subject_id)
            )
            prepared.refusal = refusal_text(scope_name)
        else:
            prepared.prompt = build_answer_prompt(question, passages, history)
        return prepared

    # ── Phase 2: stream ──────────────────────────────────

    async def stream(self, prepared: PreparedAnswer) -> AsyncIterator[dict]:
        yield metadata_frame(prepared.chat_id, prepared.new_chat, prepared.confidence.level.value)

        if prepared.refusal is not None:
            yield token_frame(prepared.refusal)
            async for frame in self._persist(prepared, prepared.refusal, cited=[]):
                yield frame
            return

        parts: list[str] = []
        guard = RefusalPrefixGuard(REFUSAL_PREFIX)
        llm_stream = self.llm.astream(prepared.prompt)
        try:
            while True:
                try:
                    chunk = await self._within(prepared.deadline, anext(llm_stream))
                except StopAsyncIteration:
                    break
                released = guard.feed(extract_text(chunk.content))
                if guard.tripped:
                    break
                if released:
                    parts.append(released)
                    yield token_frame(released)
            tail = guard.flush()
            if guard.tripped:
                logger.warning(f"Chat {prepared.chat_id}: model echoed the refusal sentinel, answering with no-answer text")
                parts = [NO_ANSWER_TEXT]
                yield token_frame(NO_ANSWER_TEXT)
            elif tail:
                parts.append(tail)
                yield token_frame(tail)
        except QueryTimeoutError as e:
            logger.error(f"Chat {prepared.chat_id}: {e.message} while streaming")
            yield error_frame(e.message)
            return
        except asyncio.CancelledError:
            logger.info(f"Chat {prepared.chat_id}: client disconnected, answer discarded")
            raise
        except Exception as e:
            logger.error(f"Chat {prepared.chat_id}: generation failed: {e}")
            yield error_frame(GenerationError(str(e)).message)
            return
        finally:
            await llm_stream.aclose()

        full_text = "".join(parts)
        if not full_text.strip():
            logger.error(f"Chat {prepared.chat_id}: model returned an empty answer")
            yield error_frame(GenerationError("empty answer").message)
            return

        segments = parse_citations(full_text)
        if not ids_strictly_increasing(citations_of(segments)):
            logger.warning(f"Chat {prepared.chat_id}: citation ids are not strictly increasing")
        cited = cited_document_ids(segments, [p.document_id for p in prepared.passages])
        async for frame in self._persist(prepared, full_text, cited):
            yield frame

    async def _persist(self, prepared: PreparedAnswer, content: str, cited: list[str]) -> AsyncIterator[dict]:
        try:
            message_id = await asyncio.to_thread(
                self.chats.save_assistant_message, prepared.chat_id, content, cited
            )
        except Exception as e:
            logger.error(f"Chat {prepared.chat_id}: failed to save answer: {e}")
            yield error_frame("Failed to save the answer")
            return
        yield done_frame(prepared.chat_id, message_id)

    # ── One-shot ─────────────────────────────────────────

    async def answer(
        self,
        user_id: str,
        question: str,
        subject_id: str | None = None,
        file_ids: list[str] | None = None,
        chat_id: str | None = None,
    ) -> AsyncIterator[dict]:
        """Resolve scope, prepare and stream in one go.

        Errors from the prepare phase are raised on the first iteration.
        """
        deadline = self.new_deadline()
        scope = await self.resolve_scope(user_id, subject_id, file_ids, chat_id)
        prepared = await self.prepare(user_id, question, scope, chat_id, deadline)
        async with aclosing(self.stream(prepared)) as frames:
            async for frame in frames:
                yield frame
