"""
Service container: every long-lived client, built once per process.

The API builds it in the FastAPI lifespan, the ingestion worker in its arq
startup hook. Routes and tasks receive the container instead of
constructing clients themselves.
"""

import logging
from dataclasses import dataclass

from arq.connections import ArqRedis
from langchain_core.language_models import BaseChatModel
from qdrant_client import AsyncQdrantClient

from notesrag.config import Settings
from notesrag.core.database import get_supabase
from notesrag.core.llm_provider import create_embeddings, create_llm
from notesrag.background.document_tasks import IngestionWorker
from notesrag.features.chat.memory import ChatStore
from notesrag.features.chat.orchestrator import QueryOrchestrator
from notesrag.features.chat.resolver import CitationResolver
from notesrag.features.knowledge.embedding import Embedder
from notesrag.features.knowledge.repository import DocumentRepository, ObjectStore
from notesrag.features.knowledge.vector_index import VectorIndex

logger = logging.getLogger(__name__)


@dataclass
class Services:
    documents: DocumentRepository
    store: ObjectStore
    embedder: Embedder
    index: VectorIndex
    ingestion_worker: IngestionWorker
    qdrant: AsyncQdrantClient
    chat_store: ChatStore | None = None
    llm: BaseChatModel | None = None
    resolver: CitationResolver | None = None
    orchestrator: QueryOrchestrator | None = None
    queue_pool: ArqRedis | None = None


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_services(settings: Settings, for_worker: bool = False) -> Services:
    """Wire repositories, index, embedder and (for the API) the chat side.

    The worker runs outside any user session and uses the service_role
    client; it never needs the chat model.
    """
    db = get_supabase("worker" if for_worker else "api")
    documents = DocumentRepository(db)
    store = ObjectStore(db, settings.STORAGE_BUCKET)

    qdrant = AsyncQdrantClient(url=settings.QDRANT_URL, api_key=settings.QDRANT_API_KEY or None)
    index = VectorIndex(qdrant, settings.QDRANT_COLLECTION, settings.EMBEDDING_DIMENSIONS)
    embedder = Embedder(create_embeddings(), settings.EMBEDDING_DIMENSIONS)

    services = Services(
        documents=documents,
        store=store,
        embedder=embedder,
        index=index,
        qdrant=qdrant,
        ingestion_worker=IngestionWorker(
            documents, store, embedder, index,
            chunk_size=settings.CHUNK_SIZE,
            chunk_overlap=settings.CHUNK_OVERLAP,
        ),
    )
    if for_worker:
        logger.info(f"🔧 Worker services ready (collection: {settings.QDRANT_COLLECTION})")
        return services

    services.chat_store = ChatStore(db, settings.CHAT_HISTORY_WINDOW)
    services.llm = create_llm()
    services.resolver = CitationResolver(documents, store, settings.SIGNED_URL_TTL_SECONDS)
    services.orchestrator = QueryOrchestrator(
        documents,
        services.chat_store,
        embedder,
        index,
        services.llm,
        top_k=settings.RETRIEVAL_TOP_K,
        timeout=settings.QUERY_TIMEOUT_SECONDS,
    )
    logger.info(f"🔧 API services ready (LLM: {settings.LLM_PROVIDER}/{settings.LLM_MODEL})")
    return services


async def close_services(services: Services) -> None:
    if services.queue_pool is not None:
        await services.queue_pool.close()
    await services.qdrant.close()
