"""
notes-rag - FastAPI Application Entry Point.

Feature-based modular architecture:
  knowledge/  upload, list, download and delete of the user's files
  chat/       cited answers streamed from the indexed notes

Ingestion runs out of process: arq notesrag.background.worker.WorkerSettings
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notesrag.background.queue import create_queue_pool
from notesrag.config import get_settings
from notesrag.core.services import build_services, close_services, configure_logging

# ── Feature Routers ──────────────────────────────────────
from notesrag.features.chat.router import router as chat_router
from notesrag.features.knowledge.router import router as knowledge_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup & shutdown."""
    settings = get_settings()
    configure_logging(settings)
    logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} starting...")
    logger.info(f"🤖 LLM Provider: {settings.LLM_PROVIDER} ({settings.LLM_MODEL})")
    logger.info(f"🔗 Supabase: {settings.SUPABASE_URL[:40]}...")

    services = build_services(settings)
    services.queue_pool = await create_queue_pool(settings)
    app.state.services = services
    yield
    logger.info("👋 Shutting down...")
    await close_services(services)


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Answers questions strictly from your own notes, with citations",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Register Feature Routers ─────────────────────────
    app.include_router(knowledge_router, prefix="/api/knowledge", tags=["Knowledge"])
    app.include_router(chat_router, prefix="/api/chat", tags=["Chat"])

    # ── Health Check ─────────────────────────────────────
    @app.get("/health", tags=["System"])
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    return app


app = create_app()
