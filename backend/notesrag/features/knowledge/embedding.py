"""
Knowledge feature: Embedding utility functions.
Wraps the LangChain embeddings model and enforces the fixed dimensionality.
"""

import logging

from langchain_core.embeddings import Embeddings

from notesrag.core.exceptions import EmbeddingMismatchError, EmbeddingUnavailableError

logger = logging.getLogger(__name__)


class Embedder:
    """Embeds questions and chunk batches with one fixed model."""

    def __init__(self, model: Embeddings, dimensions: int = 384):
        self.model = model
        self.dimensions = dimensions

    def _check(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimensions:
            raise EmbeddingMismatchError(
                f"Expected {self.dimensions}-dim vector, got {len(vector)}"
            )
        return list(vector)

    async def embed_text(self, text: str) -> list[float]:
        """Generate the embedding vector for a single text string."""
        try:
            vector = await self.model.aembed_query(text)
        except Exception as e:
            raise EmbeddingUnavailableError(str(e)) from e
        return self._check(vector)

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for many texts in one provider call.

        Raises:
            EmbeddingMismatchError: If the batch comes back with the wrong size or shape.
        """
        if not texts:
            return []
        try:
            vectors = await self.model.aembed_documents(texts)
        except Exception as e:
            raise EmbeddingUnavailableError(str(e)) from e
        if len(vectors) != len(texts):
            raise EmbeddingMismatchError(
                f"Mismatch between number of chunks ({len(texts)}) and generated vectors ({len(vectors)})."
            )
        return [self._check(v) for v in vectors]
