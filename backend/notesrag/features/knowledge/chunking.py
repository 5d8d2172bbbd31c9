"""
Knowledge feature: Page-bounded chunking.

Each page is split on its own so a chunk never spans two pages and always
keeps the page number it came from.
"""

from langchain_text_splitters import RecursiveCharacterTextSplitter

from notesrag.features.knowledge.schemas import PageText, TextChunk


def build_splitter(chunk_size: int = 1000, chunk_overlap: int = 200) -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        separators=["\n\n", "\n", " ", ""],
    )


def chunk_pages(
    pages: list[PageText],
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> list[TextChunk]:
    """Split every page into overlapping windows, in page order."""
    splitter = build_splitter(chunk_size, chunk_overlap)
    chunks: list[TextChunk] = []
    for page in pages:
        pieces = [p for p in splitter.split_text(page.text) if p.strip()]
        for index, piece in enumerate(pieces):
            chunks.append(TextChunk(page_number=page.page_number, chunk_index=index, text=piece))
    return chunks
