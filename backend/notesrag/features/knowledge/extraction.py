"""
Knowledge feature: Text extraction from uploaded blobs.
"""

import logging
import os
import tempfile

from langchain_community.document_loaders import PyPDFLoader

from notesrag.core.exceptions import UnsupportedFileError
from notesrag.features.knowledge.schemas import PageText

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"pdf", "txt", "md"}

_MIME_EXTENSIONS = {
    "application/pdf": "pdf",
    "text/plain": "txt",
    "text/markdown": "md",
}


def resolve_extension(filename: str, mime_type: str | None = None) -> str:
    """Pick the loader key from the file name, falling back to the mime type."""
    if "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        if ext in ALLOWED_EXTENSIONS:
            return ext
    if mime_type and mime_type in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[mime_type]
    raise UnsupportedFileError(filename)


def extract_pages(file_bytes: bytes, filename: str, mime_type: str | None = None) -> list[PageText]:
    """
    Extract text per page, with 1-based page numbers.
    Pages without any text are dropped; their numbers are not reused.
    PyPDFLoader needs a file path, so the bytes go through a temp file.
    """
    ext = resolve_extension(filename, mime_type)
    if not file_bytes:
        return []

    if ext in ("txt", "md"):
        text = file_bytes.decode("utf-8", errors="replace")
        return [PageText(page_number=1, text=text)] if text.strip() else []

    with tempfile.NamedTemporaryFile(delete=False, suffix=f".{ext}") as temp_file:
        temp_file.write(file_bytes)
        temp_path = temp_file.name

    try:
        docs = PyPDFLoader(temp_path).load()
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)

    pages = []
    for position, doc in enumerate(docs):
        page_index = doc.metadata.get("page", position)  # PyPDFLoader pages are 0-indexed
        if not isinstance(page_index, int):
            page_index = position
        if not doc.page_content.strip():
            continue
        pages.append(PageText(page_number=page_index + 1, text=doc.page_content))

    logger.info(f"📄 Extracted {len(pages)}/{len(docs)} non-empty pages from {filename}")
    return pages
