"""
Knowledge feature: File upload and management API routes.
"""

import asyncio
import logging
import re
import secrets
import time
import unicodedata

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from notesrag.background.queue import enqueue_ingestion
from notesrag.config import get_settings
from notesrag.core.dependencies import get_current_user_id, get_services
from notesrag.core.exceptions import AppBaseError, app_error_to_http
from notesrag.features.knowledge.extraction import resolve_extension
from notesrag.features.knowledge.schemas import UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter()

_CONTENT_TYPES = {"pdf": "application/pdf", "txt": "text/plain", "md": "text/markdown"}


def secure_filename(filename: str) -> str:
    """Strip accents and special characters, replace spaces with underscores."""
    filename = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    filename = re.sub(r"[^\w\.-]", "_", filename)
    return filename or "file"


def make_storage_path(user_id: str, filename: str) -> str:
    """``{user}/{unix_ts}-{random}-{name}``: unique per upload, readable in the bucket."""
    return f"{user_id}/{int(time.time())}-{secrets.token_hex(4)}-{secure_filename(filename)}"


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    subject_id: str = Form(...),
    user_id: str = Depends(get_current_user_id),
    services=Depends(get_services),
):
    """
    Upload a document into the user's notes.
    - Store the blob in Supabase Storage.
    - Insert the ``files`` record.
    - Enqueue the ingestion job; chunks become searchable once the worker is done.
    """
    settings = get_settings()
    filename = file.filename or "file"
    try:
        ext = resolve_extension(filename, file.content_type)
    except AppBaseError as e:
        raise app_error_to_http(e)

    file_bytes = await file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="Empty file.")
    if len(file_bytes) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB.",
        )

    content_type = file.content_type or _CONTENT_TYPES[ext]
    storage_path = make_storage_path(user_id, filename)

    try:
        await asyncio.to_thread(services.store.upload, storage_path, file_bytes, content_type)
        record = await asyncio.to_thread(
            services.documents.create,
            user_id, subject_id, filename, content_type, storage_path, len(file_bytes),
        )
    except Exception as e:
        logger.error(f"Error uploading document: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")

    try:
        await enqueue_ingestion(services.queue_pool, record.id)
    except Exception as e:
        logger.error(f"Could not enqueue ingestion for {record.id}, rolling back upload: {e}")
        await asyncio.to_thread(services.documents.delete, record.id, user_id)
        await asyncio.to_thread(services.store.remove, storage_path)
        raise HTTPException(status_code=503, detail="Ingestion queue unavailable, please retry.")

    logger.info(f"📤 Uploaded {filename} ({len(file_bytes)} bytes) as file {record.id}")
    return UploadResponse(
        id=record.id,
        name=record.name,
        file_type=record.mime_type,
        size=record.byte_size,
        path=record.storage_path,
        subject_id=subject_id,
    )


@router.get("/")
async def list_documents(
    subject_id: str | None = None,
    user_id: str = Depends(get_current_user_id),
    services=Depends(get_services),
):
    """List the user's files, newest first, optionally within one subject."""
    try:
        files = await asyncio.to_thread(services.documents.list_for_user, user_id, subject_id)
    except Exception as e:
        logger.error(f"Error fetching files: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch files: {str(e)}")
    return {"status": "success", "data": files}


@router.get("/{file_id}/url")
async def get_document_url(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    services=Depends(get_services),
):
    """Short-lived signed download URL (the bucket is private)."""
    record = await asyncio.to_thread(services.documents.get_owned, file_id, user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")

    ttl = get_settings().SIGNED_URL_TTL_SECONDS
    try:
        url = await asyncio.to_thread(services.store.create_signed_url, record.storage_path, ttl)
    except Exception as e:
        logger.error(f"Could not generate signed URL for {record.storage_path}: {e}")
        raise HTTPException(status_code=502, detail="Could not generate download URL")
    if not url:
        raise HTTPException(status_code=502, detail="Could not generate download URL")
    return {"url": url, "expires_in": ttl}


@router.delete("/{file_id}")
async def delete_document(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    services=Depends(get_services),
):
    """
    Delete a file everywhere: vector points, blob, then the record.
    Points go first, the record last.
    """
    record = await asyncio.to_thread(services.documents.get_owned, file_id, user_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")

    try:
        await services.index.delete_file(file_id)
    except AppBaseError as e:
        raise app_error_to_http(e)

    try:
        await asyncio.to_thread(services.store.remove, record.storage_path)
    except Exception as e:
        logger.warning(f"Could not remove blob {record.storage_path}: {e}")

    await asyncio.to_thread(services.documents.delete, file_id, user_id)
    logger.info(f"🗑️ Deleted file {file_id}")
    return {"status": "success", "message": "File deleted."}
