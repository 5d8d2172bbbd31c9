"""
Knowledge feature: Supabase-backed file records and blob storage.

Both classes are thin and synchronous (supabase-py is blocking); async
callers run them through ``asyncio.to_thread``.
"""

import logging
from supabase import Client

from notesrag.core.exceptions import DownloadError
from notesrag.features.knowledge.schemas import DocumentRecord

logger = logging.getLogger(__name__)


class DocumentRepository:
    """CRUD on the ``files`` table plus the subject name lookup."""

    def __init__(self, db: Client):
        self.db = db

    def get(self, file_id: str) -> DocumentRecord | None:
        result = self.db.table("files").select("*").eq("id", file_id).execute()
        if not result.data:
            return None
        return DocumentRecord.model_validate(result.data[0])

    def create(
        self,
        user_id: str,
        subject_id: str,
        name: str,
        file_type: str,
        storage_path: str,
        size: int,
    ) -> DocumentRecord:
        insert_data = {
            "user_id": user_id,
            "subject_id": subject_id,
            "name": name,
            "file_type": file_type,
            "supabase_path": storage_path,
            "size": size,
        }
        result = self.db.table("files").insert(insert_data).execute()
        return DocumentRecord.model_validate(result.data[0])

    def list_for_user(self, user_id: str, subject_id: str | None = None) -> list[dict]:
        query = (
            self.db.table("files")
            .select("id, name, size, file_type, created_at, supabase_path, subject_id")
            .eq("user_id", user_id)
        )
        if subject_id:
            query = query.eq("subject_id", subject_id)
        result = query.order("created_at", desc=True).execute()
        return result.data or []

    def get_owned(self, file_id: str, user_id: str) -> DocumentRecord | None:
        result = (
            self.db.table("files")
            .select("*")
            .eq("id", file_id)
            .eq("user_id", user_id)
            .execute()
        )
        if not result.data:
            return None
        return DocumentRecord.model_validate(result.data[0])

    def delete(self, file_id: str, user_id: str) -> None:
        self.db.table("files").delete().eq("id", file_id).eq("user_id", user_id).execute()

    def owned_file_ids(
        self,
        user_id: str,
        file_ids: list[str],
        subject_id: str | None = None,
    ) -> list[str]:
        """Filter ``file_ids`` down to those the user owns (and that sit in the subject).

        The requested order is preserved.
        """
        if not file_ids:
            return []
        query = (
            self.db.table("files")
            .select("id")
            .in_("id", file_ids)
            .eq("user_id", user_id)
        )
        if subject_id:
            query = query.eq("subject_id", subject_id)
        result = query.execute()
        valid = {row["id"] for row in (result.data or [])}
        if len(valid) != len(set(file_ids)):
            logger.warning(
                f"Some file ids are invalid or don't belong to user {user_id}. "
                f"Requested: {len(set(file_ids))}, valid: {len(valid)}"
            )
        return [fid for fid in dict.fromkeys(file_ids) if fid in valid]

    def get_subject_name(self, subject_id: str | None) -> str | None:
        if not subject_id:
            return None
        result = self.db.table("subjects").select("name").eq("id", subject_id).execute()
        if not result.data:
            return None
        return result.data[0].get("name")


class ObjectStore:
    """Blob storage on a Supabase Storage bucket."""

    def __init__(self, db: Client, bucket: str):
        self.db = db
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        self.db.storage.from_(self.bucket).upload(
            path=path,
            file=data,
            file_options={"content-type": content_type, "cache-control": "3600", "upsert": "false"},
        )
        return path

    def download(self, path: str) -> bytes:
        try:
            data = self.db.storage.from_(self.bucket).download(path)
        except Exception as e:
            raise DownloadError(path, str(e)) from e
        if data is None:
            raise DownloadError(path, "empty response")
        return data

    def remove(self, path: str) -> None:
        self.db.storage.from_(self.bucket).remove([path])

    def create_signed_url(self, path: str, expires_in: int) -> str | None:
        signed = self.db.storage.from_(self.bucket).create_signed_url(path, expires_in)
        if not signed:
            return None
        return signed.get("signedURL") or signed.get("signedUrl")
