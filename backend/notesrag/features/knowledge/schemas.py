from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional


class DocumentRecord(BaseModel):
    """A row of the ``files`` table."""
    id: str
    owner_id: str = Field(alias="user_id")
    scope_id: Optional[str] = Field(default=None, alias="subject_id")
    name: str = ""
    storage_path: str = Field(alias="supabase_path")
    byte_size: int = Field(default=0, alias="size")
    mime_type: str = Field(default="application/octet-stream", alias="file_type")
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class PageText(BaseModel):
    page_number: int  # 1-based
    text: str


class TextChunk(BaseModel):
    page_number: int
    chunk_index: int  # position within the page
    text: str


class IngestionResult(BaseModel):
    file_id: str
    pages: int
    chunks: int


class UploadResponse(BaseModel):
    id: str
    name: str
    file_type: str
    size: int
    path: str
    subject_id: str
