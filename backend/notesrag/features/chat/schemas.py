from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    chat_id: str | None = None
    subject_id: str | None = None
    file_ids: list[str] | None = None


class ScopeFilter(BaseModel):
    """Which chunks a query may retrieve: one subject and an explicit file allow-list."""
    subject_id: str | None = None
    file_ids: list[str] = []

    def allows(self, file_id: str, subject_id: str | None) -> bool:
        if file_id not in self.file_ids:
            return False
        return self.subject_id is None or subject_id == self.subject_id


class RetrievedPassage(BaseModel):
    source_index: int  # 1-based, stable for one answer
    document_id: str
    page_number: int
    text: str
    similarity_score: float
