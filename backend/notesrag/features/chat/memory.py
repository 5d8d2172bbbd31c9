"""
Chat feature: Chat and message persistence.

Tables:
  chats            (id, user_id, title)
  messages         (id, chat_id, role, content, created_at)
  message_files    (message_id, file_id)  -- files a user message was scoped to
  message_sources  (message_id, file_id)  -- files an answer cited
"""

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from supabase import Client

TITLE_MAX_CHARS = 50


def make_title(first_message: str) -> str:
    title = first_message[:TITLE_MAX_CHARS]
    return title + "..." if len(first_message) > TITLE_MAX_CHARS else title


class ChatStore:
    """Chats, message history and answer persistence for one Supabase project."""

    def __init__(self, db: Client, history_window: int = 10):
        self.db = db
        self.history_window = history_window

    # ── Chats ────────────────────────────────────────────

    def get_chat(self, chat_id: str, user_id: str) -> dict | None:
        result = (
            self.db.table("chats")
            .select("*")
            .eq("id", chat_id)
            .eq("user_id", user_id)
            .execute()
        )
        return result.data[0] if result.data else None

    def get_or_create_chat(self, user_id: str, chat_id: str | None, first_message: str) -> tuple[dict, bool]:
        """Get an existing chat or create a new one.

        Returns:
            (chat record, whether it was created now)
        """
        if chat_id:
            chat = self.get_chat(chat_id, user_id)
            if chat:
                return chat, False

        result = (
            self.db.table("chats")
            .insert({"user_id": user_id, "title": make_title(first_message)})
            .execute()
        )
        return result.data[0], True

    # ── Messages ─────────────────────────────────────────

    def apply_sliding_window(self, messages: list[BaseMessage]) -> list[BaseMessage]:
        """Keep only the last N messages in context."""
        if len(messages) <= self.history_window:
            return messages
        return messages[-self.history_window:]

    def load_history(self, chat_id: str) -> list[BaseMessage]:
        """Load chat history for a chat from DB, trimmed to the window."""
        result = (
            self.db.table("messages")
            .select("role, content")
            .eq("chat_id", chat_id)
            .order("created_at")
            .execute()
        )

        messages: list[BaseMessage] = []
        for msg in result.data or []:
            if msg["role"] == "user":
                messages.append(HumanMessage(content=msg["content"]))
            elif msg["role"] == "assistant":
                messages.append(AIMessage(content=msg["content"]))

        return self.apply_sliding_window(messages)

    def save_user_message(self, chat_id: str, content: str, file_ids: list[str]) -> str:
        result = self.db.table("messages").insert({
            "chat_id": chat_id,
            "role": "user",
            "content": content,
        }).execute()
        message_id = result.data[0]["id"]
        if file_ids:
            self.db.table("message_files").insert(
                [{"message_id": message_id, "file_id": fid} for fid in file_ids]
            ).execute()
        return message_id

    def save_assistant_message(self, chat_id: str, content: str, cited_file_ids: list[str]) -> str:
        result = self.db.table("messages").insert({
            "chat_id": chat_id,
            "role": "assistant",
            "content": content,
        }).execute()
        message_id = result.data[0]["id"]
        if cited_file_ids:
            self.db.table("message_sources").insert(
                [{"message_id": message_id, "file_id": fid} for fid in cited_file_ids]
            ).execute()
        return message_id

    def attached_file_ids(self, chat_id: str) -> list[str]:
        """Files any earlier user message in the chat was scoped to, oldest first."""
        result = (
            self.db.table("messages")
            .select("id, message_files(file_id)")
            .eq("chat_id", chat_id)
            .eq("role", "user")
            .order("created_at")
            .execute()
        )
        seen: dict[str, None] = {}
        for msg in result.data or []:
            for link in msg.get("message_files") or []:
                seen.setdefault(link["file_id"], None)
        return list(seen)

    def list_messages(self, chat_id: str) -> list[dict]:
        result = (
            self.db.table("messages")
            .select("id, role, content, created_at")
            .eq("chat_id", chat_id)
            .order("created_at", desc=False)
            .execute()
        )
        return result.data or []
