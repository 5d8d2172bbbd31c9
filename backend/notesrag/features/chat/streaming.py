"""
Chat feature: Stream frames and SSE encoding.

Frame kinds, in the order a client sees them:
  metadata (once) → token* → done | error
"""

import json
from contextlib import aclosing
from typing import AsyncGenerator, AsyncIterator


def token_frame(text: str) -> dict:
    return {"type": "token", "content": text}


def metadata_frame(chat_id: str, new_chat: bool, confidence: str | None = None) -> dict:
    return {"type": "metadata", "chat_id": chat_id, "new_chat": new_chat, "confidence": confidence}


def error_frame(message: str) -> dict:
    return {"type": "error", "content": message}


def done_frame(chat_id: str, message_id: str | None = None) -> dict:
    return {"type": "done", "chat_id": chat_id, "message_id": message_id}


def encode_sse(frame: dict) -> str:
    return f"data: {json.dumps(frame, ensure_ascii=False)}\n\n"


async def sse_stream(frames: AsyncGenerator[dict, None]) -> AsyncIterator[str]:
    async with aclosing(frames):
        async for frame in frames:
            yield encode_sse(frame)


def extract_text(content) -> str:
    """Text of a streamed model chunk; Gemini sends lists of typed parts."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                if part.get("type") == "text":
                    parts.append(part.get("text", ""))
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    return ""


class RefusalPrefixGuard:
    """Holds back the start of a generated answer while it could still be the refusal sentinel.

    Once the text can no longer turn into the sentinel it is released in
    full; if it does spell out the sentinel as whole words, ``tripped`` is
    set and nothing is released.
    """

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.tripped = False
        self._held = ""
        self._decided = False

    def feed(self, text: str) -> str:
        if self._decided:
            return "" if self.tripped else text
        self._held += text
        head = self._held.lstrip()
        if not head:
            return ""
        if head.startswith(self.prefix):
            rest = head[len(self.prefix):]
            if not rest:
                # "...for" could still become "...format"
                return ""
            if rest[0].isspace():
                return self._trip()
        elif self.prefix.startswith(head):
            return ""
        self._decided = True
        released, self._held = self._held, ""
        return released

    def flush(self) -> str:
        if not self._decided and self._held.strip() == self.prefix:
            return self._trip()
        self._decided = True
        released, self._held = self._held, ""
        return released

    def _trip(self) -> str:
        self.tripped = True
        self._decided = True
        self._held = ""
        return ""
