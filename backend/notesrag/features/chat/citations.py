"""
Chat feature: Citation markers.

Wire format, one marker per claim:
  <citation source-id="3" file-id="<file uuid>" file-page-number="5" cited-text="...">[3]</citation>

Attribute values are HTML-escaped. Anything that does not parse as a complete
marker is kept as literal text, so a malformed marker never breaks a render.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Union

logger = logging.getLogger(__name__)

OPEN_TAG = "<citation"
CLOSE_TAG = "</citation>"

# A dangling opener is released as text once this much has piled up behind it.
MAX_PENDING_MARKER = 4000

_MARKER_RE = re.compile(
    r'<citation((?:\s+[\w-]+\s*=\s*"[^"]*")*)\s*>(.*?)</citation>',
    re.DOTALL,
)
_ATTR_RE = re.compile(r'([\w-]+)\s*=\s*"([^"]*)"')


@dataclass
class TextSegment:
    text: str


@dataclass
class Citation:
    citation_id: int
    file_id: str
    page_number: int
    cited_text: str
    raw: str = field(default="", repr=False)


Segment = Union[TextSegment, Citation]


def render_citation(citation_id: int, file_id: str, page_number: int, cited_text: str) -> str:
    """Build one marker; the visible content is just the bracketed id."""
    return (
        f'<citation source-id="{citation_id}" '
        f'file-id="{html.escape(file_id, quote=True)}" '
        f'file-page-number="{page_number}" '
        f'cited-text="{html.escape(cited_text, quote=True)}">[{citation_id}]</citation>'
    )


def parse_marker(raw: str) -> Citation | None:
    """Parse one complete marker, or None if it is malformed."""
    match = _MARKER_RE.fullmatch(raw)
    if not match:
        return None
    attrs = {k: html.unescape(v) for k, v in _ATTR_RE.findall(match.group(1))}
    try:
        citation_id = int(attrs["source-id"].strip("[] "))
        page_number = int(attrs["file-page-number"])
        file_id = attrs["file-id"].strip()
        cited_text = attrs["cited-text"]
    except (KeyError, ValueError):
        return None
    if not file_id or page_number < 1 or citation_id < 1:
        return None
    return Citation(
        citation_id=citation_id,
        file_id=file_id,
        page_number=page_number,
        cited_text=cited_text,
        raw=raw,
    )


class CitationStreamParser:
    """Incremental parser for streamed answer text.

    ``feed`` returns the segments that are complete so far; text that might
    still turn into a marker is held until its closing tag arrives.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, delta: str) -> list[Segment]:
        self._buffer += delta
        out: list[Segment] = []
        while self._buffer:
            start = self._buffer.find("<")
            if start == -1:
                out.append(TextSegment(self._buffer))
                self._buffer = ""
                break
            if start > 0:
                out.append(TextSegment(self._buffer[:start]))
                self._buffer = self._buffer[start:]

            head = self._buffer[:len(OPEN_TAG)]
            if not OPEN_TAG.startswith(head):
                out.append(TextSegment("<"))
                self._buffer = self._buffer[1:]
                continue
            if len(head) < len(OPEN_TAG):
                break  # could still become "<citation"

            close = self._buffer.find(CLOSE_TAG)
            reopen = self._buffer.find(OPEN_TAG, 1)
            if reopen != -1 and (close == -1 or reopen < close):
                # first opener never closed before the next one started
                out.append(TextSegment(self._buffer[:reopen]))
                self._buffer = self._buffer[reopen:]
                continue
            if close == -1:
                if len(self._buffer) > MAX_PENDING_MARKER:
                    out.append(TextSegment(self._buffer))
                    self._buffer = ""
                break

            end = close + len(CLOSE_TAG)
            raw = self._buffer[:end]
            self._buffer = self._buffer[end:]
            citation = parse_marker(raw)
            if citation is None:
                logger.debug(f"Unparseable citation marker kept as text: {raw[:80]}")
                out.append(TextSegment(raw))
            else:
                out.append(citation)
        return _merge_text(out)

    def close(self) -> list[Segment]:
        """Flush whatever is left; a dangling marker becomes plain text."""
        rest, self._buffer = self._buffer, ""
        return [TextSegment(rest)] if rest else []


def _merge_text(segments: Iterable[Segment]) -> list[Segment]:
    merged: list[Segment] = []
    for segment in segments:
        if isinstance(segment, TextSegment):
            if not segment.text:
                continue
            if merged and isinstance(merged[-1], TextSegment):
                merged[-1] = TextSegment(merged[-1].text + segment.text)
                continue
        merged.append(segment)
    return merged


def parse_citations(text: str) -> list[Segment]:
    """Split a complete answer into text and citation segments."""
    parser = CitationStreamParser()
    return _merge_text(parser.feed(text) + parser.close())


def citations_of(segments: Iterable[Segment]) -> list[Citation]:
    return [s for s in segments if isinstance(s, Citation)]


def ids_strictly_increasing(citations: list[Citation]) -> bool:
    return all(a.citation_id < b.citation_id for a, b in zip(citations, citations[1:]))


def cited_document_ids(segments: Iterable[Segment], allowed: Iterable[str]) -> list[str]:
    """Distinct file ids cited in the answer, limited to the retrieved set, in order of first use."""
    allowed_set = set(allowed)
    seen: dict[str, None] = {}
    for citation in citations_of(segments):
        if citation.file_id in allowed_set:
            seen.setdefault(citation.file_id, None)
        else:
            logger.warning(f"Answer cites file {citation.file_id} outside the retrieved passages")
    return list(seen)


def render_segments(
    segments: Iterable[Segment],
    resolve_url: Callable[[str], str | None],
) -> list[dict]:
    """Turn segments into UI-ready dicts.

    Display numbers are reassigned 1..n in order of appearance, so the ids a
    reader sees always increase and never repeat.
    """
    rendered = []
    display_id = 0
    for segment in segments:
        if isinstance(segment, TextSegment):
            rendered.append({"type": "text", "text": segment.text})
            continue
        display_id += 1
        rendered.append({
            "type": "citation",
            "display_id": display_id,
            "source_id": segment.citation_id,
            "file_id": segment.file_id,
            "page_number": segment.page_number,
            "cited_text": segment.cited_text,
            "url": resolve_url(segment.file_id),
        })
    return rendered
