"""
Chat feature: Answer prompt and refusal texts.

One policy only: answer strictly from the retrieved context.
"""

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from notesrag.features.chat.citations import render_citation
from notesrag.features.chat.schemas import RetrievedPassage

REFUSAL_PREFIX = "Not found in your notes for"
DEFAULT_SCOPE_NAME = "the selected documents"

# What the model says when the context does not hold the answer.
NO_ANSWER_TEXT = "Based on the provided documents, I cannot answer this question."


def refusal_text(scope_name: str | None) -> str:
    return f"{REFUSAL_PREFIX} {scope_name or DEFAULT_SCOPE_NAME}"


_CITATION_EXAMPLE = render_citation(
    1, "e5232b9a-ab12-4c1d-9f00-3f2a7c9d1b10", 5, "The company's revenue in 2023 was $1.2B."
)

ANSWER_PROMPT_TEMPLATE = """
### IMPERATIVE:
You are a research assistant. Answer the user's QUESTION using *only* the CONTEXT below, which was retrieved from the user's own notes.

## CONTEXT:
---
{context}
---

## CHAT HISTORY:
---
{chat_history}
---

## QUESTION:
{question}

### INSTRUCTIONS:
1.  **Use only the CONTEXT.** Do not use outside knowledge, and do not guess.
2.  **Cite every claim.** Place a citation marker right after each claim taken from the CONTEXT.
3.  **Unique citations.** Number citations 1, 2, 3, ... in the order they appear. Never reuse a number, even when two claims come from the same source.
4.  **No answer.** If the CONTEXT does not contain the answer, reply exactly: "{no_answer}"
5.  **Formatting.** Use clear structure with consistent indentation. Do not list the citations again at the end.

## CITATION RULES (APPLY STRICTLY):
-   Format: <citation source-id="[ID]" file-id="[File ID]" file-page-number="[Page Number]" cited-text="[Exact Quoted Text]">[ID]</citation>
-   file-id and file-page-number must be copied from the source the quote comes from.
-   cited-text must be a verbatim quote from that source, with any double quotes written as &quot;.
-   Example: {example}
"""


def build_context(passages: list[RetrievedPassage]) -> str:
    return "\n\n".join(
        f"---\n"
        f"Source ID: {p.source_index}\n"
        f"File ID: {p.document_id}\n"
        f"Page Number: {p.page_number}\n"
        f"Content: {p.text}\n"
        f"---"
        for p in passages
    )


def build_chat_history(messages: list[BaseMessage]) -> str:
    lines = []
    for m in messages:
        if isinstance(m, HumanMessage):
            lines.append(f"user: {m.content}")
        elif isinstance(m, AIMessage):
            lines.append(f"assistant: {m.content}")
    return "\n".join(lines)


def build_answer_prompt(
    question: str,
    passages: list[RetrievedPassage],
    history: list[BaseMessage],
) -> str:
    return ANSWER_PROMPT_TEMPLATE.format(
        context=build_context(passages),
        chat_history=build_chat_history(history) or "(none)",
        question=question,
        no_answer=NO_ANSWER_TEXT,
        example=_CITATION_EXAMPLE,
    )
