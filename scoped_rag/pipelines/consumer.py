"""Prompt context assembly for admitted documents. No model is called here."""

from __future__ import annotations

from collections.abc import Sequence

from scoped_rag.pipelines.models import Document

NO_DOCUMENTS_MESSAGE = (
    "I couldn't find any information relevant to your request based on the "
    "available data and your permissions."
)


def _format_document(position: int, document: Document) -> str:
    attrs = ", ".join(f"{k}={document.attributes[k]}" for k in sorted(document.attributes))
    return (
        f"### Document {position} (Path: {document.name})\n"
        f"Content: {document.content}\n"
        f"Attributes: {attrs}\n"
    )


def build_prompt_context(query: str, documents: Sequence[Document]) -> str:
    """
    Render the context block a language model would receive for query.

    Documents are numbered in the order given. With no documents the block
    carries NO_DOCUMENTS_MESSAGE instead of a document list.
    """
    lines = [f"User query: {query}", ""]
    if not documents:
        lines.append(NO_DOCUMENTS_MESSAGE)
        return "\n".join(lines) + "\n"

    lines.append("Retrieved information:")
    blocks = [_format_document(i, doc) for i, doc in enumerate(documents, start=1)]
    return "\n".join(lines) + "\n" + "\n".join(blocks)
