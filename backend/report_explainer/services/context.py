"""Grounding context and reference list from safe contexts."""

from __future__ import annotations

from report_explainer.models.rag import SafeContext


def build_context(contexts: list[SafeContext]) -> str:
    """Format safe contexts as one delimited CONTEXT block ("" when empty)."""
    if not contexts:
        return ""

    parts = [f"[{c.source} – {c.document_title}]\n{c.content}" for c in contexts]
    return "CONTEXT:\n---\n" + "\n\n".join(parts) + "\n---"


def extract_references(contexts: list[SafeContext]) -> list[str]:
    """Distinct ``[source] title`` strings in first-seen order."""
    return list(dict.fromkeys(f"[{c.source}] {c.document_title}" for c in contexts))
