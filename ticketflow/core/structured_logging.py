"""Structured logging helpers (PII-safe)."""

from typing import Any
from uuid import UUID


def build_log_context(
    *,
    company_id: UUID | str | None = None,
    user_id: UUID | str | None = None,
    ticket_id: UUID | str | None = None,
    card_id: UUID | str | None = None,
    origin: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only)."""
    context: dict[str, Any] = {}
    if company_id:
        context["company_id"] = str(company_id)
    if user_id:
        context["user_id"] = str(user_id)
    if ticket_id:
        context["ticket_id"] = str(ticket_id)
    if card_id:
        context["card_id"] = str(card_id)
    if origin:
        context["origin"] = origin
    return context


def format_log_context(context: dict[str, Any]) -> str:
    """Render a context dict as ``key=value`` pairs for log lines."""
    return " ".join(f"{key}={value}" for key, value in sorted(context.items()))
