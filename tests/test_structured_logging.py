"""Tests for structured logging helpers."""

from ticketflow.core.structured_logging import build_log_context, format_log_context


def test_build_log_context_includes_only_provided_fields():
    context = build_log_context(
        company_id="company-1",
        user_id="user-1",
        ticket_id="ticket-1",
        card_id="card-1",
        origin="kanban",
    )

    assert context == {
        "company_id": "company-1",
        "user_id": "user-1",
        "ticket_id": "ticket-1",
        "card_id": "card-1",
        "origin": "kanban",
    }


def test_build_log_context_ignores_empty_fields():
    context = build_log_context(
        user_id="",
        company_id=None,
        ticket_id="ticket-1",
    )

    assert context == {"ticket_id": "ticket-1"}


def test_format_log_context_is_sorted_key_value_pairs():
    assert format_log_context({"ticket_id": "t", "company_id": "c"}) == "company_id=c ticket_id=t"
