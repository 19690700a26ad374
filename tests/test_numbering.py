import re

from tenantdesk.services.numbering import (
    fallback_ticket_number,
    format_ticket_number,
    next_after,
    parse_ticket_number,
)


def test_format_is_zero_padded():
    assert format_ticket_number(1) == "TICKET-000001"
    assert format_ticket_number(123456) == "TICKET-123456"


def test_sequence_starts_at_one():
    assert next_after(None) == "TICKET-000001"


def test_sequence_follows_highest_number():
    assert next_after("TICKET-000041") == "TICKET-000042"
    assert next_after("TICKET-000999") == "TICKET-001000"


def test_unparseable_previous_number_restarts():
    assert parse_ticket_number("INC-12") is None
    assert parse_ticket_number("TICKET-12a") is None
    assert next_after("garbage") == "TICKET-000001"


def test_fallback_is_timestamp_based():
    number = fallback_ticket_number()
    assert re.fullmatch(r"TICKET-\d{13,}", number)
    assert parse_ticket_number(number) > 1_600_000_000_000
