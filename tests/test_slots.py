import datetime as dt

import pytest

from app.intents.slots import (
    bounded_span,
    extract_emails,
    extract_order,
    extract_slots,
    normalize_slots,
    parse_duration_minutes,
    parse_time,
    resolve_relative_date,
    validate_slots,
)
from app.intents.taxonomy import IntentLabel

WEDNESDAY = dt.date(2024, 5, 1)


def test_email_send_inline_subject_and_body():
    slots = extract_slots(
        "send email to a@b.com subject Hi body Hello", IntentLabel.EMAIL_SEND, WEDNESDAY
    )
    assert slots == {"to": "a@b.com", "subject": "Hi", "body": "Hello"}


def test_email_send_line_format():
    text = "Email address: jane@example.com\nSubject: Invoice\nBody: Please find it attached.\nThanks"
    slots = extract_slots(text, IntentLabel.EMAIL_SEND, WEDNESDAY)
    assert slots["to"] == "jane@example.com"
    assert slots["subject"] == "Invoice"
    assert slots["body"].startswith("Please find it attached.")
    assert slots["body"].endswith("Thanks")


def test_email_send_without_body_leaves_it_missing():
    slots = extract_slots("send an email to bob@x.com", IntentLabel.EMAIL_SEND, WEDNESDAY)
    assert slots == {"to": "bob@x.com"}
    missing = validate_slots(IntentLabel.EMAIL_SEND, slots)
    assert missing is not None
    assert missing.missing_fields == ("subject", "body")


def test_calendar_schedule_tomorrow_afternoon():
    slots = extract_slots(
        "schedule a meeting tomorrow at 2pm", IntentLabel.CALENDAR_SCHEDULE, WEDNESDAY
    )
    assert slots == {"date": "2024-05-02", "time": "14:00", "duration": 60}


def test_calendar_schedule_uses_configured_default_duration():
    slots = extract_slots(
        "book a call today at 9am",
        IntentLabel.CALENDAR_SCHEDULE,
        WEDNESDAY,
        default_duration=30,
    )
    assert slots["duration"] == 30
    assert slots["date"] == "2024-05-01"
    assert slots["time"] == "09:00"


def test_calendar_schedule_explicit_duration_and_attendee():
    slots = extract_slots(
        "schedule a 2 hours meeting about budget review on friday at 10:30 with ann@corp.io",
        IntentLabel.CALENDAR_SCHEDULE,
        WEDNESDAY,
    )
    assert slots["duration"] == 120
    assert slots["date"] == "2024-05-03"
    assert slots["time"] == "10:30"
    assert slots["title"] == "budget review"
    assert slots["attendees"] == ["ann@corp.io"]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("today", dt.date(2024, 5, 1)),
        ("tomorrow", dt.date(2024, 5, 2)),
        ("day after tomorrow", dt.date(2024, 5, 3)),
        ("friday", dt.date(2024, 5, 3)),
        ("monday", dt.date(2024, 5, 6)),
        ("wednesday", dt.date(2024, 5, 1)),
        ("next wednesday", dt.date(2024, 5, 8)),
        ("2024-06-15", dt.date(2024, 6, 15)),
    ],
)
def test_resolve_relative_date(text, expected):
    assert resolve_relative_date(text, WEDNESDAY) == expected


def test_resolve_relative_date_rejects_impossible_iso_date():
    assert resolve_relative_date("2024-02-31", WEDNESDAY) is None


def test_tomorrow_crosses_month_and_year_boundaries():
    assert resolve_relative_date("tomorrow", dt.date(2024, 12, 31)) == dt.date(2025, 1, 1)
    assert resolve_relative_date("tomorrow", dt.date(2024, 2, 28)) == dt.date(2024, 2, 29)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("at 2pm", "14:00"),
        ("at 12am", "00:00"),
        ("at 12 pm", "12:00"),
        ("9:15 a.m.", "09:15"),
        ("at 16:45", "16:45"),
        ("around noon", "12:00"),
        ("at 7", "07:00"),
        ("no time here", None),
    ],
)
def test_parse_time(text, expected):
    assert parse_time(text) == expected


def test_parse_duration_minutes():
    assert parse_duration_minutes("for half an hour") == 30
    assert parse_duration_minutes("for 45 minutes") == 45
    assert parse_duration_minutes("1.5 hours") == 90
    assert parse_duration_minutes("sometime") is None


def test_extract_emails_deduplicates_case_insensitively():
    assert extract_emails("mail A@B.com and a@b.com, then c@d.org.") == ["A@B.com", "c@d.org"]


def test_bounded_span_stops_at_markers_and_times():
    assert bounded_span("Acme Corp tomorrow at 3pm") == "Acme Corp"
    assert bounded_span("John Smith john@x.com") == "John Smith"
    assert bounded_span("") is None


def test_extract_order_with_number_words():
    assert extract_order("I want to order two large pizzas please") == (2, "large pizzas")
    assert extract_order("order 3 boxes of nails") == (3, "boxes of nails")
    assert extract_order("hello there") == (None, None)


def test_invoice_slot():
    slots = extract_slots(
        "what's the status of invoice INV/2024/0042?", IntentLabel.ERP_INVOICE_STATUS, WEDNESDAY
    )
    assert slots == {"invoice_number": "INV/2024/0042"}


def test_ticket_uses_the_message_as_subject_and_description():
    text = "My order arrived damaged " + "x" * 200
    slots = extract_slots(text, IntentLabel.ERP_CREATE_TICKET, WEDNESDAY)
    assert len(slots["subject"]) == 100
    assert slots["description"] == text


def test_email_read_defaults():
    slots = extract_slots("show my last 3 unread emails", IntentLabel.EMAIL_READ, WEDNESDAY)
    assert slots["max_results"] == 3
    assert slots["unread_only"] is True


def test_normalize_slots_drops_unparseable_values():
    normalized = normalize_slots(
        IntentLabel.CALENDAR_SCHEDULE,
        {
            "date": "tomorrow",
            "time": "3pm",
            "duration": "0",
            "attendees": ["bad", "ok@mail.com"],
            "title": "  'Sync'  ",
            "unused": None,
        },
        WEDNESDAY,
    )
    assert normalized == {
        "date": "2024-05-02",
        "time": "15:00",
        "attendees": ["ok@mail.com"],
        "title": "Sync",
    }


def test_normalize_slots_rejects_invalid_recipient_and_bool_quantity():
    normalized = normalize_slots(
        IntentLabel.ERP_ORDER, {"to": "not-an-email", "quantity": True}, WEDNESDAY
    )
    assert normalized == {}


def test_validate_slots_treats_blank_values_as_missing():
    missing = validate_slots(IntentLabel.ERP_ORDER, {"product": "  ", "quantity": 2})
    assert missing is not None
    assert missing.missing_fields == ("product",)
    assert validate_slots(IntentLabel.GENERAL, {}) is None
