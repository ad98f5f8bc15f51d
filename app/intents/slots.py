"""Deterministic slot parsers.

Every function in this module is pure: it only looks at the message text and,
for relative dates, an explicit ``today`` so that results are reproducible and
independent of the server clock. ``extract_slots`` bundles the parsers per
intent; ``normalize_slots`` cleans values supplied by the primary classifier
with the same parsers; ``validate_slots`` reports missing required fields.
"""

from __future__ import annotations

import datetime as dt
import re
from collections.abc import Mapping
from typing import Any

from .taxonomy import REQUIRED_SLOTS, IncompleteSlots, IntentLabel

DEFAULT_MEETING_DURATION = 60
DEFAULT_MAX_RESULTS = 5
MAX_RESULTS_LIMIT = 50
TICKET_SUBJECT_LENGTH = 100
MAX_SPAN_WORDS = 8

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}")

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

STOP_MARKERS = frozenset(
    {
        "at",
        "on",
        "tomorrow",
        "today",
        "tonight",
        "next",
        "this",
        "by",
        "for",
        "with",
        "and",
        "please",
        "to",
        "from",
        "in",
        "about",
        "asap",
        *WEEKDAYS,
    }
)

NUMBER_WORDS = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "dozen": 12,
}
_NUMBER_ALT = "|".join(sorted(NUMBER_WORDS, key=len, reverse=True))

_LINE_FIELD_RE = re.compile(
    r"^\s*(to|email address|email|subject|body|message)\s*:\s*(.*)$", re.I
)
_INLINE_SUBJECT_RE = re.compile(
    r"\bsubject\b\s*(?:line\s*)?[:\-]?\s*(?P<subject>.+?)"
    r"(?:\s*,?\s+(?:and\s+)?(?:with\s+)?(?:the\s+)?(?:body|message)\b\s*[:\-]?\s*(?P<body>.+))?\s*$",
    re.I | re.S,
)
_INLINE_BODY_RE = re.compile(
    r"\b(?:body|message|saying|that says)\b\s*[:\-]?\s*(?P<body>.+)$", re.I | re.S
)
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_WEEKDAY_RE = re.compile(r"\b(next\s+|this\s+)?(" + "|".join(WEEKDAYS) + r")\b", re.I)
_MERIDIEM_TIME_RE = re.compile(
    r"\b(\d{1,2})(?:[:.](\d{2}))?\s*(a\.?m\.?|p\.?m\.?)(?![a-z])", re.I
)
_CLOCK_TIME_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_AT_HOUR_RE = re.compile(r"\bat\s+(\d{1,2})\b(?![:.]\d)", re.I)
_DURATION_RE = re.compile(
    r"\b(\d+(?:\.\d+)?)\s*(hours?|hrs?|minutes?|mins?)\b", re.I
)
_ORDER_RE = re.compile(
    r"\b(?:order|buy|purchase|want|need|get)\s+(?:me\s+|us\s+)?"
    r"(?P<qty>\d+|" + _NUMBER_ALT + r")\s+(?:x\s+)?(?P<rest>.+)",
    re.I | re.S,
)
_QUANTITY_NOUN_RE = re.compile(r"\b(?P<qty>\d+)\s*x?\s+(?P<rest>(?!(?:am|pm)\b)[a-z].*)", re.I | re.S)
_INVOICE_RE = re.compile(
    r"\b(?:invoice|bill)\s*(?:number|no\.?|num)?\s*[:#]?\s*"
    r"(?P<number>[A-Z0-9][A-Z0-9/_\-]*\d[A-Z0-9/_\-]*)",
    re.I,
)
_CONTACT_QUERY_RE = re.compile(
    r"\b(?:find|search(?:\s+for)?|look\s*up|lookup|who\s+is|details\s+(?:for|of|on))\s+"
    r"(?:the\s+|a\s+|my\s+)?(?:(?:contact|customer|client|person)s?\s+)?"
    r"(?:named\s+|called\s+|for\s+)?(?P<rest>.+)",
    re.I | re.S,
)
_LEAD_COMPANY_RE = re.compile(
    r"\b(?:lead|prospect|opportunity)\s+(?:for|from|at|with)\s+(?:company\s+)?(?P<rest>.+)",
    re.I | re.S,
)
_COMPANY_RE = re.compile(r"\b(?:company|business)\s+(?:named\s+|called\s+)?(?P<rest>.+)", re.I | re.S)
_NAMED_RE = re.compile(
    r"\b(?:named|called|name\s+is|contact\s+person)\s+(?P<rest>.+)", re.I | re.S
)
_CONTACT_NAME_RE = re.compile(r"\bcontact\s+(?:for\s+)?(?P<rest>.+)", re.I | re.S)
_TITLE_RE = re.compile(r"\b(?:about|titled|called|regarding|re:)\s+(?P<rest>.+)", re.I | re.S)
_SENDER_RE = re.compile(r"\bfrom\s+(?P<rest>.+)", re.I | re.S)
_COUNT_RE = re.compile(r"\b(?:last|latest|recent|top|first|next)\s+(\d{1,2})\b", re.I)
_PHONE_RE = re.compile(r"\+?\d[\d\s().-]{6,}\d")
_TIMEISH_RE = re.compile(r"\d{1,2}(?:[:.]\d{2})?(?:am|pm|a\.m\.|p\.m\.)?")


# ------------------------------------------------------------------
# Primitive parsers
# ------------------------------------------------------------------


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().strip("\"'“”‘’").strip().rstrip(".,;!?").strip()
    return cleaned or None


def extract_emails(text: str) -> list[str]:
    """Return the e-mail addresses in ``text`` in order of appearance."""

    seen: list[str] = []
    for match in EMAIL_RE.findall(text or ""):
        address = match.rstrip(".")
        if address.lower() not in (s.lower() for s in seen):
            seen.append(address)
    return seen


def is_valid_email(value: object) -> bool:
    return isinstance(value, str) and EMAIL_RE.fullmatch(value.strip()) is not None


def extract_phone(text: str) -> str | None:
    match = _PHONE_RE.search(text or "")
    if not match:
        return None
    digits = re.sub(r"[^\d+]", "", match.group(0))
    return digits if len(digits.lstrip("+")) >= 7 else None


def bounded_span(fragment: str | None, *, max_words: int = MAX_SPAN_WORDS) -> str | None:
    """Return the leading words of ``fragment`` up to the first stop marker.

    The span also ends at sentence punctuation, at an e-mail address and at
    anything that looks like a clock time.
    """

    if not fragment:
        return None
    words: list[str] = []
    for token in fragment.split():
        bare = token.strip("\"'()“”‘’")
        lowered = bare.lower().rstrip(",.;!?:")
        if not lowered or lowered in STOP_MARKERS or "@" in lowered:
            break
        if _TIMEISH_RE.fullmatch(lowered) and words:
            break
        words.append(bare.rstrip(",.;!?:"))
        if bare[-1:] in ",.;!?:" or len(words) >= max_words:
            break
    return _clean(" ".join(w for w in words if w))


def _line_fields(text: str) -> dict[str, str]:
    fields: dict[str, str] = {}
    lines = text.splitlines()
    for index, line in enumerate(lines):
        match = _LINE_FIELD_RE.match(line)
        if not match:
            continue
        key = match.group(1).lower()
        value = match.group(2).strip()
        if key in {"body", "message"}:
            fields["body"] = "\n".join([value, *lines[index + 1 :]]).strip()
            break
        fields["to" if key in {"to", "email", "email address"} else key] = value
    return fields


def extract_subject_and_body(text: str) -> tuple[str | None, str | None]:
    """Find subject and body in ``Subject:``/``Body:`` lines or inline phrasing."""

    if not text:
        return None, None
    fields = _line_fields(text)
    if "subject" in fields or "body" in fields:
        return _clean(fields.get("subject")), _clean(fields.get("body"))

    match = _INLINE_SUBJECT_RE.search(text)
    if match:
        return _clean(match.group("subject")), _clean(match.group("body"))
    match = _INLINE_BODY_RE.search(text)
    if match:
        return None, _clean(match.group("body"))
    return None, None


def resolve_relative_date(text: str, today: dt.date) -> dt.date | None:
    """Resolve today/tomorrow/weekday names (or an ISO date) against ``today``.

    A bare weekday name means its next occurrence, which is ``today`` itself
    when the names match; ``next <weekday>`` always lies in the future.
    """

    if not text:
        return None
    lowered = text.lower()
    iso = _ISO_DATE_RE.search(lowered)
    if iso:
        try:
            return dt.date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        except ValueError:
            return None
    if re.search(r"\bday after tomorrow\b", lowered):
        return today + dt.timedelta(days=2)
    if re.search(r"\btomorrow\b", lowered):
        return today + dt.timedelta(days=1)
    if re.search(r"\b(?:today|tonight)\b", lowered):
        return today
    match = _WEEKDAY_RE.search(lowered)
    if match:
        target = WEEKDAYS.index(match.group(2).lower())
        delta = (target - today.weekday()) % 7
        if delta == 0 and (match.group(1) or "").strip() == "next":
            delta = 7
        return today + dt.timedelta(days=delta)
    return None


def parse_time(text: str) -> str | None:
    """Return the first clock time in ``text`` as 24-hour ``HH:MM``."""

    if not text:
        return None
    match = _MERIDIEM_TIME_RE.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if 1 <= hour <= 12 and minute < 60:
            meridiem = match.group(3).lower().replace(".", "")
            if meridiem == "pm" and hour != 12:
                hour += 12
            elif meridiem == "am" and hour == 12:
                hour = 0
            return f"{hour:02d}:{minute:02d}"
    match = _CLOCK_TIME_RE.search(text)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"
    lowered = text.lower()
    if re.search(r"\bnoon\b", lowered):
        return "12:00"
    if re.search(r"\bmidnight\b", lowered):
        return "00:00"
    match = _AT_HOUR_RE.search(text)
    if match and int(match.group(1)) <= 23:
        return f"{int(match.group(1)):02d}:00"
    return None


def parse_duration_minutes(text: str) -> int | None:
    if not text:
        return None
    if re.search(r"\bhalf an hour\b", text, re.I):
        return 30
    match = _DURATION_RE.search(text)
    if not match:
        return None
    amount = float(match.group(1))
    minutes = amount * 60 if match.group(2).lower().startswith(("h", "hr")) else amount
    return int(minutes) if minutes > 0 else None


def _quantity_value(raw: str) -> int | None:
    if raw.isdigit():
        value = int(raw)
    else:
        value = NUMBER_WORDS.get(raw.lower(), 0)
    return value if value > 0 else None


def extract_order(text: str) -> tuple[int | None, str | None]:
    """Return ``(quantity, product)`` from phrases like "order 3 pizzas"."""

    if not text:
        return None, None
    match = _ORDER_RE.search(text) or _QUANTITY_NOUN_RE.search(text)
    if not match:
        return None, None
    return _quantity_value(match.group("qty")), bounded_span(match.group("rest"))


def extract_invoice_number(text: str) -> str | None:
    match = _INVOICE_RE.search(text or "")
    return match.group("number") if match else None


def _span_after(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text or "")
    return bounded_span(match.group("rest")) if match else None


def _count(text: str) -> int:
    match = _COUNT_RE.search(text or "")
    if match:
        return max(1, min(int(match.group(1)), MAX_RESULTS_LIMIT))
    return DEFAULT_MAX_RESULTS


# ------------------------------------------------------------------
# Per-intent extraction
# ------------------------------------------------------------------


def extract_slots(
    text: str,
    label: IntentLabel,
    today: dt.date,
    *,
    default_duration: int = DEFAULT_MEETING_DURATION,
) -> dict[str, Any]:
    """Run the parsers relevant to ``label`` and apply documented defaults."""

    slots: dict[str, Any] = {}
    emails = extract_emails(text)

    if label is IntentLabel.EMAIL_SEND:
        lines = _line_fields(text)
        to = lines.get("to") if is_valid_email(lines.get("to")) else None
        to = to or (emails[0] if emails else None)
        subject, body = extract_subject_and_body(text)
        for key, value in (("to", to), ("subject", subject), ("body", body)):
            if value:
                slots[key] = value

    elif label is IntentLabel.EMAIL_READ:
        slots["max_results"] = _count(text)
        sender = emails[0] if emails else _span_after(_SENDER_RE, text)
        if sender:
            slots["sender"] = sender
        if re.search(r"\bunread\b", text, re.I):
            slots["unread_only"] = True

    elif label is IntentLabel.CALENDAR_SCHEDULE:
        date = resolve_relative_date(text, today)
        time = parse_time(text)
        if date is not None:
            slots["date"] = date.isoformat()
        if time is not None:
            slots["time"] = time
        slots["duration"] = parse_duration_minutes(text) or default_duration
        title = _span_after(_TITLE_RE, text)
        if title:
            slots["title"] = title
        if emails:
            slots["attendees"] = emails

    elif label is IntentLabel.CALENDAR_CHECK:
        date = resolve_relative_date(text, today)
        if date is not None:
            slots["date"] = date.isoformat()
        slots["max_results"] = _count(text)

    elif label is IntentLabel.CRM_CREATE_LEAD:
        company = _span_after(_LEAD_COMPANY_RE, text) or _span_after(_COMPANY_RE, text)
        name = _span_after(_NAMED_RE, text)
        phone = extract_phone(text)
        for key, value in (
            ("company", company),
            ("name", name),
            ("email", emails[0] if emails else None),
            ("phone", phone),
        ):
            if value:
                slots[key] = value

    elif label is IntentLabel.CRM_SEARCH_CONTACT:
        query = emails[0] if emails else _span_after(_CONTACT_QUERY_RE, text)
        if query:
            slots["query"] = query

    elif label is IntentLabel.CRM_CREATE_CONTACT:
        name = _span_after(_NAMED_RE, text) or _span_after(_CONTACT_NAME_RE, text)
        phone = extract_phone(text)
        for key, value in (
            ("email", emails[0] if emails else None),
            ("name", name),
            ("phone", phone),
        ):
            if value:
                slots[key] = value

    elif label is IntentLabel.ERP_ORDER:
        quantity, product = extract_order(text)
        if quantity is not None:
            slots["quantity"] = quantity
        if product:
            slots["product"] = product

    elif label is IntentLabel.ERP_INVOICE_STATUS:
        number = extract_invoice_number(text)
        if number:
            slots["invoice_number"] = number

    elif label is IntentLabel.ERP_CREATE_TICKET:
        stripped = (text or "").strip()
        if stripped:
            slots["subject"] = stripped[:TICKET_SUBJECT_LENGTH]
            slots["description"] = stripped

    elif label is IntentLabel.ERP_CREATE_LEAD:
        stripped = (text or "").strip()
        if stripped:
            slots["description"] = stripped
        name = _span_after(_NAMED_RE, text)
        if name:
            slots["name"] = name
        if emails:
            slots["email"] = emails[0]

    return slots


# ------------------------------------------------------------------
# Classifier slot normalisation and validation
# ------------------------------------------------------------------


def _positive_int(value: object, upper: int | None = None) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if number <= 0 or (upper is not None and number > upper):
        return None
    return number


def normalize_slots(
    label: IntentLabel, slots: Mapping[str, Any] | None, today: dt.date
) -> dict[str, Any]:
    """Clean classifier-supplied slots; values that fail to parse are dropped."""

    normalized: dict[str, Any] = {}
    for key, value in (slots or {}).items():
        if value is None:
            continue
        if key in {"to", "email"}:
            candidates = value if isinstance(value, list) else [value]
            valid = [v.strip() for v in candidates if is_valid_email(v)]
            if valid:
                normalized[key] = valid[0]
        elif key == "attendees":
            candidates = value if isinstance(value, list) else [value]
            valid = [v.strip() for v in candidates if is_valid_email(v)]
            if valid:
                normalized[key] = valid
        elif key == "date":
            resolved = resolve_relative_date(str(value), today)
            if resolved is not None:
                normalized[key] = resolved.isoformat()
        elif key == "time":
            parsed = parse_time(str(value))
            if parsed is not None:
                normalized[key] = parsed
        elif key in {"duration", "quantity"}:
            number = _positive_int(value)
            if number is not None:
                normalized[key] = number
        elif key == "max_results":
            number = _positive_int(value, MAX_RESULTS_LIMIT)
            if number is not None:
                normalized[key] = number
        elif isinstance(value, str):
            cleaned = _clean(value)
            if cleaned:
                normalized[key] = cleaned
        elif isinstance(value, (int, float, bool, list, dict)):
            normalized[key] = value
    if label is IntentLabel.ERP_CREATE_TICKET and "subject" in normalized:
        normalized["subject"] = str(normalized["subject"])[:TICKET_SUBJECT_LENGTH]
    return normalized


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def validate_slots(label: IntentLabel, slots: Mapping[str, Any]) -> IncompleteSlots | None:
    """Return :class:`IncompleteSlots` listing required fields that are absent."""

    missing = tuple(
        name for name in REQUIRED_SLOTS.get(label, ()) if _is_missing(slots.get(name))
    )
    if missing:
        return IncompleteSlots(intent=label, missing_fields=missing)
    return None


__all__ = [
    "DEFAULT_MAX_RESULTS",
    "DEFAULT_MEETING_DURATION",
    "bounded_span",
    "extract_emails",
    "extract_invoice_number",
    "extract_order",
    "extract_phone",
    "extract_slots",
    "extract_subject_and_body",
    "is_valid_email",
    "normalize_slots",
    "parse_duration_minutes",
    "parse_time",
    "resolve_relative_date",
    "validate_slots",
]
