"""
Row codec for the calendar CSV tables.

Comma separated, one record per line unless a quoted field holds a line
break. Fields holding a comma, a double quote or a line break are wrapped in
double quotes with inner quotes doubled; every other value is written raw so
plain files stay identical to what older releases produced.
"""
from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime
from typing import Callable, Iterable, Iterator, Optional

from .schemas import DEFAULT_CATEGORY, AppUser, Event, RecurrenceRule

logger = logging.getLogger(__name__)

BOM = "\ufeff"

EVENT_HEADER = "id,userId,title,description,startDateTime,endDateTime,category"
RECURRENT_HEADER = "eventId,recurrentInterval,recurrentTimes,recurrentEndDate"
USERS_HEADER = "id,name,email,password"

EVENT_MIN_FIELDS = 6
RECURRENT_MIN_FIELDS = 4
USER_MIN_FIELDS = 4

_NEEDS_QUOTING = (",", '"', "\n", "\r")


def encode_field(value: object) -> str:
    text = "" if value is None else str(value)
    if any(ch in text for ch in _NEEDS_QUOTING):
        return '"' + text.replace('"', '""') + '"'
    return text


def encode_fields(values: Iterable[object]) -> str:
    return ",".join(encode_field(v) for v in values)


def clean_line(line: str) -> str:
    return line.lstrip(BOM).strip()


def leading_key(line: str) -> Optional[int]:
    """Integer before the first comma of a physical line, if there is one."""
    head = clean_line(line).split(",", 1)[0].strip()
    try:
        return int(head)
    except ValueError:
        return None


def _quote_open(raw: str) -> bool:
    return raw.count('"') % 2 == 1


def _parse_record(raw: str) -> Optional[list[str]]:
    try:
        rows = list(csv.reader(io.StringIO(raw)))
    except csv.Error:
        return None
    if len(rows) != 1:
        return None
    return rows[0]


def iter_records(
    text: str, accepts: Optional[Callable[[list[str]], bool]] = None
) -> Iterator[tuple[str, list[str]]]:
    """Yield ``(raw, fields)`` for each record of a file body, header included.

    A record runs over several physical lines only while a quoted field is
    open. If such a record cannot be parsed or ``accepts`` rejects it, its
    first line is taken on its own and scanning resumes on the next line, so
    a stray quote costs one row. ``raw`` is the record text as stored.
    Blank records are dropped.
    """
    body = text[1:] if text.startswith(BOM) else text
    lines = body.split("\n")
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        if not line.strip():
            idx += 1
            continue
        end = idx
        raw = line
        while _quote_open(raw) and end + 1 < len(lines):
            end += 1
            raw += "\n" + lines[end]
        fields = _parse_record(raw)
        if end > idx and (fields is None or (accepts is not None and not accepts(fields))):
            logger.debug("record starting %r does not close cleanly; reading it as one line", line[:40])
            end = idx
            raw = line
            fields = _parse_record(raw)
        idx = end + 1
        if not fields or all(not f.strip() for f in fields):
            continue
        fields[0] = fields[0].lstrip()
        fields[-1] = fields[-1].rstrip()
        yield raw.rstrip("\r"), fields


def format_local_datetime(value: datetime) -> str:
    """Render a local date-time, dropping zero seconds (``2026-01-01T09:30``)."""
    if value.second == 0 and value.microsecond == 0:
        return value.isoformat(timespec="minutes")
    return value.isoformat()


def parse_local_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is not None:
        raise ValueError(f"unexpected timezone in local date-time: {value}")
    return parsed


def parse_local_date(value: Optional[str]) -> Optional[date]:
    if not value or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


# ── Events ────────────────────────────────────────────────────


def encode_event(event: Event) -> str:
    return encode_fields(
        [
            event.id,
            event.userId,
            event.title,
            event.description or "",
            format_local_datetime(event.startDateTime) if event.startDateTime else "",
            format_local_datetime(event.endDateTime) if event.endDateTime else "",
            event.category or DEFAULT_CATEGORY,
        ]
    )


def decode_event(fields: list[str]) -> Optional[Event]:
    if len(fields) < EVENT_MIN_FIELDS:
        logger.debug("skipping event row with %d fields", len(fields))
        return None
    try:
        event_id = int(fields[0])
        user_id = int(fields[1])
    except ValueError:
        logger.debug("skipping event row with bad id: %r", fields[:2])
        return None
    try:
        start = parse_local_datetime(fields[4])
        end = parse_local_datetime(fields[5])
    except ValueError:
        logger.debug("skipping event %s with bad date-time", event_id)
        return None
    category = fields[6].strip() if len(fields) > 6 and fields[6].strip() else DEFAULT_CATEGORY
    return Event(
        id=event_id,
        userId=user_id,
        title=fields[2],
        description=fields[3],
        startDateTime=start,
        endDateTime=end,
        category=category,
    )


# ── Recurrence rules ──────────────────────────────────────────


def encode_rule(rule: RecurrenceRule) -> str:
    return encode_fields([rule.eventId, rule.recurrentInterval, rule.recurrentTimes, rule.recurrentEndDate])


def decode_rule(fields: list[str]) -> Optional[RecurrenceRule]:
    if len(fields) < RECURRENT_MIN_FIELDS:
        logger.debug("skipping recurrence row with %d fields", len(fields))
        return None
    try:
        event_id = int(fields[0])
    except ValueError:
        logger.debug("skipping recurrence row with bad event id: %r", fields[0])
        return None
    return RecurrenceRule(
        eventId=event_id,
        recurrentInterval=fields[1],
        recurrentTimes=fields[2],
        recurrentEndDate=fields[3],
    )


# ── Users ─────────────────────────────────────────────────────


def encode_user(user: AppUser) -> str:
    return encode_fields([user.id, user.name, user.email, user.password])


def decode_user(fields: list[str]) -> Optional[AppUser]:
    if len(fields) < USER_MIN_FIELDS:
        logger.debug("skipping user row with %d fields", len(fields))
        return None
    try:
        user_id = int(fields[0])
    except ValueError:
        logger.debug("skipping user row with bad id: %r", fields[0])
        return None
    return AppUser(id=user_id, name=fields[1], email=fields[2], password=fields[3])
