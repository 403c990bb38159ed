"""
CSV-backed table stores.

Each table owns exactly one file and one re-entrant lock. Writers (append,
rewrite, update, delete) hold the lock for their whole read-modify-write
sequence so concurrent creates against the same table can never hand out the
same id. Readers do not lock; a reader racing a rewrite sees either the old or
the new file because rewrites go through a temp file and ``os.replace``.
"""
from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar

from pydantic import BaseModel

from . import csv_codec
from .auth_utils import CredentialVerifier, PlaintextVerifier
from .schemas import AppUser, Event, RecurrenceRule

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT", bound=BaseModel)


class CsvTable(Generic[RowT]):
    header: str = ""
    key_field: str = "id"
    assigns_ids: bool = True

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self.initialize()

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # subclass hooks
    def decode(self, fields: list[str]) -> Optional[RowT]:
        raise NotImplementedError

    def encode(self, row: RowT) -> str:
        raise NotImplementedError

    def key_of(self, row: RowT) -> int:
        return getattr(row, self.key_field)

    def initialize(self) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                with self.path.open("w", encoding="utf-8", newline="") as fh:
                    fh.write(self.header + "\n")
                logger.info("created %s", self.path)

    def _read_text(self) -> Optional[str]:
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("cannot read %s: %s", self.path, exc)
            return None

    def _accepts(self, fields: list[str]) -> bool:
        return self.decode(fields) is not None

    def _data_records(self) -> Iterator[tuple[str, list[str]]]:
        text = self._read_text()
        if text is None:
            return
        records = csv_codec.iter_records(text, self._accepts)
        next(records, None)  # header
        yield from records

    def load_all(self) -> list[RowT]:
        rows: list[RowT] = []
        for _, fields in self._data_records():
            row = self.decode(fields)
            if row is not None:
                rows.append(row)
        return rows

    def next_id(self) -> int:
        """One past the largest key found at the start of any physical line."""
        with self._lock:
            text = self._read_text() or ""
            keys = [csv_codec.leading_key(line) for line in text.split("\n")]
            return max((k for k in keys if k is not None), default=0) + 1

    def _ensure_trailing_newline(self) -> None:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return
        with self.path.open("rb") as fh:
            fh.seek(-1, os.SEEK_END)
            last = fh.read(1)
        if last != b"\n":
            with self.path.open("a", encoding="utf-8", newline="") as fh:
                fh.write("\n")

    def append(self, row: RowT) -> RowT:
        with self._lock:
            if self.assigns_ids:
                setattr(row, self.key_field, self.next_id())
            self._ensure_trailing_newline()
            with self.path.open("a", encoding="utf-8", newline="") as fh:
                fh.write(self.encode(row) + "\n")
            logger.info("appended %s=%s to %s", self.key_field, self.key_of(row), self.name)
            return row

    def append_batch(self, rows: list[RowT]) -> list[RowT]:
        """Assign sequential ids to ``rows`` and rewrite the table with them added."""
        with self._lock:
            existing = self.load_all()
            next_id = self.next_id()
            for row in rows:
                setattr(row, self.key_field, next_id)
                next_id += 1
            self.rewrite_all(existing + rows)
            logger.info("added %d row(s) to %s", len(rows), self.name)
            return rows

    def rewrite_all(self, rows: Iterable[RowT]) -> None:
        self._write_atomic([self.encode(row) for row in rows])

    def _write_atomic(self, lines: list[str]) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.name}.", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                    fh.write(self.header + "\n")
                    for line in lines:
                        fh.write(line + "\n")
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

    def update_by_id(self, key: int, row: RowT) -> bool:
        with self._lock:
            rows = self.load_all()
            for idx, current in enumerate(rows):
                if self.key_of(current) == key:
                    setattr(row, self.key_field, key)
                    rows[idx] = row
                    self.rewrite_all(rows)
                    return True
            return False

    def delete_where(self, predicate: Callable[[RowT], bool]) -> int:
        with self._lock:
            rows = self.load_all()
            kept = [r for r in rows if not predicate(r)]
            removed = len(rows) - len(kept)
            if removed:
                self.rewrite_all(kept)
            return removed

    def delete_by_id(self, key: int) -> bool:
        return self.delete_where(lambda r: self.key_of(r) == key) > 0

    def get(self, key: int) -> Optional[RowT]:
        return next((r for r in self.load_all() if self.key_of(r) == key), None)

    # raw access used by backup/restore; no decoding, records copied as stored

    def read_data_records(self) -> list[str]:
        return [raw for raw, _ in self._data_records() if not raw.startswith(csv_codec.BOM)]

    def write_data_records(self, records: list[str], append: bool) -> int:
        data = [record for record in records if record.strip()]
        with self._lock:
            if not append:
                self._write_atomic(data)
                return len(data)
            write_header = not self.path.exists() or self.path.stat().st_size == 0
            self._ensure_trailing_newline()
            with self.path.open("a", encoding="utf-8", newline="") as fh:
                if write_header:
                    fh.write(self.header + "\n")
                for record in data:
                    fh.write(record + "\n")
            return len(data)


class EventTable(CsvTable[Event]):
    header = csv_codec.EVENT_HEADER

    def decode(self, fields: list[str]) -> Optional[Event]:
        return csv_codec.decode_event(fields)

    def encode(self, row: Event) -> str:
        return csv_codec.encode_event(row)

    def ids_by_user_id(self, user_id: int) -> list[int]:
        return [e.id for e in self.load_all() if e.userId == user_id]

    def delete_by_user_id(self, user_id: int) -> int:
        return self.delete_where(lambda e: e.userId == user_id)


class RecurrenceRuleTable(CsvTable[RecurrenceRule]):
    header = csv_codec.RECURRENT_HEADER
    key_field = "eventId"
    assigns_ids = False

    def decode(self, fields: list[str]) -> Optional[RecurrenceRule]:
        return csv_codec.decode_rule(fields)

    def encode(self, row: RecurrenceRule) -> str:
        return csv_codec.encode_rule(row)

    def upsert(self, event_id: int, rule: RecurrenceRule) -> Optional[RecurrenceRule]:
        """Replace the rule for ``event_id``; create it only when an interval is given."""
        with self._lock:
            if self.update_by_id(event_id, rule):
                return rule
            if rule.recurrentInterval:
                rule.eventId = event_id
                return self.append(rule)
            return None

    def delete_by_event_ids(self, event_ids: Iterable[int]) -> int:
        ids = set(event_ids or ())
        if not ids:
            return 0
        return self.delete_where(lambda r: r.eventId in ids)


class UserTable(CsvTable[AppUser]):
    header = csv_codec.USERS_HEADER

    def __init__(self, path: Path, verifier: CredentialVerifier | None = None) -> None:
        self.verifier = verifier or PlaintextVerifier()
        super().__init__(path)

    def decode(self, fields: list[str]) -> Optional[AppUser]:
        return csv_codec.decode_user(fields)

    def encode(self, row: AppUser) -> str:
        return csv_codec.encode_user(row)

    def email_exists(self, email: Optional[str]) -> bool:
        if email is None:
            return False
        return any(u.email == email for u in self.load_all())

    def validate_user(self, email: Optional[str], password: Optional[str]) -> Optional[AppUser]:
        if email is None or password is None:
            return None
        for user in self.load_all():
            if user.email == email and self.verifier.verify(password, user.password):
                return user
        return None
