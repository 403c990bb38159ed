from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from fastapi import HTTPException

from .auth_utils import CredentialVerifier, PlaintextVerifier
from .config import Settings, settings
from .schemas import SYSTEM_USER_ID, AppUser, Event, RecurrenceRule
from .services.backup import BackupService
from .services.recurrence import RecurrenceExpander
from .tables import EventTable, RecurrenceRuleTable, UserTable

logger = logging.getLogger(__name__)

EVENTS_FILE = "events.csv"
RECURRENT_FILE = "recurrent.csv"
USERS_FILE = "users.csv"


def _validate_event(event: Event) -> None:
    if event.userId == SYSTEM_USER_ID:
        raise ValueError("system events are not persisted")
    if event.userId <= 0:
        raise ValueError("userId is required")
    if not event.title or not event.title.strip():
        raise ValueError("Event title is required")
    if event.startDateTime is None:
        raise ValueError("Start date/time is required")
    if event.endDateTime is None:
        raise ValueError("End date/time is required")


class Persistence:
    def load_events(self) -> list[Event]:
        raise NotImplementedError

    def get_event(self, event_id: int) -> Optional[Event]:
        raise NotImplementedError

    def save_event(self, event: Event) -> Event:
        raise NotImplementedError

    def update_event(self, event_id: int, event: Event) -> bool:
        raise NotImplementedError

    def delete_event(self, event_id: int) -> bool:
        raise NotImplementedError

    def delete_events_by_user_id(self, user_id: int) -> int:
        raise NotImplementedError

    def get_event_ids_by_user_id(self, user_id: int) -> list[int]:
        raise NotImplementedError

    def generate_and_save_recurring_events(self, base: Event) -> list[Event]:
        raise NotImplementedError

    def load_recurrent_rules(self) -> list[RecurrenceRule]:
        raise NotImplementedError

    def get_recurrent_rule(self, event_id: int) -> Optional[RecurrenceRule]:
        raise NotImplementedError

    def save_recurrent_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        raise NotImplementedError

    def upsert_recurrent_rule(self, event_id: int, rule: RecurrenceRule) -> Optional[RecurrenceRule]:
        raise NotImplementedError

    def delete_recurrent_rule(self, event_id: int) -> bool:
        raise NotImplementedError

    def delete_recurrent_rules_by_event_ids(self, event_ids: Iterable[int]) -> int:
        raise NotImplementedError

    def load_users(self) -> list[AppUser]:
        raise NotImplementedError

    def save_user(self, user: AppUser) -> AppUser:
        raise NotImplementedError

    def update_user(self, user: AppUser) -> AppUser:
        raise NotImplementedError

    def delete_user(self, user_id: int) -> None:
        raise NotImplementedError

    def email_exists(self, email: Optional[str]) -> bool:
        raise NotImplementedError

    def validate_user(self, email: Optional[str], password: Optional[str]) -> Optional[AppUser]:
        raise NotImplementedError

    def get_user_by_id(self, user_id: int) -> Optional[AppUser]:
        raise NotImplementedError

    def backup_all(self, name: Optional[str] = None) -> str:
        raise NotImplementedError

    def restore_all(self, name: str, append: bool = False) -> dict[str, int]:
        raise NotImplementedError

    def list_backups(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def delete_backup(self, name: str) -> bool:
        raise NotImplementedError


class CsvPersistence(Persistence):
    def __init__(self, data_dir: Path, backup_dir: Path, verifier: CredentialVerifier | None = None) -> None:
        self.data_dir = Path(data_dir)
        self.verifier = verifier or PlaintextVerifier()
        self.events = EventTable(self.data_dir / EVENTS_FILE)
        self.rules = RecurrenceRuleTable(self.data_dir / RECURRENT_FILE)
        self.users = UserTable(self.data_dir / USERS_FILE, self.verifier)
        self.expander = RecurrenceExpander(self.events, self.rules)
        self.backups = BackupService(Path(backup_dir), self.events, self.rules, self.users)

    # ── Events ─────────────────────────────────────────────

    def load_events(self) -> list[Event]:
        return self.events.load_all()

    def get_event(self, event_id: int) -> Optional[Event]:
        return self.events.get(event_id)

    def events_by_user(self, user_id: int) -> list[Event]:
        return [e for e in self.events.load_all() if e.userId == user_id]

    def events_by_category(self, category: str) -> list[Event]:
        wanted = category.strip().upper()
        return [e for e in self.events.load_all() if e.category.upper() == wanted]

    def save_event(self, event: Event) -> Event:
        _validate_event(event)
        return self.events.append(event)

    def update_event(self, event_id: int, event: Event) -> bool:
        _validate_event(event)
        updated = self.events.update_by_id(event_id, event)
        if not updated:
            logger.info("event %s not found for update", event_id)
        return updated

    def delete_event(self, event_id: int) -> bool:
        removed = self.events.delete_by_id(event_id)
        if not removed:
            logger.info("event %s not found for deletion", event_id)
            return False
        self.rules.delete_by_id(event_id)
        return True

    def delete_events_by_user_id(self, user_id: int) -> int:
        return self.events.delete_by_user_id(user_id)

    def get_event_ids_by_user_id(self, user_id: int) -> list[int]:
        return self.events.ids_by_user_id(user_id)

    def generate_and_save_recurring_events(self, base: Event) -> list[Event]:
        _validate_event(base)
        return self.expander.generate_and_save(base)

    # ── Recurrence rules ───────────────────────────────────

    def load_recurrent_rules(self) -> list[RecurrenceRule]:
        return self.rules.load_all()

    def get_recurrent_rule(self, event_id: int) -> Optional[RecurrenceRule]:
        return self.rules.get(event_id)

    def save_recurrent_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        if not rule.recurrentInterval:
            raise ValueError("Recurrent interval is required")
        if rule.eventId <= 0:
            raise ValueError("eventId is required")
        return self.rules.append(rule)

    def upsert_recurrent_rule(self, event_id: int, rule: RecurrenceRule) -> Optional[RecurrenceRule]:
        return self.rules.upsert(event_id, rule)

    def delete_recurrent_rule(self, event_id: int) -> bool:
        return self.rules.delete_by_id(event_id)

    def delete_recurrent_rules_by_event_ids(self, event_ids: Iterable[int]) -> int:
        return self.rules.delete_by_event_ids(event_ids)

    # ── Users ──────────────────────────────────────────────

    def load_users(self) -> list[AppUser]:
        return self.users.load_all()

    def save_user(self, user: AppUser) -> AppUser:
        if not user.email:
            raise ValueError("Email is required")
        if not user.password:
            raise ValueError("Password is required")
        with self.users.lock:
            if self.users.email_exists(user.email):
                raise HTTPException(status_code=409, detail="Email already exists")
            user.password = self.verifier.encode(user.password)
            return self.users.append(user)

    def update_user(self, user: AppUser) -> AppUser:
        if not user.email:
            raise ValueError("Email is required")
        with self.users.lock:
            existing = self.users.get(user.id)
            if existing is None:
                raise HTTPException(status_code=404, detail="User not found")
            if existing.email != user.email and self.users.email_exists(user.email):
                raise HTTPException(status_code=409, detail="Email already exists")
            if user.password:
                user.password = self.verifier.encode(user.password)
            else:
                user.password = existing.password
            self.users.update_by_id(user.id, user)
            return user

    def delete_user(self, user_id: int) -> None:
        """Remove a user together with their events and those events' recurrence rules.

        Rules go first, then events, then the user row. Nothing is rolled back:
        if the user row is already gone the event cleanup still happens and the
        call reports the user as not found.
        """
        event_ids = self.events.ids_by_user_id(user_id)
        if event_ids:
            self.rules.delete_by_event_ids(event_ids)
        self.events.delete_by_user_id(user_id)
        if not self.users.delete_by_id(user_id):
            raise HTTPException(status_code=404, detail="User not found")
        logger.info("deleted user %s with %d event(s)", user_id, len(event_ids))

    def email_exists(self, email: Optional[str]) -> bool:
        return self.users.email_exists(email)

    def validate_user(self, email: Optional[str], password: Optional[str]) -> Optional[AppUser]:
        return self.users.validate_user(email, password)

    def get_user_by_id(self, user_id: int) -> Optional[AppUser]:
        return self.users.get(user_id)

    # ── Backup ─────────────────────────────────────────────

    def backup_all(self, name: Optional[str] = None) -> str:
        return self.backups.backup_all(name)

    def restore_all(self, name: str, append: bool = False) -> dict[str, int]:
        try:
            return self.backups.restore_all(name, append)
        except FileNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    def list_backups(self) -> list[dict[str, Any]]:
        return self.backups.list_backups()

    def delete_backup(self, name: str) -> bool:
        return self.backups.delete_backup(name)


def get_persistence(cfg: Settings = settings) -> Persistence:
    return CsvPersistence(cfg.data_dir, cfg.backup_dir)
