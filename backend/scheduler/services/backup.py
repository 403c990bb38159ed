"""
Sectioned backup files covering the events, recurrence and user tables.

Layout::

    #BACKUP_VERSION=1
    #EVENTS
    id,userId,title,description,startDateTime,endDateTime,category
    ...rows...
    #RECURRENTS
    eventId,recurrentInterval,recurrentTimes,recurrentEndDate
    ...rows...
    #USERS
    id,name,email,password
    ...rows...

Records are copied verbatim from the table files, quoted line breaks included.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..csv_codec import iter_records
from ..tables import CsvTable

logger = logging.getLogger(__name__)

VERSION_MARKER = "#BACKUP_VERSION=1"
EVENTS_MARKER = "#EVENTS"
RECURRENTS_MARKER = "#RECURRENTS"
USERS_MARKER = "#USERS"
BACKUP_SUFFIX = ".csv"


def sanitize_backup_name(name: Optional[str]) -> str:
    """Reduce ``name`` to a bare ``*.csv`` file name inside the backup directory."""
    raw = (name or "").strip().replace("\\", "/")
    base = raw.rsplit("/", 1)[-1].strip()
    if base in {"", ".", ".."}:
        raise ValueError("backup name is required")
    if not base.endswith(BACKUP_SUFFIX):
        base += BACKUP_SUFFIX
    return base


@dataclass
class BackupSection:
    marker: str
    table: CsvTable


class BackupService:
    def __init__(self, backup_dir: Path, events: CsvTable, rules: CsvTable, users: CsvTable) -> None:
        self.backup_dir = Path(backup_dir)
        self.sections = [
            BackupSection(EVENTS_MARKER, events),
            BackupSection(RECURRENTS_MARKER, rules),
            BackupSection(USERS_MARKER, users),
        ]
        self._markers = {s.marker for s in self.sections}
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def backup_all(self, name: Optional[str] = None) -> str:
        if not name or not name.strip():
            name = f"backup_{int(time.time() * 1000)}"
        file_name = sanitize_backup_name(name)
        target = self.backup_dir / file_name
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8", newline="") as out:
            out.write(VERSION_MARKER + "\n")
            for section in self.sections:
                out.write(section.marker + "\n")
                out.write(section.table.header + "\n")
                for record in section.table.read_data_records():
                    out.write(record + "\n")
        logger.info("backup written to %s", target)
        return str(target.resolve())

    def _spans_marker(self, fields: list[str]) -> bool:
        return any(line.strip() in self._markers for field in fields for line in field.split("\n"))

    def _parse(self, text: str) -> dict[str, list[str]]:
        collected: dict[str, list[str]] = {s.marker: [] for s in self.sections}
        current: Optional[str] = None
        skip_header = False
        for raw, _ in iter_records(text, lambda fields: not self._spans_marker(fields)):
            line = raw.strip()
            if line in collected:
                current = line
                skip_header = True
                continue
            if skip_header:
                skip_header = False
                continue
            if line.startswith("#"):
                continue
            if current is not None:
                collected[current].append(raw)
        return collected

    def restore_all(self, name: str, append: bool = False) -> dict[str, int]:
        file_name = sanitize_backup_name(name)
        source = self.backup_dir / file_name
        if not source.is_file():
            raise FileNotFoundError(f"Backup file not found: {file_name}")
        if append:
            logger.warning("restoring %s in append mode; duplicate ids are not remapped", file_name)
        collected = self._parse(source.read_text(encoding="utf-8"))
        counts: dict[str, int] = {}
        for section in self.sections:
            counts[section.table.name] = section.table.write_data_records(collected[section.marker], append)
        logger.info("restored %s (%s): %s", file_name, "append" if append else "replace", counts)
        return counts

    def list_backups(self) -> list[dict[str, Any]]:
        if not self.backup_dir.is_dir():
            return []
        backups = []
        for path in sorted(self.backup_dir.iterdir()):
            if path.is_file() and path.name.endswith(BACKUP_SUFFIX):
                stat = path.stat()
                backups.append(
                    {
                        "name": path.name,
                        "size": stat.st_size,
                        "lastModified": int(stat.st_mtime * 1000),
                        "path": str(path.resolve()),
                    }
                )
        return backups

    def delete_backup(self, name: str) -> bool:
        file_name = sanitize_backup_name(name)
        target = self.backup_dir / file_name
        if not target.is_file():
            return False
        target.unlink()
        logger.info("deleted backup %s", file_name)
        return True
