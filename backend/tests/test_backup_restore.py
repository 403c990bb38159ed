from datetime import datetime
from pathlib import Path

import pytest
from fastapi import HTTPException

from scheduler.csv_codec import EVENT_HEADER
from scheduler.schemas import AppUser, Event
from scheduler.services.backup import (
    EVENTS_MARKER,
    RECURRENTS_MARKER,
    USERS_MARKER,
    VERSION_MARKER,
    sanitize_backup_name,
)


def seed(persistence) -> None:
    user = persistence.save_user(AppUser(name="Ann", email="ann@example.com", password="pw"))
    persistence.generate_and_save_recurring_events(
        Event(
            userId=user.id,
            title="Lunch, with team",
            startDateTime=datetime(2026, 5, 4, 12, 0),
            endDateTime=datetime(2026, 5, 4, 13, 0),
            recurrentInterval="1w",
            recurrentTimes="2",
        )
    )


def snapshot(persistence) -> tuple:
    return (
        sorted((e.id, e.title, e.startDateTime) for e in persistence.load_events()),
        sorted((r.eventId, r.recurrentInterval) for r in persistence.load_recurrent_rules()),
        sorted((u.id, u.email) for u in persistence.load_users()),
    )


def test_backup_file_layout(persistence) -> None:
    seed(persistence)
    path = Path(persistence.backup_all("snap"))
    assert path.name == "snap.csv"
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == VERSION_MARKER
    markers = [line for line in lines if line in {EVENTS_MARKER, RECURRENTS_MARKER, USERS_MARKER}]
    assert markers == [EVENTS_MARKER, RECURRENTS_MARKER, USERS_MARKER]
    assert lines[lines.index(EVENTS_MARKER) + 1] == EVENT_HEADER


def test_replace_restore_returns_to_backup_state(persistence) -> None:
    seed(persistence)
    before = snapshot(persistence)
    persistence.backup_all("snap")

    persistence.save_user(AppUser(name="Bob", email="bob@example.com", password="pw"))
    persistence.delete_event(1)

    counts = persistence.restore_all("snap")
    assert counts == {"events.csv": 2, "recurrent.csv": 1, "users.csv": 1}
    assert snapshot(persistence) == before


def test_append_restore_adds_rows_without_second_header(persistence) -> None:
    seed(persistence)
    persistence.backup_all("snap")
    persistence.restore_all("snap", append=True)

    assert len(persistence.load_events()) == 4
    text = persistence.events.path.read_text(encoding="utf-8")
    assert text.count(EVENT_HEADER) == 1


def test_append_restore_recreates_missing_table(persistence) -> None:
    seed(persistence)
    persistence.backup_all("snap")
    persistence.events.path.unlink()

    persistence.restore_all("snap", append=True)
    text = persistence.events.path.read_text(encoding="utf-8")
    assert text.startswith(EVENT_HEADER + "\n")
    assert len(persistence.load_events()) == 2


def test_restore_missing_backup_is_not_found(persistence) -> None:
    with pytest.raises(HTTPException) as exc:
        persistence.restore_all("nope")
    assert exc.value.status_code == 404


def test_backup_names_stay_inside_backup_dir(persistence, tmp_path) -> None:
    path = Path(persistence.backup_all("../../evil"))
    assert path.parent == (tmp_path / "backups").resolve()
    assert path.name == "evil.csv"
    with pytest.raises(ValueError):
        sanitize_backup_name("..")
    assert sanitize_backup_name("nested\\dir\\snap") == "snap.csv"


def test_list_and_delete_backups(persistence) -> None:
    persistence.backup_all("b")
    persistence.backup_all("a.csv")
    names = [b["name"] for b in persistence.list_backups()]
    assert names == ["a.csv", "b.csv"]
    assert persistence.delete_backup("a") is True
    assert persistence.delete_backup("a") is False
    assert [b["name"] for b in persistence.list_backups()] == ["b.csv"]


def test_default_backup_name(persistence) -> None:
    path = Path(persistence.backup_all())
    assert path.name.startswith("backup_")
    assert path.suffix == ".csv"


def test_backup_api_roundtrip(client) -> None:
    reg = client.post("/api/users/register", json={"name": "Ann", "email": "ann@example.com", "password": "pw"})
    assert reg.status_code == 201

    created = client.post("/api/backup/create", json={"backupName": "api"})
    assert created.status_code == 200
    assert created.json()["backupName"] == "api.csv"

    listed = client.get("/api/backup/list")
    assert listed.status_code == 200
    assert [b["name"] for b in listed.json()["backups"]] == ["api.csv"]

    client.delete(f"/api/users/{reg.json()['user']['id']}")
    restored = client.post("/api/backup/restore", json={"backupName": "api.csv"})
    assert restored.status_code == 200
    assert restored.json()["counts"]["users.csv"] == 1
    assert client.get("/api/users/check-email", params={"email": "ann@example.com"}).json()["exists"] is True

    assert client.delete("/api/backup/api.csv").status_code == 200
    assert client.delete("/api/backup/api.csv").status_code == 404


def test_backup_api_restore_missing(client) -> None:
    res = client.post("/api/backup/restore", json={"backupName": "missing"})
    assert res.status_code == 404


def test_backup_api_create_without_body(client) -> None:
    res = client.post("/api/backup/create")
    assert res.status_code == 200
    assert res.json()["backupName"].startswith("backup_")


def test_multiline_description_survives_backup_and_restore(persistence) -> None:
    description = "agenda:\n\n#topics\n  indented\nend"
    persistence.save_event(
        Event(
            userId=1,
            title="Retro",
            description=description,
            startDateTime=datetime(2026, 5, 8, 15, 0),
            endDateTime=datetime(2026, 5, 8, 16, 0),
        )
    )
    seed(persistence)
    before = [(e.id, e.description) for e in persistence.load_events()]
    persistence.backup_all("snap")

    persistence.delete_event(1)
    persistence.restore_all("snap")

    assert [(e.id, e.description) for e in persistence.load_events()] == before
    assert persistence.get_event(1).description == description
    assert len(persistence.load_users()) == 1


def test_stray_quote_in_events_does_not_swallow_later_sections(persistence) -> None:
    seed(persistence)
    with persistence.events.path.open("a", encoding="utf-8") as fh:
        fh.write('9,1,"broken title,,2026-01-01T09:00,2026-01-01T10:00,HEALTH\n')
    persistence.backup_all("snap")

    counts = persistence.restore_all("snap")
    assert counts == {"events.csv": 3, "recurrent.csv": 1, "users.csv": 1}
    assert len(persistence.load_events()) == 2
    assert len(persistence.load_recurrent_rules()) == 1
    assert [u.email for u in persistence.load_users()] == ["ann@example.com"]
