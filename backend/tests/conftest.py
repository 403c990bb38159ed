import os
import tempfile

os.environ.setdefault("CALENDAR_DATA_DIR", os.path.join(tempfile.mkdtemp(prefix="calendar-test-"), "csvFiles"))

import pytest
from fastapi.testclient import TestClient

from scheduler import main
from scheduler.persistence import CsvPersistence


@pytest.fixture()
def persistence(tmp_path) -> CsvPersistence:
    return CsvPersistence(tmp_path / "csvFiles", tmp_path / "backups")


@pytest.fixture()
def client(persistence, monkeypatch) -> TestClient:
    monkeypatch.setattr(main, "persistence", persistence)
    return TestClient(main.app)
