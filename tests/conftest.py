from __future__ import annotations

from pathlib import Path

import pytest

from noticeboard.database import Database


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "noticeboard.sqlite3")
    db.initialize()
    return db
