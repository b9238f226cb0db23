import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

import config
from db import database
from utils.logs import request_logger

TEST_CONFIG = """
[app]
timezone = "UTC"

[auth]
secret = ""
job_key = ""

[daily_plan]
default_target = 3

[exam]
min_page_size = 10
speaking_pass_score = 80

[stt]
provider = "remote"
url = "http://stt.test/recognize"

[tts]
url = "http://tts.test/speak"
format = "mp3"
locale = "en-US"
"""


def write_config(config_dir: Path, text: str = TEST_CONFIG) -> Path:
    config_path = config_dir / "config.toml"
    config_path.write_text(text, encoding="utf-8")
    return config_path


@pytest.fixture
def lingo_home(tmp_path, monkeypatch):
    config_dir = tmp_path / ".lingocards"
    config_dir.mkdir()
    config_path = write_config(config_dir)

    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)
    monkeypatch.setattr(database, "DB_PATH", config_dir / "lingocards.db")
    for name in ("LINGOCARDS_TIMEZONE", "LINGOCARDS_AUTH_SECRET", "LINGOCARDS_JOB_KEY", "LINGOCARDS_DB_PATH"):
        monkeypatch.delenv(name, raising=False)

    database.init_db()
    return config_dir


@pytest.fixture
def conn(lingo_home):
    with database.get_conn() as connection:
        yield connection


@pytest.fixture
def logger():
    return request_logger("test")


@pytest.fixture
def now():
    return datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)


def add_set(conn, owner_token, cards, name="Basics"):
    """Insert a set with (front, back, choices) cards; returns (set_id, [card ids])."""
    ts = database.to_db_ts(datetime(2024, 1, 1, tzinfo=timezone.utc))
    cursor = conn.execute(
        "INSERT INTO flashcard_sets (owner_token, name, created_at) VALUES (?, ?, ?)",
        (owner_token, name, ts),
    )
    set_id = cursor.lastrowid
    card_ids = []
    for seq, (front, back, choices) in enumerate(cards, start=1):
        cursor = conn.execute(
            """
            INSERT INTO flashcards (set_id, front, back, choices, seq, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (set_id, front, back, json.dumps(choices), seq, ts, ts),
        )
        card_ids.append(cursor.lastrowid)
    return set_id, card_ids


@pytest.fixture
def make_set(conn):
    def _make(owner_token, cards, name="Basics"):
        return add_set(conn, owner_token, cards, name=name)

    return _make
