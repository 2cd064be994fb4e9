from __future__ import annotations

"""Local confession store.

Confessions submitted through the chat surface are kept in a tiny sqlite
database so ``/feed`` can show the most recent ones.  Only the newest
``CONFESSION_LIMIT`` rows are kept.  Engine state is never stored here.
"""

from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
import os
import sqlite3
import time
from typing import List

DB_PATH = Path(os.environ.get("COPE_DB", "cope.sqlite"))
CONFESSION_LIMIT = 50


@dataclass
class Confession:
    id: int
    message: str
    user_id: str
    created: float

    @property
    def display_time(self) -> str:
        return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.created))


def initialize() -> None:
    """Ensure the sqlite database exists with the required table."""
    with closing(sqlite3.connect(DB_PATH)) as db:
        db.execute(
            """
            CREATE TABLE IF NOT EXISTS confession (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                message TEXT NOT NULL,
                user_id TEXT NOT NULL,
                created REAL NOT NULL
            )
            """
        )
        db.commit()


def add_confession(message: str, user_id: str) -> Confession:
    """Persist *message* and prune everything beyond the newest rows."""
    initialize()
    created = time.time()
    with closing(sqlite3.connect(DB_PATH)) as db:
        cur = db.execute(
            "INSERT INTO confession(message, user_id, created) VALUES (?, ?, ?)",
            (message, user_id, created),
        )
        confession_id = cur.lastrowid
        db.execute(
            """
            DELETE FROM confession WHERE id NOT IN (
                SELECT id FROM confession ORDER BY id DESC LIMIT ?
            )
            """,
            (CONFESSION_LIMIT,),
        )
        db.commit()
    return Confession(confession_id, message, user_id, created)


def recent(limit: int = 10) -> List[Confession]:
    """Return the newest confessions first."""
    initialize()
    with closing(sqlite3.connect(DB_PATH)) as db:
        cur = db.execute(
            "SELECT id, message, user_id, created FROM confession ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        return [Confession(*row) for row in cur.fetchall()]
