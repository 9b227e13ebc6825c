"""SQLite database layer for playshelf."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from playshelf.config import DEFAULT_DB
from playshelf.models import Game, PlaySession

_DDL = """
CREATE TABLE IF NOT EXISTS games (
    id                     TEXT PRIMARY KEY,
    user_id                TEXT NOT NULL,
    name                   TEXT NOT NULL,
    platform               TEXT NOT NULL CHECK (platform IN ('steam', 'local')),
    steam_appid            TEXT,
    exe_name               TEXT,
    icon_url               TEXT,
    total_playtime_minutes INTEGER NOT NULL DEFAULT 0,
    is_shared              INTEGER NOT NULL DEFAULT 0,
    description            TEXT,
    short_description      TEXT,
    header_image           TEXT,
    release_date           TEXT,
    developers             TEXT NOT NULL DEFAULT '[]',
    publishers             TEXT NOT NULL DEFAULT '[]',
    created_at             TEXT NOT NULL,
    updated_at             TEXT NOT NULL,
    UNIQUE(user_id, steam_appid)
);

CREATE INDEX IF NOT EXISTS idx_games_exe ON games (exe_name);

CREATE TABLE IF NOT EXISTS play_sessions (
    id               TEXT PRIMARY KEY,
    game_id          TEXT NOT NULL REFERENCES games(id) ON DELETE CASCADE,
    user_id          TEXT NOT NULL,
    start_time       TEXT NOT NULL,
    end_time         TEXT NOT NULL,
    duration_seconds INTEGER NOT NULL DEFAULT 0,
    source           TEXT NOT NULL CHECK (source IN ('steam_api', 'local_client')),
    created_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_game ON play_sessions (game_id, source);
"""


def _fmt_dt(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_game(row: sqlite3.Row) -> Game:
    return Game(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        platform=row["platform"],
        steam_appid=row["steam_appid"],
        exe_name=row["exe_name"],
        icon_url=row["icon_url"],
        total_playtime_minutes=row["total_playtime_minutes"],
        is_shared=bool(row["is_shared"]),
        description=row["description"],
        short_description=row["short_description"],
        header_image=row["header_image"],
        release_date=row["release_date"],
        developers=json.loads(row["developers"] or "[]"),
        publishers=json.loads(row["publishers"] or "[]"),
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


def _row_to_session(row: sqlite3.Row) -> PlaySession:
    return PlaySession(
        id=row["id"],
        game_id=row["game_id"],
        user_id=row["user_id"],
        start_time=_parse_dt(row["start_time"]),
        end_time=_parse_dt(row["end_time"]),
        duration_seconds=row["duration_seconds"],
        source=row["source"],
        created_at=_parse_dt(row["created_at"]),
    )


class Database:
    """Thin wrapper around an SQLite connection for playshelf data.

    The connection is shared between threads; every statement runs under a
    lock and every write commits in its own transaction, so one failing
    write never rolls back another.
    """

    def __init__(self, path: Path | str = DEFAULT_DB) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._apply_schema()

    def _apply_schema(self) -> None:
        self._conn.executescript(_DDL)
        self._conn.commit()

    @contextmanager
    def _tx(self) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def upsert_steam_game(self, game: Game) -> Game:
        """Insert or refresh a Steam game keyed by (user_id, steam_appid).

        On conflict only the mutable fields are overwritten; the stored
        ``id`` and ``created_at`` survive. Returns the stored row.
        """
        if not game.steam_appid:
            raise ValueError("upsert_steam_game requires a steam_appid")
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO games
                    (id, user_id, name, platform, steam_appid, icon_url,
                     total_playtime_minutes, is_shared, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, steam_appid) DO UPDATE SET
                    name                   = excluded.name,
                    icon_url               = excluded.icon_url,
                    total_playtime_minutes = excluded.total_playtime_minutes,
                    is_shared              = excluded.is_shared,
                    updated_at             = excluded.updated_at
                """,
                (
                    game.id,
                    game.user_id,
                    game.name,
                    game.platform,
                    game.steam_appid,
                    game.icon_url,
                    game.total_playtime_minutes,
                    int(game.is_shared),
                    _fmt_dt(game.created_at),
                    _fmt_dt(game.updated_at),
                ),
            )
            row = conn.execute(
                "SELECT * FROM games WHERE user_id = ? AND steam_appid = ?",
                (game.user_id, game.steam_appid),
            ).fetchone()
        return _row_to_game(row)

    def insert_game(self, game: Game) -> Game:
        """Insert a new game row.

        Raises ``sqlite3.IntegrityError`` if the user already has a game
        with the same ``steam_appid``.
        """
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO games
                    (id, user_id, name, platform, steam_appid, exe_name, icon_url,
                     total_playtime_minutes, is_shared, description,
                     short_description, header_image, release_date,
                     developers, publishers, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    game.id,
                    game.user_id,
                    game.name,
                    game.platform,
                    game.steam_appid,
                    game.exe_name,
                    game.icon_url,
                    game.total_playtime_minutes,
                    int(game.is_shared),
                    game.description,
                    game.short_description,
                    game.header_image,
                    game.release_date,
                    json.dumps(game.developers),
                    json.dumps(game.publishers),
                    _fmt_dt(game.created_at),
                    _fmt_dt(game.updated_at),
                ),
            )
        return game

    def update_game_details(self, game: Game) -> None:
        """Persist the descriptive metadata of *game*."""
        with self._tx() as conn:
            conn.execute(
                """
                UPDATE games SET
                    description       = ?,
                    short_description = ?,
                    header_image      = ?,
                    release_date      = ?,
                    developers        = ?,
                    publishers        = ?
                WHERE id = ?
                """,
                (
                    game.description,
                    game.short_description,
                    game.header_image,
                    game.release_date,
                    json.dumps(game.developers),
                    json.dumps(game.publishers),
                    game.id,
                ),
            )

    def add_playtime(self, game_id: str, minutes: int, at: datetime) -> None:
        with self._tx() as conn:
            conn.execute(
                """
                UPDATE games SET
                    total_playtime_minutes = total_playtime_minutes + ?,
                    updated_at             = ?
                WHERE id = ?
                """,
                (minutes, _fmt_dt(at), game_id),
            )

    def get_game(self, game_id: str, user_id: Optional[str] = None) -> Optional[Game]:
        if user_id is None:
            row = self._fetchone("SELECT * FROM games WHERE id = ?", (game_id,))
        else:
            row = self._fetchone(
                "SELECT * FROM games WHERE id = ? AND user_id = ?", (game_id, user_id)
            )
        return _row_to_game(row) if row is not None else None

    def get_steam_game(self, user_id: str, steam_appid: str) -> Optional[Game]:
        row = self._fetchone(
            "SELECT * FROM games WHERE user_id = ? AND steam_appid = ?",
            (user_id, steam_appid),
        )
        return _row_to_game(row) if row is not None else None

    def list_games(self, user_id: str) -> list[Game]:
        rows = self._fetchall(
            """
            SELECT * FROM games WHERE user_id = ?
            ORDER BY total_playtime_minutes DESC, name
            """,
            (user_id,),
        )
        return [_row_to_game(r) for r in rows]

    def find_games_by_exe(self, exe_name: str, user_id: Optional[str] = None) -> list[Game]:
        if user_id:
            rows = self._fetchall(
                "SELECT * FROM games WHERE exe_name = ? AND user_id = ?",
                (exe_name, user_id),
            )
        else:
            rows = self._fetchall("SELECT * FROM games WHERE exe_name = ?", (exe_name,))
        return [_row_to_game(r) for r in rows]

    def delete_game(self, game_id: str, user_id: str) -> bool:
        with self._tx() as conn:
            conn.execute(
                "DELETE FROM play_sessions WHERE game_id = ? AND user_id = ?",
                (game_id, user_id),
            )
            cur = conn.execute(
                "DELETE FROM games WHERE id = ? AND user_id = ?", (game_id, user_id)
            )
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Play sessions
    # ------------------------------------------------------------------

    def insert_session(self, session: PlaySession) -> PlaySession:
        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO play_sessions
                    (id, game_id, user_id, start_time, end_time,
                     duration_seconds, source, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.game_id,
                    session.user_id,
                    _fmt_dt(session.start_time),
                    _fmt_dt(session.end_time),
                    session.duration_seconds,
                    session.source,
                    _fmt_dt(session.created_at),
                ),
            )
        return session

    def update_session(
        self, session_id: str, duration_seconds: int, end_time: datetime
    ) -> None:
        with self._tx() as conn:
            conn.execute(
                """
                UPDATE play_sessions SET duration_seconds = ?, end_time = ?
                WHERE id = ?
                """,
                (duration_seconds, _fmt_dt(end_time), session_id),
            )

    def find_sessions(self, game_id: str, source: str) -> list[PlaySession]:
        """Return *game_id*'s sessions from *source*, most recently created first."""
        rows = self._fetchall(
            """
            SELECT * FROM play_sessions WHERE game_id = ? AND source = ?
            ORDER BY created_at DESC, rowid DESC
            """,
            (game_id, source),
        )
        return [_row_to_session(r) for r in rows]

    def list_sessions(self, game_id: str) -> list[PlaySession]:
        rows = self._fetchall(
            """
            SELECT * FROM play_sessions WHERE game_id = ?
            ORDER BY start_time DESC, rowid DESC
            """,
            (game_id,),
        )
        return [_row_to_session(r) for r in rows]
