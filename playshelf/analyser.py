"""Library analyser: derive summaries from stored games and sessions."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from playshelf.db import Database
from playshelf.models import PLATFORM_LOCAL, PLATFORM_STEAM, Game

SORT_KEYS = ("playtime", "recent", "name")


@dataclass
class GameSummary:
    """Summarised view of a single game."""

    game_id: str
    name: str
    platform: str
    playtime_hours: float
    is_shared: bool


@dataclass
class LibrarySummary:
    """Aggregate summary for a user's whole library."""

    user_id: str
    total_games: int
    total_playtime_hours: int
    steam_games: int
    local_games: int
    shared_games: int
    top_played: list[GameSummary] = field(default_factory=list)


@dataclass
class DailyPlaytime:
    date: str  # YYYY-MM-DD
    hours: float


class LibraryAnalyser:
    """Analyses game and session data stored in the database.

    Parameters
    ----------
    db:
        The ``Database`` to read data from.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Library-wide analysis
    # ------------------------------------------------------------------

    def library_summary(self, user_id: str, top_n: int = 5) -> LibrarySummary:
        """Return an aggregate ``LibrarySummary`` for *user_id*.

        Total hours are rounded to the nearest whole hour.
        """
        games = self._db.list_games(user_id)
        total_minutes = sum(g.total_playtime_minutes for g in games)
        top_played = sorted(games, key=lambda g: g.total_playtime_minutes, reverse=True)

        return LibrarySummary(
            user_id=user_id,
            total_games=len(games),
            total_playtime_hours=round(total_minutes / 60),
            steam_games=sum(1 for g in games if g.platform == PLATFORM_STEAM),
            local_games=sum(1 for g in games if g.platform == PLATFORM_LOCAL),
            shared_games=sum(1 for g in games if g.is_shared),
            top_played=[self._to_summary(g) for g in top_played[:top_n]],
        )

    def filter_games(
        self,
        user_id: str,
        platform: str = "all",
        query: str = "",
        sort_by: str = "playtime",
    ) -> list[Game]:
        """Return *user_id*'s games filtered by platform and name, then sorted.

        *sort_by* is ``playtime`` (most played first), ``recent`` (most
        recently updated first) or ``name``.
        """
        if sort_by not in SORT_KEYS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_KEYS)}")
        games = self._db.list_games(user_id)
        if platform != "all":
            games = [g for g in games if g.platform == platform]
        if query:
            needle = query.lower()
            games = [g for g in games if needle in g.name.lower()]

        if sort_by == "recent":
            return sorted(games, key=lambda g: g.updated_at, reverse=True)
        if sort_by == "name":
            return sorted(games, key=lambda g: g.name.lower())
        return sorted(games, key=lambda g: g.total_playtime_minutes, reverse=True)

    # ------------------------------------------------------------------
    # Per-game analysis
    # ------------------------------------------------------------------

    def daily_playtime(self, game_id: str) -> list[DailyPlaytime]:
        """Return hours played per start date for one game, oldest first."""
        totals: dict[str, float] = defaultdict(float)
        for session in self._db.list_sessions(game_id):
            totals[session.start_time.date().isoformat()] += session.duration_seconds / 3600
        return [
            DailyPlaytime(date=day, hours=round(hours, 2))
            for day, hours in sorted(totals.items())
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_summary(game: Game) -> GameSummary:
        return GameSummary(
            game_id=game.id,
            name=game.name,
            platform=game.platform,
            playtime_hours=game.playtime_hours,
            is_shared=game.is_shared,
        )
