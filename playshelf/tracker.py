"""Game tracker: manual adds, local play sessions and library CRUD."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from playshelf.db import Database
from playshelf.errors import InvalidInput, NotFound, Unauthenticated
from playshelf.models import (
    PLATFORM_LOCAL,
    PLATFORM_STEAM,
    SOURCE_LOCAL_CLIENT,
    Game,
    PlaySession,
    utcnow,
)
from playshelf.steam import SteamClient, StoreClient, extract_app_id

logger = logging.getLogger(__name__)


def _as_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInput(f"Invalid timestamp: {value!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class GameTracker:
    """Manages a user's collection of tracked games.

    Parameters
    ----------
    db:
        The ``Database`` games and sessions live in.
    client:
        ``SteamClient`` or ``StoreClient`` used to enrich games with store
        metadata. Defaults to a key-less ``StoreClient``.
    """

    def __init__(
        self, db: Database, client: SteamClient | StoreClient | None = None
    ) -> None:
        self._db = db
        self._client = client if client is not None else StoreClient()

    # ------------------------------------------------------------------
    # Manual add
    # ------------------------------------------------------------------

    def add_local_game(
        self,
        user_id: str,
        name: str,
        exe_name: str,
        steam_appid_input: Optional[str] = None,
    ) -> Game:
        """Register a locally installed game.

        If *steam_appid_input* (an app id or store URL) is given, store
        metadata is looked up. A failed lookup is logged and the game is
        added with its base fields only.
        """
        if not user_id:
            raise Unauthenticated("Unauthorized")
        if not name or not exe_name:
            raise InvalidInput("Name and EXE Name are required")

        game = Game(
            user_id=user_id,
            name=name,
            exe_name=exe_name,
            platform=PLATFORM_LOCAL,
            total_playtime_minutes=0,
        )

        appid = extract_app_id(steam_appid_input)
        if steam_appid_input and appid is None:
            logger.warning("Ignoring unrecognised Steam app id %r", steam_appid_input)
        if appid:
            try:
                details = self._client.get_app_details(appid)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to fetch Steam details for %s: %s", name, exc)
                details = None
            if details is not None:
                game.steam_appid = appid
                game.apply_details(details)
                game.icon_url = details.header_image

        try:
            return self._db.insert_game(game)
        except sqlite3.IntegrityError:
            raise InvalidInput(
                f"Steam app {game.steam_appid} is already in the library"
            ) from None

    # ------------------------------------------------------------------
    # Local client sessions
    # ------------------------------------------------------------------

    def submit_session(
        self,
        exe_name: str,
        start_time: datetime | str,
        end_time: datetime | str,
        user_id: Optional[str] = None,
    ) -> int:
        """Record one local play session for the game running *exe_name*.

        Returns the whole minutes added to the game's playtime.
        """
        if not exe_name or not start_time or not end_time:
            raise InvalidInput("Missing required fields")

        games = self._db.find_games_by_exe(exe_name, user_id)
        if not games:
            raise NotFound(f"Game not found for exe: {exe_name}")
        if len(games) > 1:
            raise InvalidInput(
                "Ambiguous exe_name (multiple users have this game). Please provide user_id."
            )
        game = games[0]

        start = _as_datetime(start_time)
        end = _as_datetime(end_time)
        duration = int((end - start).total_seconds())
        if duration < 0:
            raise InvalidInput("Invalid duration")

        self._db.insert_session(
            PlaySession(
                game_id=game.id,
                user_id=game.user_id,
                start_time=start,
                end_time=end,
                duration_seconds=duration,
                source=SOURCE_LOCAL_CLIENT,
            )
        )
        minutes = duration // 60
        self._db.add_playtime(game.id, minutes, utcnow())
        logger.info("Added %d minutes to %s", minutes, game.name)
        return minutes

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_game(self, user_id: str, game_id: str) -> Game:
        """Return one of *user_id*'s games.

        Steam games with no description yet are enriched from the store on
        first access. Raises ``NotFound`` if the game does not exist.
        """
        game = self._db.get_game(game_id, user_id)
        if game is None:
            raise NotFound("Game not found")
        if game.platform == PLATFORM_STEAM and game.steam_appid and not game.description:
            try:
                details = self._client.get_app_details(game.steam_appid)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to fetch Steam details for %s: %s", game.name, exc)
                details = None
            if details is not None:
                game.apply_details(details)
                self._db.update_game_details(game)
        return game

    def list_games(self, user_id: str) -> list[Game]:
        """Return *user_id*'s games ordered by playtime (descending)."""
        return self._db.list_games(user_id)

    def list_sessions(self, user_id: str, game_id: str) -> list[PlaySession]:
        """Return the sessions of one game, newest first."""
        if self._db.get_game(game_id, user_id) is None:
            raise NotFound("Game not found")
        return self._db.list_sessions(game_id)

    def remove_game(self, user_id: str, game_id: str) -> bool:
        """Remove a game and its sessions.

        Returns ``True`` if the game was found and removed, ``False`` otherwise.
        """
        return self._db.delete_game(game_id, user_id)
