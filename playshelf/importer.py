"""Steam library importer: reconcile a remote library with local records."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from playshelf.config import Settings
from playshelf.db import Database
from playshelf.errors import InvalidInput, NotFound, SyncFailed, Unauthenticated
from playshelf.models import (
    PLATFORM_STEAM,
    SOURCE_STEAM_API,
    Game,
    PlaySession,
    SteamTitle,
    utcnow,
)
from playshelf.steam import SteamAPIError, SteamClient, normalise_handle, steam_image_url

logger = logging.getLogger(__name__)


@dataclass
class TitleFailure:
    appid: int
    name: str
    message: str


@dataclass
class SyncResult:
    """Outcome of one library sync.

    ``count`` is the number of titles reconciled successfully; ``attempted``
    is the size of the remote library.
    """

    steam_id: str
    attempted: int
    count: int
    failed: list[TitleFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "count": self.count,
            "attempted": self.attempted,
            "failed": [
                {"appid": f.appid, "name": f.name, "error": f.message}
                for f in self.failed
            ],
        }


class LibraryImporter:
    """Imports a Steam library into the database for one user.

    Parameters
    ----------
    client:
        An authenticated ``SteamClient`` instance.
    db:
        The ``Database`` to persist data into.
    settings:
        Supplies family ids, the worker pool size and the artwork style.
    """

    def __init__(
        self, client: SteamClient, db: Database, settings: Optional[Settings] = None
    ) -> None:
        self._client = client
        self._db = db
        self._settings = settings or Settings()
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def resolve_steam_id(self, handle: str) -> str:
        """Map a SteamID64, vanity name or profile URL to a SteamID64.

        Raises ``NotFound`` when Steam does not know the handle.
        """
        steam_id = self._client.resolve_vanity_url(normalise_handle(handle))
        if not steam_id:
            raise NotFound("Could not resolve Steam ID")
        return steam_id

    def sync(self, user_id: str, handle: str) -> SyncResult:
        """Import the Steam library behind *handle* for *user_id*.

        Titles are reconciled concurrently and independently: a title that
        fails is logged and reported in ``SyncResult.failed`` while the rest
        are still written.
        """
        if not user_id:
            raise Unauthenticated("Unauthorized")
        if not handle or not handle.strip():
            raise InvalidInput("Steam ID or URL is required")

        steam_id = self.resolve_steam_id(handle)
        try:
            titles = self._client.get_owned_games(
                steam_id, family_ids=self._settings.family_ids
            )
        except SteamAPIError as exc:
            logger.error("Steam sync failed for %s: %s", steam_id, exc)
            raise SyncFailed(f"Could not fetch Steam library: {exc}") from exc

        logger.info("Reconciling %d titles for user %s", len(titles), user_id)
        result = SyncResult(steam_id=steam_id, attempted=len(titles), count=0)
        if not titles:
            return result

        workers = min(self._settings.max_workers, len(titles))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_title = {
                executor.submit(self.reconcile_title, user_id, title): title
                for title in titles
            }
            for future in concurrent.futures.as_completed(future_to_title):
                title = future_to_title[future]
                try:
                    future.result()
                    result.count += 1
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "Error syncing game %s (appid=%d): %s", title.name, title.appid, exc
                    )
                    result.failed.append(TitleFailure(title.appid, title.name, str(exc)))

        logger.info(
            "Synced %d/%d titles for user %s", result.count, result.attempted, user_id
        )
        return result

    # ------------------------------------------------------------------
    # Per-title reconciliation
    # ------------------------------------------------------------------

    def _lock_for(self, user_id: str, appid: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault((user_id, appid), threading.Lock())

    def reconcile_title(self, user_id: str, title: SteamTitle) -> Game:
        """Upsert the game row for *title* and its single ``steam_api`` session."""
        now = utcnow()
        appid = str(title.appid)
        game = self._db.upsert_steam_game(
            Game(
                user_id=user_id,
                name=title.name,
                platform=PLATFORM_STEAM,
                steam_appid=appid,
                icon_url=steam_image_url(
                    title.appid, title.img_icon_url, self._settings.image_style
                ),
                total_playtime_minutes=title.playtime_forever,
                is_shared=title.is_shared,
                created_at=now,
                updated_at=now,
            )
        )

        with self._lock_for(user_id, appid):
            self._reconcile_session(game, title.playtime_forever * 60)
        return game

    def _reconcile_session(self, game: Game, duration_seconds: int) -> None:
        sessions = self._db.find_sessions(game.id, SOURCE_STEAM_API)
        now = utcnow()
        if len(sessions) > 1:
            logger.error(
                "Game %s has %d steam_api sessions; updating the newest (%s)",
                game.id,
                len(sessions),
                sessions[0].id,
            )
        if sessions:
            self._db.update_session(sessions[0].id, duration_seconds, now)
            return
        self._db.insert_session(
            PlaySession(
                game_id=game.id,
                user_id=game.user_id,
                start_time=now,
                end_time=now,
                duration_seconds=duration_seconds,
                source=SOURCE_STEAM_API,
            )
        )
