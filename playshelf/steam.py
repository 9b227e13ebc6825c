"""Steam Web API and store catalog client."""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, Optional

import requests

from playshelf.models import GameDetails, SteamTitle

logger = logging.getLogger(__name__)

_BASE = "https://api.steampowered.com"
_STORE = "https://store.steampowered.com/api/appdetails"
_CDN = "https://steamcdn-a.akamaihd.net/steam/apps"
_COMMUNITY_IMAGES = "https://media.steampowered.com/steamcommunity/public/images/apps"
_TIMEOUT = 10  # seconds
_DETAILS_TTL = 3600  # seconds

_STEAM_ID_RE = re.compile(r"[0-9]{17}")
_APP_ID_RE = re.compile(r"[0-9]+")
_APP_URL_RE = re.compile(r"/app/([0-9]+)")
_PROFILE_URL_RE = re.compile(r"steamcommunity\.com/(?:id|profiles)/([^/?#]+)")


class SteamAPIError(Exception):
    """Raised when the Steam API cannot be reached or answers unexpectedly."""


def is_steam_id(value: str) -> bool:
    """Return ``True`` if *value* already has the SteamID64 shape."""
    return bool(_STEAM_ID_RE.fullmatch(value or ""))


def normalise_handle(value: str) -> str:
    """Reduce a pasted profile URL to the vanity name or id it contains."""
    value = (value or "").strip()
    match = _PROFILE_URL_RE.search(value)
    if match:
        return match.group(1)
    return value.strip("/")


def extract_app_id(value: str | int | None) -> Optional[str]:
    """Return the app id from a bare id or a store URL, else ``None``."""
    if value is None:
        return None
    text = str(value).strip()
    match = _APP_URL_RE.search(text)
    if match:
        return match.group(1)
    return text if _APP_ID_RE.fullmatch(text) else None


def steam_image_url(appid: int | str, icon_hash: str = "", style: str = "library") -> str:
    """Build the artwork URL for *appid*.

    ``library`` is the 600x900 portrait art, ``header`` the 460x215 banner,
    ``icon`` the small per-title icon identified by *icon_hash*.
    """
    if style == "icon" and icon_hash:
        return f"{_COMMUNITY_IMAGES}/{appid}/{icon_hash}.jpg"
    if style == "header":
        return f"{_CDN}/{appid}/header.jpg"
    return f"{_CDN}/{appid}/library_600x900.jpg"


def merge_family_libraries(
    own: list[SteamTitle], family: list[list[SteamTitle]]
) -> list[SteamTitle]:
    """Merge family-shared libraries into the user's own library.

    Own titles win. A family title is added as shared when the user lacks it,
    and replaces the user's copy when that copy has no recorded playtime but
    the family copy does.
    """
    merged: dict[int, SteamTitle] = {}
    for title in own:
        title.is_shared = False
        merged[title.appid] = title
    for library in family:
        for title in library:
            existing = merged.get(title.appid)
            if existing is None or (
                existing.playtime_forever == 0 and title.playtime_forever > 0
            ):
                title.is_shared = True
                merged[title.appid] = title
    return list(merged.values())


def _section(data: Any, key: str) -> dict[str, Any]:
    """Return ``data[key]`` when both are JSON objects, else an empty dict."""
    if not isinstance(data, dict):
        return {}
    value = data.get(key)
    return value if isinstance(value, dict) else {}


class StoreClient:
    """Client for the public Steam store catalog, which needs no API key.

    Parameters
    ----------
    timeout:
        Seconds before a request is abandoned.
    details_ttl:
        Seconds a catalog lookup is cached for.
    """

    def __init__(self, timeout: int = _TIMEOUT, details_ttl: int = _DETAILS_TTL) -> None:
        self._timeout = timeout
        self._details_ttl = details_ttl
        self._details_cache: dict[str, tuple[float, Optional[GameDetails]]] = {}
        self._cache_lock = threading.Lock()

    def get_app_details(self, appid: str | int) -> Optional[GameDetails]:
        """Return store metadata for *appid*, or ``None`` if Steam has none.

        Answers are cached for ``details_ttl`` seconds, misses included.
        """
        key = str(appid)
        now = time.monotonic()
        with self._cache_lock:
            cached = self._details_cache.get(key)
            if cached is not None and now - cached[0] < self._details_ttl:
                return cached[1]

        try:
            resp = requests.get(
                _STORE, params={"appids": key, "l": "english"}, timeout=self._timeout
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise SteamAPIError(f"appdetails failed for {key}: {exc}") from exc
        if data is not None and not isinstance(data, dict):
            raise SteamAPIError(f"appdetails returned {type(data).__name__} for {key}")

        entry = _section(data, key)
        details = GameDetails.from_api(_section(entry, "data")) if entry.get("success") else None
        with self._cache_lock:
            self._details_cache[key] = (now, details)
        return details


class SteamClient:
    """Thin wrapper around the Steam Web API.

    Parameters
    ----------
    api_key:
        Your Steam Web API key (https://steamcommunity.com/dev/apikey).
    timeout:
        Seconds before any single request is abandoned.
    details_ttl:
        Seconds a store catalog lookup is cached for.
    """

    def __init__(
        self,
        api_key: str,
        timeout: int = _TIMEOUT,
        details_ttl: int = _DETAILS_TTL,
    ) -> None:
        if not api_key:
            raise ValueError("api_key must not be empty")
        self._key = api_key
        self._timeout = timeout
        self._store = StoreClient(timeout=timeout, details_ttl=details_ttl)
        self._session = requests.Session()
        self._session.params = {"key": self._key, "format": "json"}  # type: ignore[assignment]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, path: str, **params: Any) -> dict[str, Any]:
        url = f"{_BASE}/{path}"
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise SteamAPIError(f"{path} failed: {exc}") from exc
        if not isinstance(data, dict):
            raise SteamAPIError(f"{path} returned {type(data).__name__}, expected an object")
        return data

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def resolve_vanity_url(self, handle: str) -> Optional[str]:
        """Return the SteamID64 for *handle*, or ``None`` if it is unknown.

        A handle already shaped like a SteamID64 is returned without a
        request. Transport failures and malformed answers are reported as
        ``None`` too.
        """
        if not handle:
            return None
        if is_steam_id(handle):
            return handle
        try:
            data = self._get("ISteamUser/ResolveVanityURL/v0001/", vanityurl=handle)
        except SteamAPIError as exc:
            logger.warning("Could not resolve vanity url %r: %s", handle, exc)
            return None
        response = _section(data, "response")
        if response.get("success") == 1 and response.get("steamid"):
            return str(response["steamid"])
        return None

    def get_player_summary(self, steam_id: str) -> dict[str, Any]:
        """Return raw player summary data for *steam_id*.

        Raises ``SteamAPIError`` if the player is not found.
        """
        data = self._get("ISteamUser/GetPlayerSummaries/v0002/", steamids=steam_id)
        players = _section(data, "response").get("players")
        if not isinstance(players, list) or not players:
            raise SteamAPIError(f"Player not found for steam_id={steam_id!r}")
        return players[0]

    # ------------------------------------------------------------------
    # Library
    # ------------------------------------------------------------------

    def _fetch_owned(self, steam_id: str) -> list[SteamTitle]:
        data = self._get(
            "IPlayerService/GetOwnedGames/v0001/",
            steamid=steam_id,
            include_appinfo="true",
            include_played_free_games="true",
            include_free_sub=1,
        )
        response = data.get("response")
        if not isinstance(response, dict):
            raise SteamAPIError(f"GetOwnedGames returned no response object for {steam_id}")
        games = response.get("games") or []
        if not isinstance(games, list):
            raise SteamAPIError(f"GetOwnedGames returned malformed games for {steam_id}")
        titles: list[SteamTitle] = []
        for raw in games:
            if not isinstance(raw, dict) or not raw.get("appid"):
                continue
            titles.append(SteamTitle.from_api(raw))
        return titles

    def get_owned_games(
        self, steam_id: str, family_ids: Optional[list[str]] = None
    ) -> list[SteamTitle]:
        """Return the titles owned by *steam_id*, merged with family libraries.

        A failure fetching the user's own library raises ``SteamAPIError``;
        a failing family library is logged and skipped.
        """
        own = self._fetch_owned(steam_id)
        family: list[list[SteamTitle]] = []
        for family_id in dict.fromkeys(family_ids or []):
            if not family_id or family_id == steam_id:
                continue
            try:
                family.append(self._fetch_owned(family_id))
            except SteamAPIError as exc:
                logger.warning("Skipping family library %s: %s", family_id, exc)
        if not family:
            return own
        return merge_family_libraries(own, family)

    # ------------------------------------------------------------------
    # Store catalog
    # ------------------------------------------------------------------

    def get_app_details(self, appid: str | int) -> Optional[GameDetails]:
        """Return store metadata for *appid*; see ``StoreClient.get_app_details``."""
        return self._store.get_app_details(appid)
