"""Data models for playshelf."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

PLATFORM_STEAM = "steam"
PLATFORM_LOCAL = "local"
PLATFORMS = (PLATFORM_STEAM, PLATFORM_LOCAL)

SOURCE_STEAM_API = "steam_api"
SOURCE_LOCAL_CLIENT = "local_client"
SOURCES = (SOURCE_STEAM_API, SOURCE_LOCAL_CLIENT)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Game:
    """A title owned by a user on one platform."""

    user_id: str
    name: str
    platform: str = PLATFORM_LOCAL
    steam_appid: Optional[str] = None
    exe_name: Optional[str] = None
    icon_url: Optional[str] = None
    total_playtime_minutes: int = 0
    is_shared: bool = False
    description: Optional[str] = None
    short_description: Optional[str] = None
    header_image: Optional[str] = None
    release_date: Optional[str] = None
    developers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.platform not in PLATFORMS:
            raise ValueError(f"Invalid platform: {self.platform!r}")
        if self.total_playtime_minutes < 0:
            raise ValueError("total_playtime_minutes cannot be negative")

    @property
    def playtime_hours(self) -> float:
        """Return playtime expressed in hours."""
        return round(self.total_playtime_minutes / 60, 2)

    def apply_details(self, details: GameDetails) -> None:
        """Copy descriptive catalog metadata onto this game."""
        self.description = details.detailed_description
        self.short_description = details.short_description
        self.header_image = details.header_image
        self.release_date = details.release_date
        self.developers = list(details.developers)
        self.publishers = list(details.publishers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "platform": self.platform,
            "steam_appid": self.steam_appid,
            "exe_name": self.exe_name,
            "icon_url": self.icon_url,
            "total_playtime_minutes": self.total_playtime_minutes,
            "is_shared": self.is_shared,
            "description": self.description,
            "short_description": self.short_description,
            "header_image": self.header_image,
            "release_date": self.release_date,
            "developers": self.developers,
            "publishers": self.publishers,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class PlaySession:
    """A block of play time attributed to a game.

    ``steam_api`` sessions are synthetic: one row per game holding the
    lifetime total reported by Steam.
    """

    game_id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    duration_seconds: int
    source: str = SOURCE_LOCAL_CLIENT
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.source not in SOURCES:
            raise ValueError(f"Invalid session source: {self.source!r}")
        if self.duration_seconds < 0:
            raise ValueError("duration_seconds cannot be negative")

    @property
    def duration_hours(self) -> float:
        return round(self.duration_seconds / 3600, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "game_id": self.game_id,
            "user_id": self.user_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_seconds": self.duration_seconds,
            "source": self.source,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SteamTitle:
    """One entry of a Steam owned-games response."""

    appid: int
    name: str
    playtime_forever: int = 0  # minutes
    img_icon_url: str = ""
    is_shared: bool = False

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> SteamTitle:
        appid = int(raw["appid"])
        return cls(
            appid=appid,
            name=raw.get("name") or f"App {appid}",
            playtime_forever=int(raw.get("playtime_forever") or 0),
            img_icon_url=raw.get("img_icon_url") or "",
        )


@dataclass
class GameDetails:
    """Descriptive metadata from the Steam store catalog."""

    detailed_description: Optional[str] = None
    short_description: Optional[str] = None
    header_image: Optional[str] = None
    release_date: Optional[str] = None
    developers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> GameDetails:
        release = raw.get("release_date") or {}
        return cls(
            detailed_description=raw.get("detailed_description"),
            short_description=raw.get("short_description"),
            header_image=raw.get("header_image"),
            release_date=release.get("date") if isinstance(release, dict) else None,
            developers=list(raw.get("developers") or []),
            publishers=list(raw.get("publishers") or []),
        )
