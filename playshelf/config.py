"""Runtime settings, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

from playshelf.errors import ConfigurationError

DEFAULT_DB = Path.home() / ".playshelf" / "playshelf.db"

IMAGE_STYLES = ("library", "header", "icon")


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


@dataclass
class Settings:
    """Configuration shared by the Steam client, importer and CLI.

    Parameters
    ----------
    steam_api_key:
        Steam Web API key (https://steamcommunity.com/dev/apikey).
    family_ids:
        Extra SteamID64s whose libraries are merged in as shared titles.
    client_secret:
        When set, local session submissions must present it.
    image_style:
        Artwork used for Steam games: ``library`` (600x900 portrait),
        ``header`` or ``icon`` (the per-title icon hash).
    """

    steam_api_key: str = ""
    family_ids: list[str] = field(default_factory=list)
    db_path: Path = DEFAULT_DB
    user_id: str = ""
    client_secret: str = ""
    request_timeout: int = 10  # seconds
    max_workers: int = 8
    details_cache_ttl: int = 3600  # seconds
    image_style: str = "library"

    def __post_init__(self) -> None:
        if self.image_style not in IMAGE_STYLES:
            raise ConfigurationError(
                f"image_style must be one of {', '.join(IMAGE_STYLES)}, "
                f"got {self.image_style!r}"
            )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> Settings:
        env = os.environ if env is None else env
        family = env.get("STEAM_FAMILY_IDS", "")
        return cls(
            steam_api_key=env.get("STEAM_API_KEY", "").strip(),
            family_ids=[i.strip() for i in family.split(",") if i.strip()],
            db_path=Path(env.get("PLAYSHELF_DB") or DEFAULT_DB),
            user_id=env.get("PLAYSHELF_USER", "").strip(),
            client_secret=env.get("PLAYSHELF_CLIENT_SECRET", ""),
            request_timeout=_int_env(env, "PLAYSHELF_TIMEOUT", 10),
            max_workers=_int_env(env, "PLAYSHELF_MAX_WORKERS", 8),
            details_cache_ttl=_int_env(env, "PLAYSHELF_DETAILS_TTL", 3600),
            image_style=env.get("PLAYSHELF_IMAGE_STYLE", "library").strip() or "library",
        )

    def override(self, **changes: object) -> Settings:
        """Return a copy with every non-empty value in *changes* applied."""
        applied = {k: v for k, v in changes.items() if v not in (None, "")}
        return replace(self, **applied)

    def require_steam_key(self) -> str:
        if not self.steam_api_key:
            raise ConfigurationError(
                "Steam API key required. Set STEAM_API_KEY or use --api-key."
            )
        return self.steam_api_key
