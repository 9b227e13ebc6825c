"""Command-line interface for playshelf."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

from playshelf.analyser import SORT_KEYS, LibraryAnalyser
from playshelf.config import Settings
from playshelf.db import Database
from playshelf.errors import NotFound, PlayshelfError, Unauthenticated
from playshelf.importer import LibraryImporter
from playshelf.steam import SteamAPIError, SteamClient, StoreClient
from playshelf.tracker import GameTracker

logger = logging.getLogger(__name__)


def _settings(args: argparse.Namespace) -> Settings:
    db = getattr(args, "db", None)
    return Settings.from_env().override(
        db_path=Path(db) if db else None,
        steam_api_key=getattr(args, "api_key", None),
        user_id=getattr(args, "user", None),
    )


def _get_db(settings: Settings) -> Database:
    return Database(settings.db_path)


def _get_client(settings: Settings) -> SteamClient:
    return SteamClient(
        settings.require_steam_key(),
        timeout=settings.request_timeout,
        details_ttl=settings.details_cache_ttl,
    )


def _catalog_client(settings: Settings) -> SteamClient | StoreClient:
    if not settings.steam_api_key:
        return StoreClient(
            timeout=settings.request_timeout, details_ttl=settings.details_cache_ttl
        )
    return _get_client(settings)


def _require_user(settings: Settings) -> str:
    if not settings.user_id:
        raise Unauthenticated("Unauthorized: set PLAYSHELF_USER or use --user.")
    return settings.user_id


def _emit(args: argparse.Namespace, payload: Any) -> bool:
    """Print *payload* as JSON when --json was given; return whether it did."""
    if not getattr(args, "json", False):
        return False
    print(json.dumps(payload, indent=2, default=str))
    return True


# ------------------------------------------------------------------
# Sub-command handlers
# ------------------------------------------------------------------


def cmd_account_show(args: argparse.Namespace) -> None:
    settings = _settings(args)
    client = _get_client(settings)
    importer = LibraryImporter(client, _get_db(settings), settings)
    steam_id = importer.resolve_steam_id(args.handle)
    try:
        player = client.get_player_summary(steam_id)
    except SteamAPIError as exc:
        raise PlayshelfError(str(exc)) from exc
    if _emit(args, player):
        return
    print(f"  {player.get('steamid')}  {player.get('personaname', '')}  {player.get('profileurl', '')}")


def cmd_sync_steam(args: argparse.Namespace) -> None:
    settings = _settings(args)
    user_id = _require_user(settings)
    importer = LibraryImporter(_get_client(settings), _get_db(settings), settings)
    result = importer.sync(user_id, args.handle)
    if _emit(args, result.to_dict()):
        return
    print(f"Synced {result.count} of {result.attempted} games for {result.steam_id}.")
    for failure in result.failed:
        print(f"  failed: {failure.name} ({failure.appid}): {failure.message}", file=sys.stderr)


def cmd_games_list(args: argparse.Namespace) -> None:
    settings = _settings(args)
    user_id = _require_user(settings)
    analyser = LibraryAnalyser(_get_db(settings))
    games = analyser.filter_games(
        user_id, platform=args.platform, query=args.search or "", sort_by=args.sort
    )
    if _emit(args, [g.to_dict() for g in games]):
        return
    if not games:
        print("No games tracked.")
        return
    print(f"{'ID':<36}  {'Platform':<8} {'Hours':>8}  Name")
    print("-" * 72)
    for game in games:
        shared = " (shared)" if game.is_shared else ""
        print(
            f"{game.id:<36}  {game.platform:<8} {game.playtime_hours:>8.1f}  {game.name}{shared}"
        )


def cmd_games_show(args: argparse.Namespace) -> None:
    settings = _settings(args)
    user_id = _require_user(settings)
    tracker = GameTracker(_get_db(settings), _catalog_client(settings))
    game = tracker.get_game(user_id, args.game_id)
    if _emit(args, game.to_dict()):
        return
    print(f"{game.name} [{game.platform}]")
    print(f"  Playtime   : {game.playtime_hours:.1f} hours")
    if game.release_date:
        print(f"  Released   : {game.release_date}")
    if game.developers:
        print(f"  Developers : {', '.join(game.developers)}")
    if game.short_description:
        print(f"\n  {game.short_description}")


def cmd_games_add(args: argparse.Namespace) -> None:
    settings = _settings(args)
    user_id = _require_user(settings)
    tracker = GameTracker(_get_db(settings), _catalog_client(settings))
    game = tracker.add_local_game(user_id, args.name, args.exe_name, args.steam_app)
    if _emit(args, {"success": True, "game": game.to_dict()}):
        return
    print(f"Added game: {game.name} (id={game.id})")


def cmd_games_remove(args: argparse.Namespace) -> None:
    settings = _settings(args)
    user_id = _require_user(settings)
    tracker = GameTracker(_get_db(settings))
    if not tracker.remove_game(user_id, args.game_id):
        raise NotFound(f"Game {args.game_id} not found.")
    if _emit(args, {"success": True}):
        return
    print(f"Removed game {args.game_id}.")


def cmd_games_stats(args: argparse.Namespace) -> None:
    settings = _settings(args)
    user_id = _require_user(settings)
    summary = LibraryAnalyser(_get_db(settings)).library_summary(user_id, top_n=args.top_n)
    if _emit(args, dataclasses.asdict(summary)):
        return
    print(f"\n=== Library summary for {user_id} ===")
    print(f"  Total games      : {summary.total_games}")
    print(f"  Total playtime   : {summary.total_playtime_hours} hours")
    print(f"  Steam / local    : {summary.steam_games} / {summary.local_games}")
    print(f"  Family shared    : {summary.shared_games}")
    if summary.top_played:
        print(f"\n  Top {args.top_n} most-played games:")
        for g in summary.top_played:
            print(f"    {g.playtime_hours:>8.1f}h  {g.name}")


def cmd_sessions_list(args: argparse.Namespace) -> None:
    settings = _settings(args)
    user_id = _require_user(settings)
    db = _get_db(settings)
    sessions = GameTracker(db).list_sessions(user_id, args.game_id)
    if _emit(args, [s.to_dict() for s in sessions]):
        return
    if not sessions:
        print("No session history available.")
        return
    for s in sessions:
        print(f"  {s.start_time:%Y-%m-%d %H:%M}  {s.duration_hours:>7.1f}h  {s.source}")
    print("\n  Daily playtime:")
    for day in LibraryAnalyser(db).daily_playtime(args.game_id):
        print(f"    {day.date}  {day.hours:>6.2f}h")


def cmd_sessions_submit(args: argparse.Namespace) -> None:
    settings = _settings(args)
    if settings.client_secret and args.secret != settings.client_secret:
        raise Unauthenticated("Unauthorized: Invalid Client Secret")
    tracker = GameTracker(_get_db(settings))
    minutes = tracker.submit_session(
        args.exe_name, args.start_time, args.end_time, user_id=settings.user_id or None
    )
    if _emit(args, {"success": True, "added_minutes": minutes}):
        return
    print(f"Added {minutes} minutes to {args.exe_name}.")


# ------------------------------------------------------------------
# Argument parser
# ------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="playshelf",
        description="Personal game library: Steam import, local play sessions and stats.",
    )
    parser.add_argument(
        "--db",
        metavar="PATH",
        default=None,
        help="Path to the SQLite database file (default: ~/.playshelf/playshelf.db)",
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        metavar="KEY",
        default=None,
        help="Steam Web API key (overrides STEAM_API_KEY env var)",
    )
    parser.add_argument(
        "--user",
        metavar="USER_ID",
        default=None,
        help="Library owner (overrides PLAYSHELF_USER env var)",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- account ---
    account_p = subparsers.add_parser("account", help="Inspect Steam accounts")
    account_sub = account_p.add_subparsers(dest="account_cmd", required=True)

    acc_show = account_sub.add_parser("show", help="Show a Steam profile")
    acc_show.add_argument("handle", help="SteamID64, vanity name or profile URL")
    acc_show.set_defaults(func=cmd_account_show)

    # --- sync-steam ---
    sync_p = subparsers.add_parser(
        "sync-steam", help="Import or refresh the Steam library"
    )
    sync_p.add_argument("handle", help="SteamID64, vanity name or profile URL")
    sync_p.set_defaults(func=cmd_sync_steam)

    # --- games ---
    games_p = subparsers.add_parser("games", help="Manage tracked games")
    games_sub = games_p.add_subparsers(dest="games_cmd", required=True)

    g_list = games_sub.add_parser("list", help="List tracked games")
    g_list.add_argument(
        "--platform", choices=("all", "steam", "local"), default="all"
    )
    g_list.add_argument("--search", default="", help="Filter by name")
    g_list.add_argument("--sort", choices=SORT_KEYS, default="playtime")
    g_list.set_defaults(func=cmd_games_list)

    g_show = games_sub.add_parser("show", help="Show one game")
    g_show.add_argument("game_id")
    g_show.set_defaults(func=cmd_games_show)

    g_add = games_sub.add_parser("add", help="Manually add a local game")
    g_add.add_argument("name", help="Game name")
    g_add.add_argument("exe_name", help="Executable the local client watches for")
    g_add.add_argument(
        "--steam-app",
        dest="steam_app",
        default=None,
        help="Steam app id or store URL to pull details from",
    )
    g_add.set_defaults(func=cmd_games_add)

    g_rm = games_sub.add_parser("remove", help="Remove a tracked game")
    g_rm.add_argument("game_id")
    g_rm.set_defaults(func=cmd_games_remove)

    g_stats = games_sub.add_parser("stats", help="Summarise the library")
    g_stats.add_argument(
        "--top-n",
        dest="top_n",
        type=int,
        default=5,
        help="Number of top entries to show (default: 5)",
    )
    g_stats.set_defaults(func=cmd_games_stats)

    # --- sessions ---
    sessions_p = subparsers.add_parser("sessions", help="Play sessions")
    sessions_sub = sessions_p.add_subparsers(dest="sessions_cmd", required=True)

    s_list = sessions_sub.add_parser("list", help="List a game's sessions")
    s_list.add_argument("game_id")
    s_list.set_defaults(func=cmd_sessions_list)

    s_submit = sessions_sub.add_parser(
        "submit", help="Record a session reported by the local client"
    )
    s_submit.add_argument("exe_name")
    s_submit.add_argument("start_time", help="ISO 8601 start")
    s_submit.add_argument("end_time", help="ISO 8601 end")
    s_submit.add_argument(
        "--secret",
        default=None,
        help="Client secret (required when PLAYSHELF_CLIENT_SECRET is set)",
    )
    s_submit.set_defaults(func=cmd_sessions_submit)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 1
    try:
        func(args)
    except PlayshelfError as exc:
        logger.debug("Command failed", exc_info=True)
        if not _emit(args, exc.to_dict()):
            print(f"Error: {exc.message}", file=sys.stderr)
        return exc.status // 100
    return 0


if __name__ == "__main__":
    sys.exit(main())
