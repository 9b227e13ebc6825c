"""Tests for playshelf.models."""

from datetime import datetime, timezone

import pytest

from playshelf.models import Game, GameDetails, PlaySession, SteamTitle


class TestGame:
    def test_defaults(self):
        game = Game(user_id="u", name="Factorio")
        assert game.platform == "local"
        assert game.total_playtime_minutes == 0
        assert game.id

    def test_playtime_hours_rounding(self):
        game = Game(user_id="u", name="X", total_playtime_minutes=90)
        assert game.playtime_hours == 1.5

    def test_invalid_platform(self):
        with pytest.raises(ValueError):
            Game(user_id="u", name="X", platform="epic")

    def test_negative_playtime(self):
        with pytest.raises(ValueError):
            Game(user_id="u", name="X", total_playtime_minutes=-1)

    def test_apply_details(self):
        game = Game(user_id="u", name="X")
        game.apply_details(GameDetails(short_description="s", developers=["D"]))
        assert game.short_description == "s"
        assert game.developers == ["D"]

    def test_to_dict(self):
        data = Game(user_id="u", name="X").to_dict()
        assert data["name"] == "X"
        assert isinstance(data["created_at"], str)


class TestPlaySession:
    def _now(self):
        return datetime.now(timezone.utc)

    def test_invalid_source(self):
        now = self._now()
        with pytest.raises(ValueError):
            PlaySession(game_id="g", user_id="u", start_time=now, end_time=now,
                        duration_seconds=0, source="manual")

    def test_negative_duration(self):
        now = self._now()
        with pytest.raises(ValueError):
            PlaySession(game_id="g", user_id="u", start_time=now, end_time=now,
                        duration_seconds=-5)

    def test_duration_hours(self):
        now = self._now()
        session = PlaySession(game_id="g", user_id="u", start_time=now, end_time=now,
                              duration_seconds=5400)
        assert session.duration_hours == 1.5


class TestSteamTitle:
    def test_from_api(self):
        title = SteamTitle.from_api(
            {"appid": 570, "name": "Dota 2", "playtime_forever": 600, "img_icon_url": "h"}
        )
        assert title.appid == 570
        assert title.playtime_forever == 600
        assert title.is_shared is False

    def test_from_api_fills_missing_fields(self):
        title = SteamTitle.from_api({"appid": 10})
        assert title.name == "App 10"
        assert title.playtime_forever == 0
        assert title.img_icon_url == ""


class TestGameDetails:
    def test_release_date_from_nested_object(self):
        details = GameDetails.from_api({"release_date": {"date": "1 Jan, 2020"}})
        assert details.release_date == "1 Jan, 2020"

    def test_missing_fields(self):
        details = GameDetails.from_api({})
        assert details.release_date is None
        assert details.developers == []
