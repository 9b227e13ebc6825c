"""Tests for playshelf.steam (SteamClient and URL helpers)."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from playshelf.models import SteamTitle
from playshelf.steam import (
    SteamAPIError,
    SteamClient,
    StoreClient,
    extract_app_id,
    is_steam_id,
    merge_family_libraries,
    normalise_handle,
    steam_image_url,
)

STEAM_ID = "76561198000000001"


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status = MagicMock()
    return resp


class TestSteamClientInit:
    def test_empty_api_key_raises(self):
        with pytest.raises(ValueError):
            SteamClient("")


class TestResolveVanityUrl:
    def _client(self) -> SteamClient:
        return SteamClient("fake_key")

    def test_steam_id_short_circuits(self):
        client = self._client()
        with patch.object(client._session, "get") as get:
            assert client.resolve_vanity_url(STEAM_ID) == STEAM_ID
        get.assert_not_called()

    def test_empty_handle_returns_none(self):
        client = self._client()
        with patch.object(client._session, "get") as get:
            assert client.resolve_vanity_url("") is None
        get.assert_not_called()

    def test_resolves_vanity_name(self):
        client = self._client()
        resp = _response({"response": {"success": 1, "steamid": STEAM_ID}})
        with patch.object(client._session, "get", return_value=resp) as get:
            assert client.resolve_vanity_url("alice") == STEAM_ID
        assert get.call_args.kwargs["params"]["vanityurl"] == "alice"

    def test_unknown_vanity_name_returns_none(self):
        client = self._client()
        resp = _response({"response": {"success": 42, "message": "No match"}})
        with patch.object(client._session, "get", return_value=resp):
            assert client.resolve_vanity_url("nobody") is None

    def test_transport_error_returns_none(self):
        client = self._client()
        with patch.object(
            client._session, "get", side_effect=requests.ConnectionError("down")
        ):
            assert client.resolve_vanity_url("alice") is None

    def test_sixteen_digits_is_not_a_steam_id(self):
        client = self._client()
        resp = _response({"response": {"success": 42}})
        with patch.object(client._session, "get", return_value=resp) as get:
            client.resolve_vanity_url("7656119800000000")
        get.assert_called_once()


class TestGetOwnedGames:
    def _client(self) -> SteamClient:
        return SteamClient("fake_key")

    def test_returns_titles(self):
        client = self._client()
        resp = _response(
            {
                "response": {
                    "games": [
                        {"appid": 570, "name": "Dota 2", "playtime_forever": 600, "img_icon_url": "h1"},
                        {"appid": 730, "name": "CS2", "playtime_forever": 300},
                        {"name": "No appid"},
                    ]
                }
            }
        )
        with patch.object(client._session, "get", return_value=resp):
            games = client.get_owned_games(STEAM_ID)
        assert [g.appid for g in games] == [570, 730]
        assert games[0].img_icon_url == "h1"
        assert games[1].playtime_forever == 300

    def test_private_profile_returns_empty(self):
        client = self._client()
        with patch.object(client._session, "get", return_value=_response({"response": {}})):
            assert client.get_owned_games(STEAM_ID) == []

    def test_http_error_raises(self):
        client = self._client()
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.HTTPError("403")
        with patch.object(client._session, "get", return_value=resp):
            with pytest.raises(SteamAPIError):
                client.get_owned_games(STEAM_ID)

    def test_timeout_raises(self):
        client = self._client()
        with patch.object(client._session, "get", side_effect=requests.Timeout()):
            with pytest.raises(SteamAPIError):
                client.get_owned_games(STEAM_ID)

    def test_family_library_merged(self):
        client = self._client()
        own = _response({"response": {"games": [{"appid": 1, "name": "Mine", "playtime_forever": 5}]}})
        family = _response({"response": {"games": [{"appid": 2, "name": "Theirs", "playtime_forever": 9}]}})
        with patch.object(client._session, "get", side_effect=[own, family]):
            games = client.get_owned_games(STEAM_ID, family_ids=["76561198000000002"])
        shared = {g.appid: g.is_shared for g in games}
        assert shared == {1: False, 2: True}

    def test_failing_family_library_skipped(self):
        client = self._client()
        own = _response({"response": {"games": [{"appid": 1, "name": "Mine"}]}})
        with patch.object(
            client._session, "get", side_effect=[own, requests.ConnectionError("down")]
        ):
            games = client.get_owned_games(STEAM_ID, family_ids=["76561198000000002"])
        assert [g.appid for g in games] == [1]


class TestMergeFamilyLibraries:
    def test_own_title_wins_when_played(self):
        own = [SteamTitle(appid=1, name="A", playtime_forever=10)]
        family = [[SteamTitle(appid=1, name="A", playtime_forever=99)]]
        merged = merge_family_libraries(own, family)
        assert merged[0].playtime_forever == 10
        assert merged[0].is_shared is False

    def test_unplayed_own_title_takes_owner_playtime(self):
        own = [SteamTitle(appid=1, name="A", playtime_forever=0)]
        family = [[SteamTitle(appid=1, name="A", playtime_forever=99)]]
        merged = merge_family_libraries(own, family)
        assert merged[0].playtime_forever == 99
        assert merged[0].is_shared is True


class TestGetAppDetails:
    def _client(self) -> SteamClient:
        return SteamClient("fake_key")

    def test_returns_details(self):
        client = self._client()
        payload = {
            "570": {
                "success": True,
                "data": {
                    "detailed_description": "Long",
                    "short_description": "Short",
                    "header_image": "https://example.com/h.jpg",
                    "release_date": {"coming_soon": False, "date": "9 Jul, 2013"},
                    "developers": ["Valve"],
                    "publishers": ["Valve"],
                },
            }
        }
        with patch("playshelf.steam.requests.get", return_value=_response(payload)):
            details = client.get_app_details(570)
        assert details.short_description == "Short"
        assert details.release_date == "9 Jul, 2013"
        assert details.developers == ["Valve"]

    def test_unknown_app_returns_none(self):
        client = self._client()
        with patch(
            "playshelf.steam.requests.get",
            return_value=_response({"1": {"success": False}}),
        ):
            assert client.get_app_details("1") is None

    def test_results_are_cached(self):
        client = self._client()
        with patch(
            "playshelf.steam.requests.get",
            return_value=_response({"1": {"success": False}}),
        ) as get:
            client.get_app_details("1")
            client.get_app_details("1")
        assert get.call_count == 1

    def test_expired_cache_refetches(self):
        client = SteamClient("fake_key", details_ttl=0)
        with patch(
            "playshelf.steam.requests.get",
            return_value=_response({"1": {"success": False}}),
        ) as get:
            client.get_app_details("1")
            client.get_app_details("1")
        assert get.call_count == 2

    def test_transport_error_raises(self):
        client = self._client()
        with patch("playshelf.steam.requests.get", side_effect=requests.ConnectionError()):
            with pytest.raises(SteamAPIError):
                client.get_app_details("1")


class TestHelpers:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("https://steamcommunity.com/id/alice/", "alice"),
            ("https://steamcommunity.com/profiles/76561198000000001", "76561198000000001"),
            ("  bob  ", "bob"),
        ],
    )
    def test_normalise_handle(self, value, expected):
        assert normalise_handle(value) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("570", "570"),
            (570, "570"),
            ("https://store.steampowered.com/app/570/Dota_2/", "570"),
            ("not an id", None),
            (None, None),
        ],
    )
    def test_extract_app_id(self, value, expected):
        assert extract_app_id(value) == expected

    def test_default_image_is_library_art(self):
        assert steam_image_url(570, "abc").endswith("/570/library_600x900.jpg")

    def test_icon_style_without_hash_falls_back(self):
        assert steam_image_url(570, "", "icon").endswith("/570/library_600x900.jpg")

    def test_header_style(self):
        assert steam_image_url(570, style="header").endswith("/570/header.jpg")


class TestMalformedResponses:
    def _client(self) -> SteamClient:
        return SteamClient("fake_key")

    @pytest.mark.parametrize("payload", [None, [], "oops", {"response": None}, {"response": []}])
    def test_resolve_returns_none(self, payload):
        client = self._client()
        with patch.object(client._session, "get", return_value=_response(payload)):
            assert client.resolve_vanity_url("alice") is None

    @pytest.mark.parametrize(
        "payload", [None, [1, 2], {"response": None}, {"response": {"games": "x"}}]
    )
    def test_owned_games_raises(self, payload):
        client = self._client()
        with patch.object(client._session, "get", return_value=_response(payload)):
            with pytest.raises(SteamAPIError):
                client.get_owned_games(STEAM_ID)

    def test_player_summary_raises(self):
        client = self._client()
        with patch.object(client._session, "get", return_value=_response({"response": None})):
            with pytest.raises(SteamAPIError):
                client.get_player_summary(STEAM_ID)

    def test_app_details_non_object_raises(self):
        with patch("playshelf.steam.requests.get", return_value=_response(["x"])):
            with pytest.raises(SteamAPIError):
                StoreClient().get_app_details("1")

    def test_app_details_null_body_is_a_miss(self):
        with patch("playshelf.steam.requests.get", return_value=_response(None)):
            assert StoreClient().get_app_details("1") is None


class TestStoreClient:
    def test_works_without_api_key(self):
        payload = {"570": {"success": True, "data": {"short_description": "MOBA"}}}
        with patch("playshelf.steam.requests.get", return_value=_response(payload)) as get:
            details = StoreClient(timeout=3).get_app_details(570)
        assert details.short_description == "MOBA"
        assert get.call_args.kwargs["timeout"] == 3
        assert "key" not in get.call_args.kwargs["params"]


class TestIsSteamId:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (STEAM_ID, True),
            ("７" * 17, False),
            (STEAM_ID + "\n", False),
            ("7656119800000000", False),
            ("", False),
        ],
    )
    def test_shape(self, value, expected):
        assert is_steam_id(value) is expected

    def test_unicode_digits_go_to_the_network(self):
        client = SteamClient("fake_key")
        resp = _response({"response": {"success": 42}})
        with patch.object(client._session, "get", return_value=resp) as get:
            assert client.resolve_vanity_url("７" * 17) is None
        get.assert_called_once()
