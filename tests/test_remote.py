"""Tests for the remote records client."""

import json

import pytest
import requests
import responses

from watch_merge.remote import RecordsClient, RemoteAuthError, RemoteConnectionError

BASE = "https://records.example.com/api"


@pytest.fixture
def client():
    return RecordsClient(base_url=BASE + "/", user_id="user123", access_token="token456")


class TestConnection:
    """Test connection checks."""

    @responses.activate
    def test_connection_success(self, client):
        responses.add(responses.GET, f"{BASE}/users/user123", json={"id": "user123"}, status=200)
        assert client.test_connection() is True
        assert responses.calls[0].request.headers["Authorization"] == "Bearer token456"

    @responses.activate
    def test_connection_unauthorized(self, client):
        responses.add(responses.GET, f"{BASE}/users/user123", status=401)
        assert client.test_connection() is False

    @responses.activate
    def test_connection_network_error(self, client):
        responses.add(
            responses.GET,
            f"{BASE}/users/user123",
            body=requests.exceptions.ConnectionError("Network error"),
        )
        assert client.test_connection() is False


class TestFetchRecords:
    """Test fetching collections."""

    @responses.activate
    def test_fetch_list(self, client):
        responses.add(
            responses.GET,
            f"{BASE}/users/user123/watchHistory",
            json=[{"id": "a", "media_id": 550, "media_type": "movie"}],
            status=200,
        )
        assert client.fetch_records("watchHistory")[0]["media_id"] == 550

    @responses.activate
    def test_fetch_wrapped_items(self, client):
        responses.add(
            responses.GET,
            f"{BASE}/users/user123/favorites",
            json={"items": [{"id": "f"}], "total": 1},
            status=200,
        )
        assert client.fetch_records("favorites") == [{"id": "f"}]

    @responses.activate
    def test_fetch_auth_error(self, client):
        responses.add(responses.GET, f"{BASE}/users/user123/watchlist", status=403)
        with pytest.raises(RemoteAuthError):
            client.fetch_records("watchlist")

    @responses.activate
    def test_fetch_server_error(self, client):
        responses.add(responses.GET, f"{BASE}/users/user123/watchlist", status=500)
        with pytest.raises(RemoteConnectionError, match="500"):
            client.fetch_records("watchlist")

    @responses.activate
    def test_fetch_timeout(self, client):
        responses.add(
            responses.GET,
            f"{BASE}/users/user123/watchlist",
            body=requests.exceptions.Timeout("Request timeout"),
        )
        with pytest.raises(RemoteConnectionError, match="Cannot connect"):
            client.fetch_records("watchlist")

    def test_fetch_unknown_category(self, client):
        with pytest.raises(ValueError):
            client.fetch_records("bookmarks")


class TestPersistAndDelete:
    """Test writes."""

    @responses.activate
    def test_persist_record(self, client):
        responses.add(responses.PUT, f"{BASE}/users/user123/favorites/f1", status=204)
        record = {"id": "f1", "media_id": 550, "media_type": "movie"}

        assert client.persist_record("favorites", record) == record
        assert json.loads(responses.calls[0].request.body) == record

    @responses.activate
    def test_persist_returns_server_copy(self, client):
        responses.add(
            responses.PUT,
            f"{BASE}/users/user123/favorites/f1",
            json={"id": "f1", "version": 2},
            status=200,
        )
        assert client.persist_record("favorites", {"id": "f1"})["version"] == 2

    def test_persist_requires_id(self, client):
        with pytest.raises(ValueError):
            client.persist_record("favorites", {"media_id": 550})

    @responses.activate
    def test_persist_failure(self, client):
        responses.add(responses.PUT, f"{BASE}/users/user123/favorites/f1", status=500)
        with pytest.raises(RemoteConnectionError):
            client.persist_record("favorites", {"id": "f1"})

    @responses.activate
    def test_delete_records(self, client):
        responses.add(responses.DELETE, f"{BASE}/users/user123/watchlist/a", status=204)
        responses.add(responses.DELETE, f"{BASE}/users/user123/watchlist/b", status=404)

        assert client.delete_records("watchlist", ["a", "b"]) == 2

    @responses.activate
    def test_delete_auth_error(self, client):
        responses.add(responses.DELETE, f"{BASE}/users/user123/watchlist/a", status=401)
        with pytest.raises(RemoteAuthError):
            client.delete_records("watchlist", ["a"])


class TestMalformedResponses:
    """Bodies that are not JSON surface as connection errors."""

    @responses.activate
    def test_fetch_non_json_body(self, client):
        responses.add(
            responses.GET,
            f"{BASE}/users/user123/watchHistory",
            body="<html>maintenance</html>",
            status=200,
        )
        with pytest.raises(RemoteConnectionError, match="invalid JSON"):
            client.fetch_records("watchHistory")

    @responses.activate
    def test_fetch_unexpected_shape(self, client):
        responses.add(responses.GET, f"{BASE}/users/user123/watchlist", json="nope", status=200)
        with pytest.raises(RemoteConnectionError, match="expected a list"):
            client.fetch_records("watchlist")

    @responses.activate
    def test_persist_non_json_body(self, client):
        responses.add(
            responses.PUT,
            f"{BASE}/users/user123/favorites/f1",
            body="ok",
            status=200,
        )
        with pytest.raises(RemoteConnectionError, match="invalid JSON"):
            client.persist_record("favorites", {"id": "f1"})
