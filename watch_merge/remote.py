"""Client for the remote records API."""

from typing import Iterable, List

import requests

from watch_merge.models import CATEGORIES


class RemoteAuthError(Exception):
    """Authentication error."""

    pass


class RemoteConnectionError(Exception):
    """Connection error."""

    pass


class RecordsClient:
    """Client for a user's stored records.

    Records live under /users/{user_id}/{category} where category is one
    of watchHistory, favorites or watchlist.
    """

    CLIENT_NAME = "watch-merge-cli"

    def __init__(self, base_url: str, user_id: str, access_token: str):
        """Initialize records client."""
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.access_token = access_token

    def _get_headers(self) -> dict:
        """Build request headers."""
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "User-Agent": self.CLIENT_NAME,
        }

    def _category_url(self, category: str) -> str:
        if category not in CATEGORIES:
            raise ValueError(f"Invalid category: {category}")
        return f"{self.base_url}/users/{self.user_id}/{category}"

    def _check(self, response: requests.Response, ok=(200,)) -> None:
        if response.status_code in (401, 403):
            raise RemoteAuthError("Access token expired or invalid")
        if response.status_code not in ok:
            raise RemoteConnectionError(
                f"Records API error: {response.status_code}"
            )

    def _json(self, response: requests.Response):
        try:
            return response.json()
        except ValueError:
            raise RemoteConnectionError("Records API returned an invalid JSON response")

    def test_connection(self) -> bool:
        """Test connection to the records API.

        Returns True if connection is valid, False otherwise.
        """
        url = f"{self.base_url}/users/{self.user_id}"

        try:
            response = requests.get(
                url,
                headers=self._get_headers(),
                timeout=10,
            )
            return response.status_code == 200
        except requests.RequestException:
            return False

    def fetch_records(self, category: str) -> List[dict]:
        """Fetch all records of a category for the user."""
        url = self._category_url(category)

        try:
            response = requests.get(
                url,
                headers=self._get_headers(),
                timeout=60,
            )
        except requests.RequestException as e:
            raise RemoteConnectionError(f"Cannot connect to records API: {e}")

        self._check(response)

        data = self._json(response)
        if isinstance(data, dict):
            data = data.get("items", [])
        if not isinstance(data, list):
            raise RemoteConnectionError(
                f"Unexpected response for {category}: expected a list"
            )
        return data

    def persist_record(self, category: str, record: dict) -> dict:
        """Upsert one record, keyed by its id."""
        if not record.get("id"):
            raise ValueError("Record has no id")

        url = f"{self._category_url(category)}/{record['id']}"

        try:
            response = requests.put(
                url,
                json=record,
                headers=self._get_headers(),
                timeout=30,
            )
        except requests.RequestException as e:
            raise RemoteConnectionError(f"Cannot connect to records API: {e}")

        self._check(response, ok=(200, 201, 204))

        if response.status_code == 204 or not response.content:
            return record
        return self._json(response)

    def delete_records(self, category: str, ids: Iterable[str]) -> int:
        """Delete records by id. Returns how many were deleted.

        A record that is already gone counts as deleted.
        """
        deleted = 0
        for record_id in ids:
            url = f"{self._category_url(category)}/{record_id}"

            try:
                response = requests.delete(
                    url,
                    headers=self._get_headers(),
                    timeout=30,
                )
            except requests.RequestException as e:
                raise RemoteConnectionError(f"Cannot connect to records API: {e}")

            self._check(response, ok=(200, 202, 204, 404))
            deleted += 1

        return deleted
