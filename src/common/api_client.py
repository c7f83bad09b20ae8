"""
Screen API client - playlist download and status reporting.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from src.common.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class ApiResponse:
    """Status code and decoded JSON body of an API call."""

    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == 200


class ApiClient:
    """Client for the screen endpoints of the signage server."""

    DEFAULT_TIMEOUT = 7

    def __init__(
        self,
        base_url: str,
        app_version: str = "1",
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. https://api.example.com/api
            app_version: Software version code sent as x-app-version
            timeout: Request timeout in seconds
            session: Optional requests session (a new one is created if None)
        """
        self.base_url = base_url.rstrip('/')
        self.app_version = app_version
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            'Content-type': 'application/json',
            'x-app-version': str(app_version),
        })

    @staticmethod
    def _screen_headers(screen_token: str) -> Dict[str, str]:
        return {'Authorization': f'Bearer {screen_token}'}

    def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> ApiResponse:
        """
        Perform a request and decode the JSON body.

        Raises:
            requests.RequestException: On transport failure or timeout
        """
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)

        response = self._session.request(
            method,
            url,
            json=json_body,
            headers=headers,
            timeout=self.timeout
        )

        try:
            data = response.json()
        except ValueError:
            data = None

        logger.debug("Response %d from %s", response.status_code, url)
        return ApiResponse(
            status=response.status_code,
            data=data,
            headers=dict(response.headers)
        )

    def fetch_playlist(self, screen_id: str, screen_token: str) -> ApiResponse:
        """
        Download the playlist assigned to a paired screen.

        Args:
            screen_id: Screen identifier from pairing
            screen_token: Bearer token from pairing

        Returns:
            ApiResponse whose data is the playlist JSON on status 200

        Raises:
            requests.RequestException: On transport failure or timeout
        """
        return self._request(
            'GET',
            f"/screens/{screen_id}/screen_playlist",
            headers=self._screen_headers(screen_token)
        )

    def send_screen_status(
        self,
        screen_id: str,
        screen_token: str,
        status: Dict[str, Any]
    ) -> ApiResponse:
        """
        Report screen status to the server.

        Raises:
            requests.RequestException: On transport failure or timeout
        """
        return self._request(
            'POST',
            f"/screens/{screen_id}/status",
            json_body=status,
            headers=self._screen_headers(screen_token)
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()

    def __repr__(self) -> str:
        """String representation."""
        return f"ApiClient(base_url={self.base_url})"
