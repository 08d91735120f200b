"""Small JSON-over-HTTP helper shared by the HTTP collaborators."""

from typing import Any, Optional

import requests

from .exceptions import RemoteExecutionError
from .logging import get_logger

logger = get_logger(__name__)


class JsonHttpClient:
    """Sends JSON requests relative to a base URL and decodes JSON replies."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def request(self, method: str, path: str, json: Any = None) -> Any:
        """
        Perform a request and return the decoded body.

        Returns:
            Decoded JSON, or None for 204 responses

        Raises:
            RemoteExecutionError: On transport failure or a non-2xx status
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                json=json,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteExecutionError(f"{method} {url} failed: {str(e)}", endpoint=path)

        if not response.ok:
            raise RemoteExecutionError(
                f"HTTP {response.status_code} {response.reason}: {response.text}",
                status_code=response.status_code,
                endpoint=path,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()
