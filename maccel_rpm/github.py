"""
Thin GitHub HTTP client shared by the release registry and upstream oracle.
"""

import time
from typing import Any, Callable, Dict, Optional

import requests

from maccel_rpm import __version__
from maccel_rpm.common import logger, retry_with_backoff
from maccel_rpm.config import DEFAULT_CONFIG, BuilderConfig
from maccel_rpm.models import MaccelRpmError


class GitHubAPIError(MaccelRpmError):
    """Exception raised when a GitHub request cannot be completed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """GET-only GitHub client with timeouts and retry with backoff."""

    # Statuses worth retrying
    RETRY_STATUSES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        config: Optional[BuilderConfig] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or DEFAULT_CONFIG
        self.session = session or requests.Session()
        self._sleep = sleep
        self.session.headers.update(self._default_headers())

    def _default_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": f"maccel-rpm/{__version__}",
        }
        if self.config.github_token:
            headers["Authorization"] = f"Bearer {self.config.github_token}"
        return headers

    def api_url(self, path: str) -> str:
        """Absolute API URL for a path like /repos/owner/name."""
        return f"{self.config.github_api_url.rstrip('/')}/{path.lstrip('/')}"

    def _get(self, url: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        def attempt() -> requests.Response:
            response = self.session.get(
                url,
                headers=headers,
                timeout=self.config.network_timeout,
                allow_redirects=True,
            )
            if response.status_code in self.RETRY_STATUSES:
                raise requests.HTTPError(
                    f"{response.status_code} from {url}", response=response
                )
            return response

        try:
            return retry_with_backoff(
                attempt,
                attempts=self.config.network_retries,
                base_delay=self.config.retry_delay,
                description=f"GET {url}",
                sleep=self._sleep,
            )
        except requests.RequestException as e:
            status = e.response.status_code if e.response is not None else None
            raise GitHubAPIError(f"GET {url} failed: {e}", status_code=status)

    def get_response(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[requests.Response]:
        """
        GET a URL.

        Returns:
            The response, or None on 404

        Raises:
            GitHubAPIError: On network failure or any other error status
        """
        response = self._get(url, headers=headers)
        if response.status_code == 404:
            logger.debug(f"Not found: {url}")
            return None
        if response.status_code >= 400:
            raise GitHubAPIError(
                f"GET {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def get_json(self, path: str) -> Optional[Any]:
        """GET an API path and decode JSON; None on 404."""
        url = path if path.startswith("http") else self.api_url(path)
        response = self.get_response(url)
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GitHubAPIError(f"Invalid JSON from {url}: {e}")

    def get_text(self, url: str) -> Optional[str]:
        """GET a URL as text; None on 404."""
        response = self.get_response(url)
        return response.text if response is not None else None

    def get_bytes(self, url: str, accept: str = "application/octet-stream") -> Optional[bytes]:
        """GET a URL as raw bytes; None on 404."""
        response = self.get_response(url, headers={"Accept": accept})
        return response.content if response is not None else None
