"""
Release registry: published GitHub releases of this repository.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from maccel_rpm.common import logger
from maccel_rpm.config import DEFAULT_CONFIG, BuilderConfig
from maccel_rpm.github import GitHubAPIError, GitHubClient
from maccel_rpm.models import MaccelRpmError, ReleaseAsset, ReleaseSummary


class RegistryError(MaccelRpmError):
    """Exception raised when the release registry cannot be queried."""
    pass


class ReleaseRegistry(ABC):
    """Read-only view of published releases."""

    @abstractmethod
    def exists(self, tag: str) -> bool:
        """Check if a release exists for a tag."""

    @abstractmethod
    def get_assets(self, tag: str) -> List[ReleaseAsset]:
        """Assets attached to a release, in release order."""

    @abstractmethod
    def list(self, tag_prefix: str) -> List[ReleaseSummary]:
        """Releases whose tag starts with a prefix."""

    @abstractmethod
    def download_asset(self, tag: str, filename: str) -> bytes:
        """Download one asset of a release."""


class GitHubReleaseRegistry(ReleaseRegistry):
    """Release registry backed by the GitHub REST API."""

    # GitHub caps per_page at 100
    LIST_LIMIT = 100

    def __init__(
        self,
        config: Optional[BuilderConfig] = None,
        client: Optional[GitHubClient] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        if not self.config.repository:
            raise RegistryError("GitHub repository is not configured (set GITHUB_REPOSITORY)")
        self.client = client or GitHubClient(self.config)

    def _release(self, tag: str) -> Optional[Dict[str, Any]]:
        try:
            return self.client.get_json(
                f"/repos/{self.config.repository}/releases/tags/{tag}"
            )
        except GitHubAPIError as e:
            raise RegistryError(f"Failed to query release {tag}: {e}")

    def _require_release(self, tag: str) -> Dict[str, Any]:
        release = self._release(tag)
        if release is None:
            raise RegistryError(f"Release not found: {tag}")
        return release

    def exists(self, tag: str) -> bool:
        logger.info(f"Checking if release exists: {tag}")
        found = self._release(tag) is not None
        if found:
            logger.info(f"Release found: {tag}")
        else:
            logger.info(f"Release not found: {tag}")
        return found

    def get_assets(self, tag: str) -> List[ReleaseAsset]:
        release = self._require_release(tag)
        try:
            return [
                ReleaseAsset(
                    name=asset["name"],
                    url=asset.get("browser_download_url") or "",
                    size=asset.get("size") or 0,
                )
                for asset in release.get("assets") or []
            ]
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise RegistryError(f"Malformed asset list for release {tag}: {e}")

    def list(self, tag_prefix: str) -> List[ReleaseSummary]:
        logger.info(f"Listing releases matching prefix: {tag_prefix}")
        try:
            releases = self.client.get_json(
                f"/repos/{self.config.repository}/releases?per_page={self.LIST_LIMIT}"
            ) or []
        except GitHubAPIError as e:
            raise RegistryError(f"Failed to list releases: {e}")

        return [
            ReleaseSummary(
                tag=release["tag_name"],
                created_at=release.get("created_at"),
                url=release.get("html_url"),
            )
            for release in releases
            if release.get("tag_name", "").startswith(tag_prefix)
        ]

    def download_asset(self, tag: str, filename: str) -> bytes:
        release = self._require_release(tag)
        asset = next(
            (a for a in release.get("assets", []) if a.get("name") == filename),
            None,
        )
        if asset is None:
            raise RegistryError(f"Asset {filename} not found in release {tag}")

        logger.debug(f"Downloading {filename} from release {tag}")
        try:
            content = self.client.get_bytes(asset["url"])
        except GitHubAPIError as e:
            raise RegistryError(f"Failed to download {filename} from {tag}: {e}")
        if content is None:
            raise RegistryError(f"Asset {filename} disappeared from release {tag}")
        return content
