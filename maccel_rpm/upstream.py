"""
Upstream maccel version detection.

The upstream version is resolved from, in order of preference:
- the latest GitHub release tag
- the ``version`` field of Cargo.toml on the default branch
- the latest default-branch commit, as ``0.0.0+<short hash>``

The first method that yields a valid X.Y.Z[+suffix] version wins.
"""

import re
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple, Union

from maccel_rpm.common import logger
from maccel_rpm.config import DEFAULT_CONFIG, BuilderConfig
from maccel_rpm.github import GitHubAPIError, GitHubClient
from maccel_rpm.models import (
    MaccelRpmError,
    SourceVersion,
    ValidationError,
    VersionSource,
    is_valid_semver,
)


class SourceQueryError(MaccelRpmError):
    """Exception raised when the upstream repository cannot be queried."""
    pass


class VersionResolutionError(MaccelRpmError):
    """Raised when no detection method yields a valid upstream version."""
    pass


COMMIT_SHA_PATTERN = r"^[0-9a-fA-F]{40}$"
SHORT_HASH_LENGTH = 7


def is_full_commit_sha(value: str) -> bool:
    """Check for a full 40-character hex commit id."""
    return re.match(COMMIT_SHA_PATTERN, value) is not None


def clean_version(version: str) -> str:
    """Strip whitespace and a leading 'v' from a tag name."""
    version = version.strip()
    return version[1:] if version.startswith("v") else version


class SourceVersionOracle(ABC):
    """Read-only queries against the upstream source repository."""

    @abstractmethod
    def latest_release_tag(self) -> Optional[str]:
        """Tag name of the latest upstream release, if any."""

    @abstractmethod
    def manifest_version(self) -> Optional[str]:
        """Version declared in the upstream build manifest, if any."""

    @abstractmethod
    def latest_commit(self) -> str:
        """Full commit id at the head of the default branch."""

    def release_notes(self, version: str) -> Optional[str]:
        """Release notes for a version, if published."""
        return None


class GitHubSourceOracle(SourceVersionOracle):
    """Source version oracle backed by the GitHub API and raw content host."""

    MANIFEST_PATHS = ["Cargo.toml", "cli/Cargo.toml"]

    def __init__(
        self,
        config: Optional[BuilderConfig] = None,
        client: Optional[GitHubClient] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.client = client or GitHubClient(self.config)

    @property
    def repo(self) -> str:
        return self.config.upstream_repo

    @property
    def branch(self) -> str:
        return self.config.upstream_branch

    def latest_release_tag(self) -> Optional[str]:
        try:
            release = self.client.get_json(f"/repos/{self.repo}/releases/latest")
        except GitHubAPIError as e:
            raise SourceQueryError(f"Failed to query latest release of {self.repo}: {e}")
        if not release:
            return None
        return release.get("tag_name") or None

    def manifest_version(self) -> Optional[str]:
        for path in self.MANIFEST_PATHS:
            url = f"{self.config.raw_content_url}/{self.repo}/{self.branch}/{path}"
            try:
                content = self.client.get_text(url)
            except GitHubAPIError as e:
                raise SourceQueryError(f"Failed to fetch {path} from {self.repo}: {e}")
            if not content:
                continue
            match = re.search(r'^version\s*=\s*"([^"]+)"', content, re.MULTILINE)
            if match:
                return match.group(1)
        return None

    def latest_commit(self) -> str:
        try:
            commit = self.client.get_json(f"/repos/{self.repo}/commits/{self.branch}")
        except GitHubAPIError as e:
            raise SourceQueryError(f"Failed to query {self.repo}@{self.branch}: {e}")
        sha = (commit or {}).get("sha")
        if not sha or not is_full_commit_sha(sha):
            raise SourceQueryError(f"No commit id in response for {self.repo}@{self.branch}")
        return sha

    def release_notes(self, version: str) -> Optional[str]:
        # Upstream tags may or may not carry a 'v' prefix
        for tag in (f"v{version}", version):
            try:
                release = self.client.get_json(f"/repos/{self.repo}/releases/tags/{tag}")
            except GitHubAPIError as e:
                raise SourceQueryError(f"Failed to fetch release notes for {tag}: {e}")
            if release and release.get("body"):
                return release["body"]
        logger.warning(f"No release notes found for version {version}")
        return None


def _from_release_tag(oracle: SourceVersionOracle) -> Optional[str]:
    tag = oracle.latest_release_tag()
    return clean_version(tag) if tag else None


def _from_manifest(oracle: SourceVersionOracle) -> Optional[str]:
    version = oracle.manifest_version()
    return version.strip() if version else None


def _from_commit(oracle: SourceVersionOracle) -> Optional[str]:
    sha = oracle.latest_commit()
    return f"0.0.0+{sha[:SHORT_HASH_LENGTH]}"


DETECTION_METHODS: List[Tuple[VersionSource, Callable[[SourceVersionOracle], Optional[str]]]] = [
    (VersionSource.RELEASE_TAG, _from_release_tag),
    (VersionSource.MANIFEST, _from_manifest),
    (VersionSource.COMMIT, _from_commit),
]


def detect_source_version(oracle: SourceVersionOracle) -> SourceVersion:
    """
    Resolve the current upstream version.

    Args:
        oracle: Upstream source oracle

    Returns:
        SourceVersion from the first method yielding a valid version

    Raises:
        VersionResolutionError: If every method fails
    """
    logger.info("Starting maccel version detection...")

    for method, detect in DETECTION_METHODS:
        logger.debug(f"Trying version detection via {method.value}")
        try:
            version = detect(oracle)
        except SourceQueryError as e:
            logger.warning(f"Version detection via {method.value} failed: {e}")
            continue

        if not version:
            logger.warning(f"No version found via {method.value}")
            continue
        if not is_valid_semver(version):
            logger.warning(f"Invalid version format via {method.value}: {version}")
            continue

        logger.info(f"Detected maccel version {version} via {method.value}")
        return SourceVersion(semantic_version=version, method=method)

    raise VersionResolutionError("All version detection methods failed")


def resolve_source_version(
    oracle: SourceVersionOracle,
    requested: Union[str, SourceVersion, None] = None,
) -> SourceVersion:
    """
    Use an explicitly requested version, or detect one.

    "latest" and empty values mean auto-detect. An already resolved
    SourceVersion is returned as is.
    """
    if isinstance(requested, SourceVersion):
        return requested
    if requested and requested.strip() and requested.strip() != "latest":
        try:
            return SourceVersion(semantic_version=requested.strip(), method=VersionSource.EXPLICIT)
        except ValueError as e:
            raise ValidationError(f"Invalid maccel version format: {requested}") from e
    return detect_source_version(oracle)
