"""Shared fixtures and in-memory doubles for the release registry and upstream oracle."""

import json
from typing import Dict, List, Optional, Union

import pytest

from maccel_rpm.config import BuilderConfig
from maccel_rpm.models import ReleaseAsset, ReleaseSummary
from maccel_rpm.registry import RegistryError, ReleaseRegistry
from maccel_rpm.upstream import SourceQueryError, SourceVersionOracle


KERNEL = "6.11.5-300.fc41.x86_64"
VERSION = "1.0.0"
TAG = f"kernel-{KERNEL}-maccel-{VERSION}"
COMMIT = "abc123" + "0" * 34
OTHER_COMMIT = "def456" + "1" * 34
REPOSITORY = "example/maccel-rpm"

PACKAGES = [
    "kmod-maccel-1.0.0-1.fc41.x86_64.rpm",
    "maccel-1.0.0-1.fc41.x86_64.rpm",
]


def build_info_document(commit: Optional[str] = COMMIT, **overrides) -> bytes:
    """A build-info.json body as published by the build pipeline."""
    data = {
        "kernel_version": KERNEL,
        "maccel_version": VERSION,
        "fedora_version": "41",
        "architecture": "x86_64",
        "build_timestamp": "2024-11-02T10:00:00Z",
    }
    if commit is not None:
        data["maccel_commit"] = commit
    data.update(overrides)
    return json.dumps(data).encode()


class FakeRegistry(ReleaseRegistry):
    """In-memory release registry that records every call."""

    def __init__(self):
        self.releases: Dict[str, dict] = {}
        self.calls: List[tuple] = []
        self.unreachable = False

    def add_release(
        self,
        tag: str = TAG,
        build_info: Optional[bytes] = None,
        packages: Optional[List[str]] = None,
        body: str = "",
        created_at: str = "2024-11-02T10:00:00Z",
    ) -> None:
        files: Dict[str, bytes] = {}
        for name in PACKAGES if packages is None else packages:
            files[name] = b"rpm"
        files["checksums.txt"] = b""
        if build_info is not None:
            files["build-info.json"] = build_info
        self.releases[tag] = {"files": files, "body": body, "created_at": created_at}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if self.unreachable:
            raise RegistryError("registry unreachable")

    def _release(self, tag: str) -> dict:
        if tag not in self.releases:
            raise RegistryError(f"Release not found: {tag}")
        return self.releases[tag]

    def exists(self, tag: str) -> bool:
        self._record("exists", tag)
        return tag in self.releases

    def get_assets(self, tag: str) -> List[ReleaseAsset]:
        self._record("get_assets", tag)
        return [
            ReleaseAsset(
                name=name,
                url=f"https://github.com/{REPOSITORY}/releases/download/{tag}/{name}",
                size=len(content),
            )
            for name, content in self._release(tag)["files"].items()
        ]

    def list(self, tag_prefix: str) -> List[ReleaseSummary]:
        self._record("list", tag_prefix)
        return [
            ReleaseSummary(
                tag=tag,
                created_at=release["created_at"],
                url=f"https://github.com/{REPOSITORY}/releases/tag/{tag}",
            )
            for tag, release in self.releases.items()
            if tag.startswith(tag_prefix)
        ]

    def download_asset(self, tag: str, filename: str) -> bytes:
        self._record("download_asset", tag, filename)
        files = self._release(tag)["files"]
        if filename not in files:
            raise RegistryError(f"Asset {filename} not found in release {tag}")
        return files[filename]


Answer = Union[Optional[str], Exception]


class FakeOracle(SourceVersionOracle):
    """Upstream oracle returning fixed answers; exceptions given as answers are raised."""

    def __init__(
        self,
        tag: Answer = f"v{VERSION}",
        manifest: Answer = VERSION,
        commit: Answer = COMMIT,
        notes: Answer = None,
    ):
        self.tag = tag
        self.manifest = manifest
        self.commit = commit
        self.notes = notes
        self.calls: List[str] = []

    def _answer(self, name: str, value: Answer):
        self.calls.append(name)
        if isinstance(value, Exception):
            raise value
        return value

    def latest_release_tag(self) -> Optional[str]:
        return self._answer("latest_release_tag", self.tag)

    def manifest_version(self) -> Optional[str]:
        return self._answer("manifest_version", self.manifest)

    def latest_commit(self) -> str:
        return self._answer("latest_commit", self.commit)

    def release_notes(self, version: str) -> Optional[str]:
        return self._answer("release_notes", self.notes)


def unreachable(what: str = "upstream") -> SourceQueryError:
    return SourceQueryError(f"{what} unreachable")


@pytest.fixture
def registry():
    """Empty fake registry."""
    return FakeRegistry()


@pytest.fixture
def oracle():
    """Fake oracle reporting version 1.0.0 at COMMIT."""
    return FakeOracle()


@pytest.fixture
def config():
    """Configuration that never sleeps between retries."""
    return BuilderConfig(
        repository=REPOSITORY,
        github_token="test-token",
        network_timeout=5,
        network_retries=3,
        retry_delay=0,
    )
