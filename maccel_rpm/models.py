"""
Data models for the maccel RPM builder using Pydantic for validation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import re

from maccel_rpm.config import (
    FEDORA_VERSION_MAX,
    FEDORA_VERSION_MIN,
    KERNEL_VERSION_PATTERN,
    PACKAGE_SPECS,
    PRODUCT_NAME,
    SEMVER_PATTERN,
)


class MaccelRpmError(Exception):
    """Base class for errors raised by the maccel RPM builder."""
    pass


class ValidationError(MaccelRpmError):
    """Raised when a build target or version is malformed."""
    pass


class Decision(str, Enum):
    """Outcome of a freshness check."""
    BUILD_REQUIRED = "BUILD_REQUIRED"
    BUILD_SKIP = "BUILD_SKIP"


class VersionSource(str, Enum):
    """Where a source version came from."""
    EXPLICIT = "explicit"
    RELEASE_TAG = "release-tag"
    MANIFEST = "manifest"
    COMMIT = "commit"


def is_valid_semver(version: str) -> bool:
    """Check a version against the X.Y.Z[+suffix] grammar."""
    return re.match(SEMVER_PATTERN, version) is not None


def is_valid_kernel_version(kernel_version: str) -> bool:
    """Check a kernel version against the X.Y.Z-REL.fcN.ARCH grammar."""
    return re.match(KERNEL_VERSION_PATTERN, kernel_version) is not None


def package_filename(
    name: str,
    version: str,
    release: int,
    fedora_version: int,
    arch: str,
) -> str:
    """Build an RPM filename like kmod-maccel-1.0.0-1.fc41.x86_64.rpm."""
    return f"{name}-{version}-{release}.fc{fedora_version}.{arch}.rpm"


@dataclass(frozen=True)
class PlatformTarget:
    """Kernel and Fedora release that packages are built for."""
    kernel_version: str
    fedora_version: Optional[int] = None

    @classmethod
    def from_strings(
        cls,
        kernel_version: str,
        fedora_version: Optional[str] = None,
    ) -> "PlatformTarget":
        """Create a target from trigger or CLI string inputs."""
        fedora: Optional[int] = None
        if fedora_version is not None and str(fedora_version).strip():
            try:
                fedora = int(str(fedora_version).strip())
            except ValueError:
                raise ValidationError(
                    f"Invalid Fedora version: {fedora_version} (expected an integer)"
                )
        return cls(kernel_version=kernel_version.strip(), fedora_version=fedora)

    def validate(self) -> List[str]:
        """
        Validate the target.

        Returns:
            Advisory messages for suspicious but acceptable values

        Raises:
            ValidationError: If the kernel version is malformed
        """
        if not is_valid_kernel_version(self.kernel_version):
            raise ValidationError(
                f"Invalid kernel version format: {self.kernel_version} "
                "(expected X.Y.Z-REL.fcN.ARCH, e.g. 6.11.5-300.fc41.x86_64)"
            )

        advisories = []
        if self.fedora_version is not None:
            if not FEDORA_VERSION_MIN <= self.fedora_version <= FEDORA_VERSION_MAX:
                advisories.append(
                    f"Unusual Fedora version {self.fedora_version} "
                    f"(expected {FEDORA_VERSION_MIN}-{FEDORA_VERSION_MAX})"
                )
            if self.fedora_version != self.embedded_fedora_version:
                advisories.append(
                    f"Fedora version {self.fedora_version} does not match "
                    f".fc{self.embedded_fedora_version} in kernel {self.kernel_version}"
                )
        return advisories

    @property
    def embedded_fedora_version(self) -> Optional[int]:
        """Fedora version taken from the .fcN component."""
        match = re.search(r"\.fc(\d+)\.", self.kernel_version)
        return int(match.group(1)) if match else None

    @property
    def architecture(self) -> str:
        """Target architecture (last kernel version component)."""
        return self.kernel_version.rsplit(".", 1)[-1]

    @property
    def effective_fedora_version(self) -> Optional[int]:
        """Supplied Fedora version, or the embedded one when none was given."""
        if self.fedora_version is not None:
            return self.fedora_version
        return self.embedded_fedora_version

    def package_filenames(self, source_version: "SourceVersion", release: int = 1) -> List[str]:
        """Expected RPM filenames for a build of this target."""
        return [
            package_filename(
                spec.name,
                source_version.rpm_version,
                release,
                self.effective_fedora_version or 0,
                self.architecture,
            )
            for spec in PACKAGE_SPECS
        ]


class SourceVersion(BaseModel):
    """Version identity of the upstream maccel source."""
    model_config = ConfigDict(frozen=True)

    semantic_version: str
    source_commit: Optional[str] = None
    method: VersionSource = VersionSource.EXPLICIT

    @field_validator("semantic_version")
    @classmethod
    def validate_semantic_version(cls, v: str) -> str:
        """Validate X.Y.Z[+suffix] format."""
        if not is_valid_semver(v):
            raise ValueError(f"Invalid version format: {v} (expected X.Y.Z or X.Y.Z+suffix)")
        return v

    @property
    def rpm_version(self) -> str:
        """RPM-compatible version (0.0.0+abc1234 -> 0.0.0.abc1234)."""
        return self.semantic_version.replace("+", ".", 1)

    def __str__(self) -> str:
        return self.semantic_version


def format_release_tag(
    kernel_version: str,
    source_version: str,
    product: str = PRODUCT_NAME,
) -> str:
    """Release tag for a kernel/source version pair."""
    return f"kernel-{kernel_version}-{product}-{source_version}"


class ReleaseIdentity(BaseModel):
    """Key under which a kernel/source version's packages are published."""
    model_config = ConfigDict(frozen=True)

    kernel_version: str
    source_version: str
    product: str = PRODUCT_NAME

    @property
    def tag(self) -> str:
        """Release tag name."""
        return format_release_tag(self.kernel_version, self.source_version, self.product)

    def release_url(self, repository: str, host: str = "github.com") -> str:
        """Web URL of the release page."""
        return f"https://{host}/{repository}/releases/tag/{self.tag}"

    def download_url(self, repository: str, filename: str, host: str = "github.com") -> str:
        """Download URL of a release asset."""
        return f"https://{host}/{repository}/releases/download/{self.tag}/{filename}"

    def __str__(self) -> str:
        return self.tag


class ReleaseAsset(BaseModel):
    """A file attached to a release."""
    name: str
    url: str
    size: int = 0

    @property
    def is_package(self) -> bool:
        """Check if this asset is an RPM."""
        return self.name.endswith(".rpm")


class ReleaseSummary(BaseModel):
    """A release as shown in listings."""
    tag: str
    created_at: Optional[str] = None
    url: Optional[str] = None


class PublishedArtifactSet(BaseModel):
    """Packages and metadata previously published under a release tag."""
    identity: ReleaseIdentity
    assets: List[ReleaseAsset] = Field(default_factory=list)
    provenance_commit: Optional[str] = None

    @property
    def packages(self) -> List[ReleaseAsset]:
        """RPM assets only."""
        return [asset for asset in self.assets if asset.is_package]

    def asset_names(self) -> List[str]:
        """Names of all assets, in release order."""
        return [asset.name for asset in self.assets]


@dataclass
class FreshnessDecision:
    """Result of checking whether published packages are up to date."""
    decision: Decision
    release_tag: str
    source_version: Optional[SourceVersion] = None
    existing: Optional[PublishedArtifactSet] = None
    reason: str = ""
    advisories: List[str] = field(default_factory=list)

    @classmethod
    def build_required(
        cls,
        release_tag: str,
        reason: str,
        source_version: Optional[SourceVersion] = None,
        advisories: Optional[List[str]] = None,
    ) -> "FreshnessDecision":
        """A decision to build."""
        return cls(
            decision=Decision.BUILD_REQUIRED,
            release_tag=release_tag,
            source_version=source_version,
            reason=reason,
            advisories=list(advisories or []),
        )

    @classmethod
    def skippable(
        cls,
        existing: PublishedArtifactSet,
        source_version: SourceVersion,
        reason: str,
        advisories: Optional[List[str]] = None,
    ) -> "FreshnessDecision":
        """A decision to reuse an existing release."""
        return cls(
            decision=Decision.BUILD_SKIP,
            release_tag=existing.identity.tag,
            source_version=source_version,
            existing=existing,
            reason=reason,
            advisories=list(advisories or []),
        )

    @property
    def skip(self) -> bool:
        """True if the existing release can be reused."""
        return self.decision == Decision.BUILD_SKIP
