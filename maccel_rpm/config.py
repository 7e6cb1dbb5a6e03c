"""
Configuration constants and settings for the maccel RPM builder.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional
import os


class Architecture(str, Enum):
    """Architectures that kernel packages are built for."""
    X86_64 = "x86_64"
    AARCH64 = "aarch64"


SUPPORTED_ARCHITECTURES = [arch.value for arch in Architecture]

# X.Y.Z-REL.fcN.ARCH, e.g. 6.11.5-300.fc41.x86_64
KERNEL_VERSION_PATTERN = (
    r"^[0-9]+\.[0-9]+\.[0-9]+-[0-9]+\.fc[0-9]+\.("
    + "|".join(SUPPORTED_ARCHITECTURES)
    + r")$"
)

# X.Y.Z or X.Y.Z+suffix
SEMVER_PATTERN = r"^[0-9]+\.[0-9]+\.[0-9]+(\+.*)?$"

FEDORA_VERSION_MIN = 35
FEDORA_VERSION_MAX = 50
DEFAULT_FEDORA_VERSION = "42"

PRODUCT_NAME = "maccel"
KMOD_PACKAGE_NAME = f"kmod-{PRODUCT_NAME}"

BUILD_INFO_ASSET = "build-info.json"
CHECKSUMS_ASSET = "checksums.txt"


@dataclass
class PackageSpec:
    """An RPM produced for every release."""
    name: str
    package_type: str
    description: str


PACKAGE_SPECS: List[PackageSpec] = [
    PackageSpec(
        name=KMOD_PACKAGE_NAME,
        package_type="kernel-module",
        description="Kernel module for maccel mouse acceleration driver",
    ),
    PackageSpec(
        name=PRODUCT_NAME,
        package_type="userspace-tools",
        description="Userspace CLI tools and configuration for maccel",
    ),
]


@dataclass(frozen=True)
class BuilderConfig:
    """Settings shared by the registry and upstream source adapters."""

    # This repository, where releases are published (owner/name)
    repository: str = ""
    github_token: Optional[str] = None

    # Upstream driver source
    upstream_repo: str = "Gnarus-G/maccel"
    upstream_branch: str = "main"

    # GitHub endpoints
    github_api_url: str = "https://api.github.com"
    github_host: str = "github.com"
    raw_content_url: str = "https://raw.githubusercontent.com"

    # Network settings
    network_timeout: int = 30
    network_retries: int = 3
    retry_delay: float = 5.0

    @classmethod
    def from_env(cls) -> "BuilderConfig":
        """Create configuration from environment variables."""
        from maccel_rpm.common import get_github_token

        return cls(
            repository=os.getenv("GITHUB_REPOSITORY", ""),
            github_token=get_github_token(),
            upstream_repo=os.getenv("MACCEL_UPSTREAM_REPO", "Gnarus-G/maccel"),
            upstream_branch=os.getenv("MACCEL_UPSTREAM_BRANCH", "main"),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            network_timeout=int(os.getenv("MACCEL_RPM_TIMEOUT", "30")),
            network_retries=int(os.getenv("MACCEL_RPM_RETRIES", "3")),
            retry_delay=float(os.getenv("MACCEL_RPM_RETRY_DELAY", "5")),
        )

    @property
    def repository_url(self) -> str:
        """Web URL of the publishing repository."""
        return f"https://{self.github_host}/{self.repository}"


DEFAULT_CONFIG = BuilderConfig()
