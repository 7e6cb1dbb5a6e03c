"""
maccel RPM builder - CI automation for maccel kernel module packages.

This package provides tools for:
- Deciding whether published release packages are still up to date
- Detecting the upstream maccel version
- Writing build provenance and checksums
- Signing packages with Sigstore
- Reporting results to GitHub Actions
"""

__version__ = "1.0.0"
__author__ = "maccel RPM builder maintainers"

from maccel_rpm.models import (
    Decision,
    FreshnessDecision,
    PlatformTarget,
    PublishedArtifactSet,
    ReleaseIdentity,
    SourceVersion,
    ValidationError,
    format_release_tag,
)
from maccel_rpm.upstream import VersionResolutionError
from maccel_rpm.resolver import FreshnessResolver

__all__ = [
    "__version__",
    "Decision",
    "FreshnessDecision",
    "FreshnessResolver",
    "PlatformTarget",
    "PublishedArtifactSet",
    "ReleaseIdentity",
    "SourceVersion",
    "ValidationError",
    "VersionResolutionError",
    "format_release_tag",
]
