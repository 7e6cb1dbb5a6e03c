"""
Build provenance records (build-info.json) and package checksums.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from git import InvalidGitRepositoryError, NoSuchPathError, Repo
from pydantic import BaseModel, ConfigDict, Field

from maccel_rpm.common import calculate_sha256, logger
from maccel_rpm.config import BUILD_INFO_ASSET, CHECKSUMS_ASSET, PACKAGE_SPECS
from maccel_rpm.models import MaccelRpmError, PlatformTarget, SourceVersion
from maccel_rpm.registry import RegistryError, ReleaseRegistry
from maccel_rpm.upstream import is_full_commit_sha


class ProvenanceError(MaccelRpmError):
    """Exception raised when a release's source commit cannot be determined."""
    pass


UNKNOWN_COMMIT = "unknown"

# Field of build-info.json holding the upstream commit
PROVENANCE_COMMIT_FIELD = "maccel_commit"


class PackageEntry(BaseModel):
    """A package listed in build-info.json."""
    name: str
    filename: str
    type: str = ""
    description: str = ""


class BuildInfo(BaseModel):
    """Contents of build-info.json."""
    model_config = ConfigDict(extra="allow")

    kernel_version: str
    maccel_version: str
    maccel_commit: Optional[str] = None
    fedora_version: Optional[str] = None
    architecture: Optional[str] = None
    build_timestamp: Optional[str] = None
    packages: List[PackageEntry] = Field(default_factory=list)


def parse_provenance_commit(raw: bytes) -> str:
    """
    Extract the source commit from a build-info.json document.

    Only a full commit id in ``maccel_commit`` counts. Records written
    before that field existed, or with "unknown", have no usable commit.

    Raises:
        ProvenanceError: If the document is malformed or has no usable commit
    """
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise ProvenanceError(f"Malformed {BUILD_INFO_ASSET}: {e}")
    if not isinstance(data, dict):
        raise ProvenanceError(f"Malformed {BUILD_INFO_ASSET}: expected a JSON object")

    value = data.get(PROVENANCE_COMMIT_FIELD)
    if isinstance(value, str) and is_full_commit_sha(value):
        return value

    raise ProvenanceError(
        f"No usable {PROVENANCE_COMMIT_FIELD} in {BUILD_INFO_ASSET}: {value!r}"
    )


def extract_provenance_commit(
    registry: ReleaseRegistry,
    tag: str,
    asset_names: List[str],
) -> str:
    """
    Determine the source commit a published release was built from.

    Raises:
        ProvenanceError: If build-info.json is absent, unreadable or has no commit
    """
    logger.info(f"Extracting source commit from release: {tag}")

    if BUILD_INFO_ASSET not in asset_names:
        raise ProvenanceError(f"Release {tag} has no {BUILD_INFO_ASSET}")

    try:
        raw = registry.download_asset(tag, BUILD_INFO_ASSET)
    except RegistryError as e:
        raise ProvenanceError(f"Could not download {BUILD_INFO_ASSET} from {tag}: {e}")

    commit = parse_provenance_commit(raw)
    logger.info(f"Found source commit in build metadata: {commit}")
    return commit


def get_source_commit(source_dir: Optional[Path]) -> str:
    """HEAD commit of a local source checkout, or 'unknown'."""
    if source_dir is None:
        return UNKNOWN_COMMIT
    try:
        return Repo(source_dir).head.commit.hexsha
    except (InvalidGitRepositoryError, NoSuchPathError, ValueError) as e:
        logger.warning(f"Could not read source commit from {source_dir}: {e}")
        return UNKNOWN_COMMIT


def write_checksums(package_dir: Path) -> Path:
    """Write a sha256sum-compatible checksums.txt for all RPMs in a directory."""
    rpm_files = sorted(package_dir.glob("*.rpm"))
    if not rpm_files:
        raise ProvenanceError(f"No RPM packages found in {package_dir}")

    checksums_path = package_dir / CHECKSUMS_ASSET
    with open(checksums_path, "w") as f:
        for rpm_file in rpm_files:
            f.write(f"{calculate_sha256(rpm_file)}  {rpm_file.name}\n")

    logger.info(f"Generated checksums for {len(rpm_files)} packages")
    return checksums_path


def write_build_info(
    package_dir: Path,
    target: PlatformTarget,
    source_version: SourceVersion,
    source_dir: Optional[Path] = None,
    release: int = 1,
    source_commit: Optional[str] = None,
) -> BuildInfo:
    """
    Write build-info.json and checksums.txt for a finished build.

    Args:
        package_dir: Directory holding the built RPMs
        target: Kernel target the packages were built for
        source_version: Upstream version that was built
        source_dir: Local maccel checkout used for the build
        release: RPM release number
        source_commit: Commit id to record instead of reading source_dir

    Returns:
        The BuildInfo that was written
    """
    package_dir.mkdir(parents=True, exist_ok=True)
    commit = source_commit or get_source_commit(source_dir)

    filenames = target.package_filenames(source_version, release)
    info = BuildInfo(
        kernel_version=target.kernel_version,
        maccel_version=source_version.semantic_version,
        maccel_commit=commit,
        fedora_version=str(target.effective_fedora_version),
        architecture=target.architecture,
        build_timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        packages=[
            PackageEntry(
                name=spec.name,
                filename=filename,
                type=spec.package_type,
                description=spec.description,
            )
            for spec, filename in zip(PACKAGE_SPECS, filenames)
        ],
    )

    missing = [name for name in filenames if not (package_dir / name).exists()]
    if missing:
        logger.warning(f"Expected packages not found in {package_dir}: {', '.join(missing)}")

    build_info_path = package_dir / BUILD_INFO_ASSET
    with open(build_info_path, "w") as f:
        f.write(info.model_dump_json(indent=2, exclude_none=True))
    logger.info(f"Generated build metadata: {build_info_path}")

    write_checksums(package_dir)
    return info
