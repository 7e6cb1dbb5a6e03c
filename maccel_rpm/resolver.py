"""
Decide whether previously published packages can be reused.

A release is reused only when it exists, no rebuild was forced, and the
upstream commit recorded at publish time equals the current upstream
commit. Any lookup failure on the way leads to a rebuild.
"""

from typing import Union

from maccel_rpm.common import logger
from maccel_rpm.config import PRODUCT_NAME
from maccel_rpm.models import (
    FreshnessDecision,
    PlatformTarget,
    PublishedArtifactSet,
    ReleaseIdentity,
    SourceVersion,
)
from maccel_rpm.provenance import ProvenanceError, extract_provenance_commit
from maccel_rpm.registry import RegistryError, ReleaseRegistry
from maccel_rpm.upstream import (
    SourceQueryError,
    SourceVersionOracle,
    resolve_source_version,
)


class FreshnessResolver:
    """Resolve build targets against published releases."""

    def __init__(
        self,
        registry: ReleaseRegistry,
        oracle: SourceVersionOracle,
        product: str = PRODUCT_NAME,
    ):
        self.registry = registry
        self.oracle = oracle
        self.product = product

    def resolve(
        self,
        target: PlatformTarget,
        requested_source_version: Union[str, SourceVersion, None] = None,
        force_rebuild: bool = False,
    ) -> FreshnessDecision:
        """
        Decide whether a build is required for a target.

        Args:
            target: Kernel target to build for
            requested_source_version: Upstream version (string or resolved), or None to auto-detect
            force_rebuild: Rebuild even if an up-to-date release exists

        Returns:
            FreshnessDecision (BUILD_SKIP only for a verified up-to-date release)

        Raises:
            ValidationError: If the target or requested version is malformed
            VersionResolutionError: If no upstream version can be detected
        """
        advisories = target.validate()
        for advisory in advisories:
            logger.warning(advisory)

        source_version = resolve_source_version(self.oracle, requested_source_version)
        identity = ReleaseIdentity(
            kernel_version=target.kernel_version,
            source_version=source_version.semantic_version,
            product=self.product,
        )
        tag = identity.tag

        logger.info(f"Checking for existing packages: {tag} (force rebuild: {force_rebuild})")

        def build_required(reason: str) -> FreshnessDecision:
            logger.info(f"Build required: {reason}")
            return FreshnessDecision.build_required(
                tag, reason, source_version=source_version, advisories=advisories
            )

        try:
            if not self.registry.exists(tag):
                return build_required("no existing release")
        except RegistryError as e:
            logger.warning(f"Release lookup failed, rebuilding to be safe: {e}")
            return build_required("release registry unavailable")

        if force_rebuild:
            return build_required("force rebuild requested")

        try:
            current_commit = self.oracle.latest_commit()
        except SourceQueryError as e:
            logger.warning(f"Cannot determine current source commit, rebuilding to be safe: {e}")
            return build_required("current source commit unavailable")

        try:
            assets = self.registry.get_assets(tag)
            provenance_commit = extract_provenance_commit(
                self.registry, tag, [asset.name for asset in assets]
            )
        except (RegistryError, ProvenanceError) as e:
            logger.warning(f"Cannot determine existing source commit, rebuilding to be safe: {e}")
            return build_required("existing source commit unavailable")

        logger.info(f"Existing commit: {provenance_commit}")
        logger.info(f"Current commit:  {current_commit}")

        if provenance_commit != current_commit:
            return build_required("source commit changed")

        existing = PublishedArtifactSet(
            identity=identity,
            assets=assets,
            provenance_commit=provenance_commit,
        )
        logger.info(f"Packages are up-to-date, build can be skipped: {tag}")
        return FreshnessDecision.skippable(
            existing,
            source_version.model_copy(update={"source_commit": current_commit}),
            "source commit unchanged",
            advisories=advisories,
        )
