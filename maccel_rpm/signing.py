"""
Sigstore keyless signing of RPM packages with cosign.
"""

import json
import os
import shutil
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from maccel_rpm.common import logger, run_command
from maccel_rpm.models import MaccelRpmError


class SigningError(MaccelRpmError):
    """Exception raised for signing failures."""
    pass


@dataclass
class SignatureResult:
    """Signing or verification outcome for one package."""
    package: str
    signed: bool = False
    verified: Optional[bool] = None
    signature_file: Optional[str] = None
    certificate_file: Optional[str] = None
    message: str = ""


class CosignSigner:
    """Sign and verify RPMs with cosign keyless signing."""

    OIDC_ENV_VARS = ["ACTIONS_ID_TOKEN_REQUEST_TOKEN", "ACTIONS_ID_TOKEN_REQUEST_URL"]

    def __init__(self, cosign: str = "cosign", env: Optional[Dict[str, str]] = None, timeout: int = 300):
        self.cosign = cosign
        self.env = env if env is not None else dict(os.environ)
        self.timeout = timeout

    def is_available(self) -> bool:
        """Check for a GitHub Actions OIDC token and a cosign binary."""
        if not self.env.get("GITHUB_ACTIONS"):
            logger.warning("Not running in GitHub Actions - Sigstore keyless signing not available")
            return False

        missing = [var for var in self.OIDC_ENV_VARS if not self.env.get(var)]
        if missing:
            logger.warning("GitHub OIDC token not available - ensure 'id-token: write' permission is set")
            return False

        if shutil.which(self.cosign) is None:
            logger.warning(f"{self.cosign} not found on PATH")
            return False

        return True

    def _packages(self, package_dir: Path) -> List[Path]:
        rpm_files = sorted(package_dir.glob("*.rpm"))
        if not rpm_files:
            raise SigningError(f"No RPM packages found in {package_dir}")
        return rpm_files

    def sign(self, package_dir: Path) -> List[SignatureResult]:
        """
        Sign every RPM in a directory.

        Writes <rpm>.sig and <rpm>.crt next to each package.

        Raises:
            SigningError: If no packages are found or cosign fails to sign
        """
        results = []
        rpm_files = self._packages(package_dir)
        logger.info(f"Found {len(rpm_files)} RPM packages to sign")

        for rpm_file in rpm_files:
            sig_file = rpm_file.with_name(f"{rpm_file.name}.sig")
            crt_file = rpm_file.with_name(f"{rpm_file.name}.crt")

            returncode, _, stderr = run_command(
                [
                    self.cosign, "sign-blob", "--yes", str(rpm_file),
                    "--output-signature", str(sig_file),
                    "--output-certificate", str(crt_file),
                ],
                timeout=self.timeout,
            )
            if returncode != 0:
                raise SigningError(f"Failed to sign {rpm_file.name}: {stderr.strip()}")

            logger.info(f"Signed {rpm_file.name}")
            results.append(SignatureResult(
                package=rpm_file.name,
                signed=True,
                signature_file=sig_file.name,
                certificate_file=crt_file.name if crt_file.exists() else None,
            ))

        return results

    def verify(self, package_dir: Path) -> List[SignatureResult]:
        """Verify the cosign signature of every RPM in a directory."""
        results = []

        for rpm_file in self._packages(package_dir):
            sig_file = rpm_file.with_name(f"{rpm_file.name}.sig")
            crt_file = rpm_file.with_name(f"{rpm_file.name}.crt")

            if not sig_file.exists():
                logger.warning(f"No Sigstore signature found for: {rpm_file.name}")
                results.append(SignatureResult(
                    package=rpm_file.name, verified=False, message="no signature"
                ))
                continue

            returncode, _, stderr = run_command(
                [
                    self.cosign, "verify-blob",
                    "--signature", str(sig_file),
                    "--certificate", str(crt_file),
                    "--certificate-identity-regexp", ".*",
                    "--certificate-oidc-issuer-regexp", ".*",
                    str(rpm_file),
                ],
                timeout=self.timeout,
            )
            verified = returncode == 0
            if verified:
                logger.info(f"Sigstore signature verified: {rpm_file.name}")
            else:
                logger.error(f"Sigstore signature verification failed: {rpm_file.name}")

            results.append(SignatureResult(
                package=rpm_file.name,
                signed=True,
                verified=verified,
                signature_file=sig_file.name,
                certificate_file=crt_file.name,
                message="" if verified else stderr.strip(),
            ))

        return results


def write_signing_summary(package_dir: Path, results: List[SignatureResult]) -> Path:
    """Write signing-summary.json next to the packages."""
    summary = {
        "signing_timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "signing_method": "sigstore-keyless",
        "packages_processed": len(results),
        "packages_signed": sum(1 for r in results if r.signed),
        "packages": [asdict(r) for r in results],
    }
    summary_path = package_dir / "signing-summary.json"
    with open(summary_path, "w") as f:
        json.dump(summary, f, indent=2)
    logger.info(f"Signing summary saved to: {summary_path}")
    return summary_path
