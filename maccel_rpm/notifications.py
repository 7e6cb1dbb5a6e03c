"""
GitHub Actions step outputs and workflow summaries.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from maccel_rpm.common import format_duration, logger
from maccel_rpm.models import FreshnessDecision, ReleaseAsset


def write_github_outputs(outputs: Dict[str, str], output_file: Optional[Path] = None) -> bool:
    """
    Append key=value lines to the GitHub Actions step output file.

    Args:
        outputs: Values to publish
        output_file: Output file (default: $GITHUB_OUTPUT)

    Returns:
        True if outputs were written
    """
    if output_file is None:
        env_path = os.environ.get("GITHUB_OUTPUT")
        if not env_path:
            logger.debug("GITHUB_OUTPUT not set, skipping step outputs")
            return False
        output_file = Path(env_path)

    with open(output_file, "a") as f:
        for key, value in outputs.items():
            f.write(f"{key}={value}\n")
    return True


def decision_outputs(decision: FreshnessDecision) -> Dict[str, str]:
    """Step outputs describing a freshness decision."""
    outputs = {
        "decision": decision.decision.value,
        "build_required": "false" if decision.skip else "true",
        "release_tag": decision.release_tag,
        "maccel_version": str(decision.source_version or ""),
    }
    if decision.existing:
        outputs["package_urls"] = " ".join(a.url for a in decision.existing.packages)
    return outputs


def _package_lines(packages: List[ReleaseAsset]) -> List[str]:
    return [f"- **{asset.name}**: [{asset.name}]({asset.url})" for asset in packages]


def _build_metadata(context: Dict[str, str]) -> List[str]:
    lines = ["", "## 📊 Build Information", ""]
    for label, key in [
        ("Build ID", "run_id"),
        ("Triggered by", "trigger_repo"),
        ("Kernel Version", "kernel_version"),
        ("Maccel Version", "maccel_version"),
        ("Fedora Version", "fedora_version"),
    ]:
        lines.append(f"- **{label}**: {context.get(key) or 'unknown'}")
    lines.append(f"- **Build Time**: {datetime.now(timezone.utc):%Y-%m-%d %H:%M:%S UTC}")
    return lines


def render_existing_summary(
    decision: FreshnessDecision,
    release_url: str,
    context: Optional[Dict[str, str]] = None,
) -> str:
    """Summary for a skipped build whose packages already exist."""
    packages = decision.existing.packages if decision.existing else []
    lines = [
        "# 📦 Packages Already Available",
        "",
        "The requested RPM packages already exist and are up-to-date. No build was necessary.",
        "",
        f"- **Release Tag**: [`{decision.release_tag}`]({release_url})",
        "- **Build Status**: ⏭️ Skipped (packages up-to-date)",
        f"- **Available Packages**: {len(packages)} RPM files",
        "",
        *_package_lines(packages),
    ]
    if decision.advisories:
        lines += ["", "## ⚠️ Warnings", ""] + [f"- {a}" for a in decision.advisories]
    lines += _build_metadata(context or {})
    return "\n".join(lines) + "\n"


def render_success_summary(
    release_tag: str,
    release_url: str,
    packages: List[ReleaseAsset],
    context: Optional[Dict[str, str]] = None,
) -> str:
    """Summary for a completed build."""
    lines = [
        "# ✅ RPM Build Completed Successfully",
        "",
        f"- **Release Tag**: [`{release_tag}`]({release_url})",
        "- **Build Status**: ✅ Success",
        f"- **Packages Built**: {len(packages)} RPM files",
        "",
        "## 📦 Package Downloads",
        "",
        *_package_lines(packages),
        "",
        "## 🔧 Installation",
        "",
        "```bash",
        "sudo dnf install " + " ".join(asset.url for asset in packages),
        "```",
    ]
    lines += _build_metadata(context or {})
    return "\n".join(lines) + "\n"


def render_failure_summary(
    error_type: str,
    error_message: str,
    error_details: str = "",
    duration_seconds: Optional[int] = None,
    context: Optional[Dict[str, str]] = None,
) -> str:
    """Summary for a failed build."""
    lines = [
        "# ❌ RPM Build Failed",
        "",
        f"- **Error Type**: `{error_type}`",
        f"- **Error Message**: {error_message}",
    ]
    if duration_seconds is not None:
        lines.append(f"- **Duration**: {format_duration(duration_seconds)}")
    if error_details:
        lines += ["", "## 🔍 Error Details", "", "```", error_details, "```"]
    lines += [
        "",
        "## 🛠️ Troubleshooting",
        "",
        "1. **Check the build logs** in the workflow run details",
        "2. **Verify kernel version format** matches: `X.Y.Z-REL.fcN.ARCH`",
        "3. **Ensure maccel repository is accessible** and source code is available",
        "4. **Retry the build** if the error appears to be transient",
    ]
    lines += _build_metadata(context or {})
    return "\n".join(lines) + "\n"


def write_step_summary(markdown: str, summary_file: Optional[Path] = None) -> Path:
    """Write a workflow summary ($GITHUB_STEP_SUMMARY by default)."""
    if summary_file is None:
        summary_file = Path(os.environ.get("GITHUB_STEP_SUMMARY", "/tmp/workflow-summary.md"))
    with open(summary_file, "a") as f:
        f.write(markdown)
    logger.info(f"Workflow summary generated: {summary_file}")
    return summary_file
