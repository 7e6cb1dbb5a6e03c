"""
Command-line interface for the maccel RPM builder.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.panel import Panel
from rich.table import Table

from maccel_rpm import __version__
from maccel_rpm.common import console, format_release_notes_for_rpm, setup_logging
from maccel_rpm.config import BuilderConfig
from maccel_rpm.models import (
    MaccelRpmError,
    PlatformTarget,
    ReleaseIdentity,
    SourceVersion,
    ValidationError,
    format_release_tag,
)
from maccel_rpm.registry import GitHubReleaseRegistry, RegistryError, ReleaseRegistry
from maccel_rpm.resolver import FreshnessResolver
from maccel_rpm.upstream import (
    GitHubSourceOracle,
    SourceQueryError,
    SourceVersionOracle,
    VersionResolutionError,
    detect_source_version,
    resolve_source_version,
)

# Exit codes besides 0 (skip / success) and 1 (build required / failure)
EXIT_VALIDATION_ERROR = 2
EXIT_VERSION_RESOLUTION_ERROR = 3


def print_banner():
    """Print application banner."""
    console.print(Panel.fit(
        f"[bold blue]maccel RPM builder[/bold blue] v{__version__}\n"
        "[dim]Kernel module packages for maccel[/dim]",
        border_style="blue",
    ))


def _config(ctx) -> BuilderConfig:
    if ctx.obj.get("config") is None:
        ctx.obj["config"] = BuilderConfig.from_env()
    return ctx.obj["config"]


def _registry(ctx) -> ReleaseRegistry:
    if ctx.obj.get("registry") is None:
        ctx.obj["registry"] = GitHubReleaseRegistry(_config(ctx))
    return ctx.obj["registry"]


def _oracle(ctx) -> SourceVersionOracle:
    if ctx.obj.get("oracle") is None:
        ctx.obj["oracle"] = GitHubSourceOracle(_config(ctx))
    return ctx.obj["oracle"]


def _fail(ctx, error: Exception, exit_code: int = 1):
    console.print(f"[red]Error: {error}[/red]")
    if ctx.obj.get("verbose"):
        console.print_exception()
    sys.exit(exit_code)


def _exit_code_for(error: MaccelRpmError) -> int:
    if isinstance(error, ValidationError):
        return EXIT_VALIDATION_ERROR
    if isinstance(error, VersionResolutionError):
        return EXIT_VERSION_RESOLUTION_ERROR
    return 1


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--log-file", type=click.Path(), help="Also write logs to this file")
@click.pass_context
def main(ctx, verbose: bool, quiet: bool, log_file: Optional[str]):
    """
    maccel RPM builder.

    Decides whether kernel module packages need rebuilding and handles
    the provenance, signing and reporting around a build.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    setup_logging(level=level, log_file=Path(log_file) if log_file else None)

    if not quiet:
        print_banner()


@main.command()
@click.argument("kernel_version")
@click.argument("source_version", required=False)
@click.argument("force_rebuild", required=False, default="false")
@click.option("--fedora-version", help="Fedora release the packages target")
@click.option("--github-output", is_flag=True, help="Write the decision to $GITHUB_OUTPUT")
@click.pass_context
def check(
    ctx,
    kernel_version: str,
    source_version: Optional[str],
    force_rebuild: str,
    fedora_version: Optional[str],
    github_output: bool,
):
    """
    Check whether packages for a kernel must be built.

    Prints BUILD_SKIP (exit 0) or BUILD_REQUIRED (exit 1).

    Examples:

        maccel-rpm check 6.11.5-300.fc41.x86_64

        maccel-rpm check 6.11.5-300.fc41.x86_64 1.0.0 true
    """
    from maccel_rpm.notifications import decision_outputs, write_github_outputs

    try:
        target = PlatformTarget.from_strings(kernel_version, fedora_version)
        target.validate()
        version = resolve_source_version(_oracle(ctx), source_version)
        resolver = FreshnessResolver(_registry(ctx), _oracle(ctx))
        decision = resolver.resolve(
            target,
            requested_source_version=version,
            force_rebuild=force_rebuild.strip().lower() == "true",
        )
    except MaccelRpmError as e:
        _fail(ctx, e, _exit_code_for(e))

    if github_output:
        write_github_outputs(decision_outputs(decision))

    click.echo(decision.decision.value)
    sys.exit(0 if decision.skip else 1)


@main.command()
@click.argument("kernel_version")
@click.argument("source_version", required=False)
@click.pass_context
def info(ctx, kernel_version: str, source_version: Optional[str]):
    """
    Show existing packages for a kernel as JSON.
    """
    try:
        PlatformTarget.from_strings(kernel_version).validate()
        version = resolve_source_version(_oracle(ctx), source_version)
        config = _config(ctx)
        registry = _registry(ctx)
        identity = ReleaseIdentity(
            kernel_version=kernel_version,
            source_version=version.semantic_version,
        )
        if not registry.exists(identity.tag):
            console.print(f"[red]Release does not exist: {identity.tag}[/red]")
            sys.exit(1)
        packages = [a for a in registry.get_assets(identity.tag) if a.is_package]
    except MaccelRpmError as e:
        _fail(ctx, e, _exit_code_for(e))

    if not packages:
        console.print(f"[red]No RPM packages found in release: {identity.tag}[/red]")
        sys.exit(1)

    click.echo(json.dumps({
        "release_tag": identity.tag,
        "release_url": identity.release_url(config.repository, config.github_host),
        "kernel_version": kernel_version,
        "maccel_version": version.semantic_version,
        "packages": [
            {
                "name": a.name,
                "url": a.url or identity.download_url(config.repository, a.name, config.github_host),
            }
            for a in packages
        ],
    }, indent=2))


@main.command(name="list")
@click.argument("kernel_version_pattern")
@click.pass_context
def list_releases(ctx, kernel_version_pattern: str):
    """
    List releases whose kernel version starts with a pattern.
    """
    try:
        releases = _registry(ctx).list(f"kernel-{kernel_version_pattern}")
    except RegistryError as e:
        _fail(ctx, e)

    if not releases:
        console.print(f"[yellow]No releases found matching pattern: {kernel_version_pattern}[/yellow]")
        sys.exit(1)

    click.echo(json.dumps(
        [{"tag": r.tag, "created": r.created_at, "url": r.url} for r in releases],
        indent=2,
    ))


@main.command(name="release-tag")
@click.argument("kernel_version")
@click.argument("source_version", required=False)
@click.pass_context
def release_tag(ctx, kernel_version: str, source_version: Optional[str]):
    """
    Print the release tag for a kernel and maccel version.
    """
    try:
        version = resolve_source_version(_oracle(ctx), source_version)
    except MaccelRpmError as e:
        _fail(ctx, e, _exit_code_for(e))

    click.echo(format_release_tag(kernel_version, version.semantic_version))


@main.command()
@click.argument("event_file", type=click.Path(exists=True), required=False)
@click.pass_context
def dispatch(ctx, event_file: Optional[str]):
    """
    Handle a repository dispatch event.

    Reads the event (default: $GITHUB_EVENT_PATH), decides whether a build
    is required and publishes the decision as step outputs. Exits 0 for
    both decisions.
    """
    from maccel_rpm.notifications import (
        decision_outputs,
        render_existing_summary,
        write_github_outputs,
        write_step_summary,
    )
    from maccel_rpm.trigger import TriggerPayload

    path = event_file or os.environ.get("GITHUB_EVENT_PATH")
    if not path:
        _fail(ctx, ValidationError("No event file given and GITHUB_EVENT_PATH is not set"),
              EXIT_VALIDATION_ERROR)

    try:
        payload = TriggerPayload.from_file(Path(path))
        console.print(f"Triggered by: {payload.trigger_repo or 'manual'}")
        target = payload.to_target()
        target.validate()
        version = resolve_source_version(_oracle(ctx), payload.requested_source_version)
        resolver = FreshnessResolver(_registry(ctx), _oracle(ctx))
        decision = resolver.resolve(
            target,
            requested_source_version=version,
            force_rebuild=payload.force_rebuild,
        )
    except MaccelRpmError as e:
        _fail(ctx, e, _exit_code_for(e))

    write_github_outputs(decision_outputs(decision))

    if decision.skip:
        config = _config(ctx)
        write_step_summary(render_existing_summary(
            decision,
            decision.existing.identity.release_url(config.repository, config.github_host),
            context={
                "run_id": os.environ.get("GITHUB_RUN_ID", ""),
                "trigger_repo": payload.trigger_repo or "manual",
                "kernel_version": payload.kernel_version,
                "maccel_version": str(decision.source_version),
                "fedora_version": payload.fedora_version,
            },
        ))

    click.echo(decision.decision.value)


@main.group()
def version():
    """Upstream maccel version commands."""
    pass


@version.command(name="detect")
@click.pass_context
def version_detect(ctx):
    """Detect and print the maccel version."""
    try:
        click.echo(detect_source_version(_oracle(ctx)).semantic_version)
    except VersionResolutionError as e:
        _fail(ctx, e, EXIT_VERSION_RESOLUTION_ERROR)


@version.command(name="rpm-format")
@click.pass_context
def version_rpm_format(ctx):
    """Print the detected version in RPM-compatible form."""
    try:
        click.echo(detect_source_version(_oracle(ctx)).rpm_version)
    except VersionResolutionError as e:
        _fail(ctx, e, EXIT_VERSION_RESOLUTION_ERROR)


@version.command(name="commit-hash")
@click.pass_context
def version_commit_hash(ctx):
    """Print the current upstream commit."""
    try:
        click.echo(_oracle(ctx).latest_commit())
    except SourceQueryError as e:
        _fail(ctx, e)


@version.command(name="info")
@click.pass_context
def version_info(ctx):
    """Show detected version details."""
    oracle = _oracle(ctx)
    try:
        detected = detect_source_version(oracle)
    except VersionResolutionError as e:
        _fail(ctx, e, EXIT_VERSION_RESOLUTION_ERROR)

    try:
        commit = oracle.latest_commit()
    except SourceQueryError:
        commit = None

    table = Table(title="maccel version information", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value", style="cyan")
    table.add_row("Detected version", detected.semantic_version)
    table.add_row("Detected via", detected.method.value)
    table.add_row("RPM version", detected.rpm_version)
    table.add_row("Source commit", commit or "unknown")
    console.print(table)


def _release_notes(ctx) -> Tuple[SourceVersion, Optional[str]]:
    oracle = _oracle(ctx)
    try:
        detected = detect_source_version(oracle)
    except VersionResolutionError as e:
        _fail(ctx, e, EXIT_VERSION_RESOLUTION_ERROR)
    try:
        return detected, oracle.release_notes(detected.semantic_version)
    except SourceQueryError as e:
        console.print(f"[yellow]Could not fetch release notes: {e}[/yellow]")
        return detected, None


@version.command(name="release-notes")
@click.pass_context
def version_release_notes(ctx):
    """Print upstream release notes for the detected version."""
    _, notes = _release_notes(ctx)
    if not notes:
        sys.exit(1)
    click.echo(notes)


@version.command(name="rpm-changelog")
@click.pass_context
def version_rpm_changelog(ctx):
    """Print release notes formatted as an RPM changelog entry."""
    detected, notes = _release_notes(ctx)
    if notes:
        click.echo(format_release_notes_for_rpm(notes))
    else:
        click.echo(f"- Automated build of maccel {detected.semantic_version}")
        click.echo("- Built from upstream maccel repository")


@main.command(name="build-info")
@click.argument("package_dir", type=click.Path(file_okay=False))
@click.option("--kernel-version", "-k", required=True, help="Kernel version built for")
@click.option("--maccel-version", "-m", required=True, help="maccel version built")
@click.option("--fedora-version", help="Fedora release (default: from kernel version)")
@click.option("--source-dir", type=click.Path(), help="maccel source checkout used for the build")
@click.option("--source-commit", help="Commit to record instead of reading --source-dir")
@click.option("--release", type=int, default=1, help="RPM release number")
@click.pass_context
def build_info(
    ctx,
    package_dir: str,
    kernel_version: str,
    maccel_version: str,
    fedora_version: Optional[str],
    source_dir: Optional[str],
    source_commit: Optional[str],
    release: int,
):
    """
    Write build-info.json and checksums.txt for built packages.
    """
    from maccel_rpm.provenance import write_build_info

    try:
        target = PlatformTarget.from_strings(kernel_version, fedora_version)
        for advisory in target.validate():
            console.print(f"[yellow]Warning: {advisory}[/yellow]")
        try:
            source_version = SourceVersion(semantic_version=maccel_version)
        except ValueError:
            raise ValidationError(f"Invalid maccel version format: {maccel_version}")
        info = write_build_info(
            Path(package_dir),
            target,
            source_version,
            source_dir=Path(source_dir) if source_dir else None,
            release=release,
            source_commit=source_commit,
        )
    except MaccelRpmError as e:
        _fail(ctx, e, _exit_code_for(e))

    console.print(f"[green]Build metadata written for {len(info.packages)} packages[/green]")
    click.echo(info.model_dump_json(indent=2, exclude_none=True))


@main.command()
@click.argument("package_dir", type=click.Path(exists=True, file_okay=False))
@click.pass_context
def sign(ctx, package_dir: str):
    """
    Sign packages with Sigstore keyless signing.
    """
    from maccel_rpm.signing import CosignSigner, write_signing_summary

    signer = CosignSigner()
    if not signer.is_available():
        console.print("[yellow]Sigstore signing not available, packages left unsigned[/yellow]")
        sys.exit(1)

    try:
        results = signer.sign(Path(package_dir))
    except MaccelRpmError as e:
        _fail(ctx, e)

    write_signing_summary(Path(package_dir), results)
    console.print(f"[green]Signed {len(results)} packages[/green]")


@main.command()
@click.argument("package_dir", type=click.Path(exists=True, file_okay=False))
@click.pass_context
def verify(ctx, package_dir: str):
    """
    Verify Sigstore signatures of packages.
    """
    from maccel_rpm.signing import CosignSigner

    try:
        results = CosignSigner().verify(Path(package_dir))
    except MaccelRpmError as e:
        _fail(ctx, e)

    for r in results:
        status = "[green]✓[/green]" if r.verified else "[red]✗[/red]"
        console.print(f"  {status} {r.package}{': ' + r.message if r.message else ''}")

    if not all(r.verified for r in results):
        sys.exit(1)


@main.group()
def notify():
    """Workflow summary commands."""
    pass


def _summary_context(kernel_version: Optional[str] = None) -> dict:
    return {
        "run_id": os.environ.get("GITHUB_RUN_ID", ""),
        "trigger_repo": os.environ.get("TRIGGER_REPO", "manual"),
        "kernel_version": kernel_version or os.environ.get("KERNEL_VERSION", ""),
        "maccel_version": os.environ.get("MACCEL_VERSION", ""),
        "fedora_version": os.environ.get("FEDORA_VERSION", ""),
    }


@notify.command(name="success")
@click.argument("tag")
@click.pass_context
def notify_success(ctx, tag: str):
    """Write a success summary for a published release."""
    from maccel_rpm.notifications import render_success_summary, write_step_summary

    config = _config(ctx)
    try:
        packages = [a for a in _registry(ctx).get_assets(tag) if a.is_package]
    except RegistryError as e:
        _fail(ctx, e)

    release_url = f"{config.repository_url}/releases/tag/{tag}"
    write_step_summary(render_success_summary(tag, release_url, packages, _summary_context()))


@notify.command(name="failure")
@click.argument("error_type")
@click.argument("error_message")
@click.option("--details", default="", help="Error details")
@click.option("--duration", type=int, help="Build duration in seconds")
def notify_failure(error_type: str, error_message: str, details: str, duration: Optional[int]):
    """Write a failure summary."""
    from maccel_rpm.notifications import render_failure_summary, write_step_summary

    write_step_summary(render_failure_summary(
        error_type, error_message, details, duration, _summary_context()
    ))


if __name__ == "__main__":
    main()
