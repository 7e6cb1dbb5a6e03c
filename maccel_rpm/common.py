"""
Common utility functions for the maccel RPM builder.
"""

import hashlib
import logging
import os
import re
import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Type, TypeVar

import requests
from rich.console import Console
from rich.logging import RichHandler


# Rich console for diagnostics; stdout carries machine-readable results
console = Console(stderr=True)

T = TypeVar("T")


def setup_logging(
    name: str = "maccel_rpm",
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up logging with Rich handler."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


# Default logger
logger = setup_logging()


def retry_with_backoff(
    func: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 5.0,
    retry_on: Tuple[Type[BaseException], ...] = (requests.RequestException,),
    description: str = "request",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it succeeds or attempts run out.

    The delay starts at ``base_delay`` and doubles after every failed attempt.

    Args:
        func: Zero-argument callable to invoke
        attempts: Maximum number of attempts (at least one is made)
        base_delay: Delay in seconds before the second attempt
        retry_on: Exception types that trigger a retry
        description: Label used in log messages
        sleep: Sleep function (replaceable in tests)

    Returns:
        The value returned by ``func``

    Raises:
        The last exception raised by ``func`` once attempts are exhausted
    """
    attempts = max(1, attempts)
    delay = base_delay

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            logger.warning(f"{description} attempt {attempt}/{attempts} failed: {e}")
            logger.debug(f"Retrying in {delay:.1f}s")
            sleep(delay)
            delay *= 2

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{description}: retry loop exited unexpectedly")


def calculate_sha256(file_path: Path) -> str:
    """
    Calculate SHA256 hash of a file.

    Args:
        file_path: Path to the file

    Returns:
        Hexadecimal SHA256 hash string
    """
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def run_command(
    cmd: List[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
    capture_output: bool = True,
    check: bool = False,
) -> Tuple[int, str, str]:
    """
    Run a shell command.

    Args:
        cmd: Command and arguments as list
        cwd: Working directory
        timeout: Command timeout in seconds
        capture_output: Capture stdout and stderr
        check: Raise exception on non-zero exit

    Returns:
        Tuple of (return_code, stdout, stderr)
    """
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            timeout=timeout,
            capture_output=capture_output,
            text=True,
            check=check,
        )
        return result.returncode, result.stdout or "", result.stderr or ""
    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout}s: {' '.join(cmd)}")
        return -1, "", f"Command timed out after {timeout}s"
    except subprocess.CalledProcessError as e:
        return e.returncode, e.stdout or "", e.stderr or ""
    except OSError as e:
        logger.error(f"Command failed: {e}")
        return -1, "", str(e)


def get_github_token() -> Optional[str]:
    """Get GitHub token from environment or gh CLI."""
    for var in ("GH_TOKEN", "GITHUB_TOKEN"):
        token = os.environ.get(var)
        if token:
            return token

    # Try gh CLI
    returncode, stdout, _ = run_command(["gh", "auth", "token"])
    if returncode == 0 and stdout.strip():
        return stdout.strip()

    return None


def format_release_notes_for_rpm(release_notes: str) -> str:
    """
    Convert Markdown release notes to an RPM %changelog body.

    Headers become list items, bold and link markup is stripped, blank
    lines are dropped and every line is indented by two spaces.
    """
    lines = []
    for line in release_notes.splitlines():
        line = re.sub(r"^## ", "- ", line)
        line = re.sub(r"^### ", "  - ", line)
        line = re.sub(r"\*\*([^*]*)\*\*", r"\1", line)
        line = re.sub(r"\[([^\]]*)\]\([^)]*\)", r"\1", line)
        line = re.sub(r"^\* ", "- ", line)
        if not line.strip():
            continue
        lines.append(f"  {line}")
    return "\n".join(lines)


def format_duration(seconds: int) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m"
