"""Utility functions for vbox-vm-runner."""

from __future__ import annotations

import hashlib
import os
import re
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from vboxctl.constants import _CONTROL_CHARS_RE, _LOG_VERBOSE, TRUTHY
from vboxctl.exceptions import CommandTimeoutError, ManagerError, ToolError, ValidationError
from vboxctl.models import CommandResult


def log(level: str, message: str) -> None:
    """Lightweight levelled logging with ANSI colours."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def parse_int_env(name: str, default: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = int(raw)
    except ValueError:
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ManagerError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ManagerError(f"{name} must be <= {max_val} (got {value})")
    return value


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def sanitize_file_name(name: str) -> str:
    """Return a name virt tools accept (no spaces or shell-ish characters)."""
    safe = re.sub(r"[^0-9A-Za-z._-]", "_", name)
    safe = safe.strip("_")
    return safe or "disk"


def validate_argument(value: str, label: str, forbidden: str = "") -> str:
    """Reject values that VBoxManage or virt-sysprep would misparse.

    ``forbidden`` lists extra characters that act as separators in the
    composite value the argument ends up in (``,`` for NAT rules, ``:`` for
    ``--ssh-inject``).
    """
    if not value:
        raise ValidationError(f"{label} must not be empty")
    if value.startswith("-"):
        raise ValidationError(f"{label} must not start with '-' (got '{value}')")
    if _CONTROL_CHARS_RE.search(value):
        raise ValidationError(f"{label} contains control characters")
    bad = sorted({ch for ch in value if ch in forbidden})
    if bad:
        raise ValidationError(f"{label} must not contain {' '.join(repr(ch) for ch in bad)} (got '{value}')")
    return value


def is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def cached_download_path(url: str, cache_dir: Path) -> Path:
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:12]
    filename = Path(urlparse(url).path or "").name or "image.ova"
    return cache_dir / f"{digest}-{sanitize_file_name(filename)}"


def download_file(url: str, destination: Path, label: str = "Downloading") -> None:
    """Download ``url`` to ``destination`` through a temp file in the same directory."""
    log("INFO", f"{label}: {url}")
    req = Request(url, headers={"User-Agent": "vbox-vm-runner/1.0"})
    try:
        response = urlopen(req, timeout=60)
    except HTTPError as exc:
        raise ManagerError(f"HTTP error downloading {url}: {exc.code} {exc.reason}")
    except URLError as exc:
        raise ManagerError(f"Failed to download {url}: {exc.reason}")

    downloaded = 0
    start_time = time.time()
    ensure_directory(destination.parent)
    with tempfile.NamedTemporaryFile(delete=False, dir=destination.parent) as tmp:
        tmp_path = Path(tmp.name)
        try:
            chunk_size = 1024 * 256  # 256 KiB
            while True:
                chunk = response.read(chunk_size)
                if not chunk:
                    break
                tmp.write(chunk)
                downloaded += len(chunk)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path.replace(destination)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise
    elapsed = time.time() - start_time
    log("SUCCESS", f"Downloaded {downloaded / (1024 * 1024):.1f} MiB in {elapsed:.1f}s")


def run_tool(cmd: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
    """Run an external command without a shell and capture its output.

    A non-zero exit is reported through ``CommandResult.ok``; only a missing
    executable or an expired timeout raise.
    """
    args: List[str] = [str(arg) for arg in cmd]
    log("DEBUG", f"Running: {' '.join(args)}")
    try:
        proc = subprocess.run(args, capture_output=True, text=True, timeout=timeout, check=False)
    except subprocess.TimeoutExpired as exc:
        raise CommandTimeoutError(args, timeout or 0) from exc
    except OSError as exc:
        raise ToolError(args, f"cannot execute {args[0]}: {exc.strerror or exc}") from exc
    if proc.returncode != 0:
        log("DEBUG", f"{args[0]} exited with status {proc.returncode}")
    return CommandResult(args=args, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


def check_tool(cmd: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
    """``run_tool`` that raises ``ToolError`` with the captured stderr on failure."""
    result = run_tool(cmd, timeout=timeout)
    if not result.ok:
        raise ToolError(result.args, result.stderr, result.returncode)
    return result
