"""SSH public key injection into a guest disk image via virt-sysprep.

The image is never modified in place: virt-sysprep works on a scratch
copy, and only after it succeeds is the result moved over the original
with an atomic rename from a temp file in the image's own directory.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from vboxctl.constants import SCRATCH_DIR, VIRT_SYSPREP_BIN
from vboxctl.exceptions import InjectionError, ToolError
from vboxctl.utils import check_tool, ensure_directory, log, sanitize_file_name, validate_argument

STAGE_RESOLVE = "resolve"
STAGE_COPY = "copy"
STAGE_CUSTOMIZE = "customize"
STAGE_WRITE_BACK = "write-back"
STAGE_CLEANUP = "cleanup"


def _copy_synced(source: Path, destination: Path) -> None:
    with open(source, "rb") as src, open(destination, "wb") as dst:
        shutil.copyfileobj(src, dst, 1024 * 1024)
        dst.flush()
        os.fsync(dst.fileno())


def _replace_atomically(source: Path, target: Path) -> None:
    """Copy ``source`` next to ``target`` and rename it into place."""
    fd, staging_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
    staging = Path(staging_name)
    try:
        with open(source, "rb") as src, os.fdopen(fd, "wb") as dst:
            shutil.copyfileobj(src, dst, 1024 * 1024)
            dst.flush()
            os.fsync(dst.fileno())
        shutil.copymode(target, staging)
        os.replace(staging, target)
    except BaseException:
        staging.unlink(missing_ok=True)
        raise


def inject_ssh_key(
    image_path: str,
    ssh_user: str,
    key_path: str,
    scratch_dir: Path = SCRATCH_DIR,
    virt_sysprep: str = VIRT_SYSPREP_BIN,
    timeout: Optional[float] = None,
) -> None:
    """Add ``key_path`` to ``ssh_user``'s authorized keys inside ``image_path``.

    Raises ``InjectionError`` naming the failed stage. The original image
    is only touched in the write-back stage, and the scratch copy is
    removed on every exit path.
    """
    if not image_path:
        raise InjectionError(STAGE_RESOLVE, "VM has no disk image attached to the configured slot")
    image = Path(image_path)
    if not image.is_file():
        raise InjectionError(STAGE_RESOLVE, f"disk image not found: {image}")
    validate_argument(ssh_user, "ssh user", forbidden=":")
    validate_argument(str(key_path), "ssh key path")
    if not Path(key_path).is_file():
        raise InjectionError(STAGE_RESOLVE, f"ssh public key not found: {key_path}")

    # virt tools cannot handle spaces in paths ("VirtualBox VMs"), so the
    # scratch copy gets a private directory and a sanitized name.
    try:
        ensure_directory(scratch_dir)
        work_dir = Path(tempfile.mkdtemp(prefix="vboxctl-inject-", dir=scratch_dir))
    except OSError as exc:
        raise InjectionError(STAGE_COPY, f"cannot create scratch directory in {scratch_dir}: {exc}") from exc
    scratch = work_dir / sanitize_file_name(image.name)

    failed = True
    try:
        log("INFO", f"Copying {image} to scratch {scratch}")
        try:
            _copy_synced(image, scratch)
        except OSError as exc:
            raise InjectionError(STAGE_COPY, str(exc)) from exc

        log("INFO", f"Injecting ssh key for {ssh_user} with {virt_sysprep}")
        try:
            check_tool(
                [virt_sysprep, "-a", str(scratch), "--ssh-inject", f"{ssh_user}:file:{key_path}"],
                timeout=timeout,
            )
        except ToolError as exc:
            raise InjectionError(STAGE_CUSTOMIZE, str(exc)) from exc

        try:
            _replace_atomically(scratch, image)
        except OSError as exc:
            raise InjectionError(STAGE_WRITE_BACK, str(exc)) from exc
        failed = False
        log("SUCCESS", f"Injected ssh key into {image}")
    finally:
        try:
            shutil.rmtree(work_dir)
        except OSError as exc:
            if not failed:
                raise InjectionError(STAGE_CLEANUP, f"cannot remove scratch copy {scratch}: {exc}") from exc
            log("WARN", f"Could not remove scratch copy {scratch}: {exc}")
