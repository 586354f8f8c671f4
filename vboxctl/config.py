"""Configuration loading and environment variable parsing for vbox-vm-runner."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vboxctl.constants import (
    COMMAND_TIMEOUT,
    DEFAULT_DISK_SLOT,
    DEFAULT_GUEST_SSH_PORT,
    DEFAULT_SSH_USER,
    IMAGE_CACHE_DIR,
    IMPORT_TIMEOUT,
    PORT_RANGE_MAX,
    PORT_RANGE_MIN,
    SCRATCH_DIR,
    SSH_PORT_RULE_NAME,
    VBOXMANAGE_BIN,
    VIRT_SYSPREP_BIN,
)
from vboxctl.exceptions import ManagerError
from vboxctl.models import BootMode, NicConfig, NicType, Settings, VMDefinition
from vboxctl.utils import get_env, parse_int_env, validate_argument

_VM_KEYS = {"name", "image", "memory", "cpus", "ssh_user", "ssh_key", "boot_mode", "nic", "guest_port"}


def parse_env() -> Settings:
    port_min = parse_int_env("PORT_RANGE_MIN", str(PORT_RANGE_MIN), min_val=1, max_val=65535)
    port_max = parse_int_env("PORT_RANGE_MAX", str(PORT_RANGE_MAX), min_val=1, max_val=65535)
    if port_min > port_max:
        raise ManagerError(f"PORT_RANGE_MIN ({port_min}) must not exceed PORT_RANGE_MAX ({port_max})")

    rule_name = (get_env("SSH_PORT_RULE") or "").strip() or SSH_PORT_RULE_NAME
    validate_argument(rule_name, "SSH_PORT_RULE", forbidden=",")

    scratch_raw = (get_env("SCRATCH_DIR") or "").strip()
    cache_raw = (get_env("IMAGE_CACHE_DIR") or "").strip()

    return Settings(
        vboxmanage=(get_env("VBOXMANAGE") or "").strip() or VBOXMANAGE_BIN,
        virt_sysprep=(get_env("VIRT_SYSPREP") or "").strip() or VIRT_SYSPREP_BIN,
        rule_name=rule_name,
        port_min=port_min,
        port_max=port_max,
        command_timeout=parse_int_env("COMMAND_TIMEOUT", str(COMMAND_TIMEOUT)),
        import_timeout=parse_int_env("IMPORT_TIMEOUT", str(IMPORT_TIMEOUT)),
        scratch_dir=Path(scratch_raw).expanduser() if scratch_raw else SCRATCH_DIR,
        image_cache_dir=Path(cache_raw).expanduser() if cache_raw else IMAGE_CACHE_DIR,
        disk_slot=(get_env("DISK_SLOT") or "").strip() or DEFAULT_DISK_SLOT,
    )


def _require_int(data: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    raw = data.get(key, default)
    if raw is None:
        raise ManagerError(f"VM definition is missing '{key}'")
    if isinstance(raw, bool):
        raise ManagerError(f"'{key}' must be an integer (got '{raw}')")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ManagerError(f"'{key}' must be an integer (got '{raw}')")
    if value < 1:
        raise ManagerError(f"'{key}' must be >= 1 (got {value})")
    return value


def _parse_nic(raw: Any) -> Optional[NicConfig]:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = {"type": raw}
    if not isinstance(raw, dict) or "type" not in raw:
        raise ManagerError("'nic' must be a network type or a mapping with a 'type' key")
    try:
        nic_type = NicType(str(raw["type"]).strip().lower())
    except ValueError:
        supported = ", ".join(t.value for t in NicType)
        raise ManagerError(f"Unknown network type '{raw['type']}'. Supported: {supported}")
    adapter = raw.get("host_adapter")
    return NicConfig(type=nic_type, host_adapter=str(adapter) if adapter else None)


def parse_vm_definition(data: Dict[str, Any]) -> VMDefinition:
    if not isinstance(data, dict):
        raise ManagerError("VM definition must be a YAML mapping")
    unknown = sorted(set(data) - _VM_KEYS)
    if unknown:
        raise ManagerError(f"Unknown VM definition keys: {', '.join(unknown)}")
    for key in ("name", "image"):
        if not str(data.get(key) or "").strip():
            raise ManagerError(f"VM definition is missing '{key}'")

    boot_raw = str(data.get("boot_mode") or BootMode.HEADLESS.value).strip().lower()
    try:
        boot_mode = BootMode(boot_raw)
    except ValueError:
        supported = ", ".join(m.value for m in BootMode)
        raise ManagerError(f"Unknown boot_mode '{boot_raw}'. Supported: {supported}")

    ssh_key_raw = data.get("ssh_key")
    ssh_key = Path(str(ssh_key_raw)).expanduser() if ssh_key_raw else None

    return VMDefinition(
        name=str(data["name"]).strip(),
        image=str(data["image"]).strip(),
        memory_mb=_require_int(data, "memory"),
        cpus=_require_int(data, "cpus"),
        ssh_user=str(data.get("ssh_user") or DEFAULT_SSH_USER).strip(),
        ssh_key=ssh_key,
        boot_mode=boot_mode,
        nic=_parse_nic(data.get("nic")),
        guest_port=_require_int(data, "guest_port", DEFAULT_GUEST_SSH_PORT),
    )


def load_vm_definition(config_path: Path) -> VMDefinition:
    """Load a VM definition from a YAML file with a top-level ``vm`` mapping."""
    if not config_path.exists():
        raise ManagerError(f"VM definition missing: {config_path}")
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ManagerError(f"{config_path} contains invalid YAML: {exc}")
    if not isinstance(data, dict) or "vm" not in data:
        raise ManagerError(f"{config_path} must contain a top-level 'vm' mapping")
    return parse_vm_definition(data["vm"])
