"""Data models for vbox-vm-runner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, NamedTuple, Optional

from vboxctl.constants import (
    COMMAND_TIMEOUT,
    DEFAULT_DISK_SLOT,
    DEFAULT_GUEST_SSH_PORT,
    DEFAULT_SSH_USER,
    FORWARD_HOST_ADDRESS,
    IMAGE_CACHE_DIR,
    IMPORT_TIMEOUT,
    PORT_RANGE_MAX,
    PORT_RANGE_MIN,
    SCRATCH_DIR,
    SSH_PORT_RULE_NAME,
    STATE_RUNNING,
    VBOXMANAGE_BIN,
    VIRT_SYSPREP_BIN,
)


class BootMode(str, Enum):
    GUI = "gui"
    HEADLESS = "headless"
    SDL = "sdl"
    SEPARATE = "separate"


class NicType(str, Enum):
    BRIDGED = "bridged"
    NAT = "nat"
    HOSTONLY = "hostonly"
    HOSTONLYNET = "hostonlynet"
    GENERIC = "generic"
    NATNETWORK = "natnetwork"


@dataclass
class NicConfig:
    type: NicType
    host_adapter: Optional[str] = None


class PortForwardRule(NamedTuple):
    name: str
    host_port: int
    guest_port: int
    protocol: str = "tcp"
    host_ip: str = FORWARD_HOST_ADDRESS


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class VMInfo:
    """Snapshot of a VM as reported by ``showvminfo --machinereadable``.

    Built fresh on every query; empty strings mean the dump did not carry
    the field, not an error.
    """

    id: str = ""
    name: str = ""
    state: str = ""
    disk_path: str = ""
    ipv4: Optional[str] = None
    ssh_port: Optional[int] = None
    memory_mb: Optional[int] = None
    cpus: Optional[int] = None
    nic1: str = ""

    @property
    def is_running(self) -> bool:
        return self.state == STATE_RUNNING


@dataclass
class Settings:
    vboxmanage: str = VBOXMANAGE_BIN
    virt_sysprep: str = VIRT_SYSPREP_BIN
    rule_name: str = SSH_PORT_RULE_NAME
    port_min: int = PORT_RANGE_MIN
    port_max: int = PORT_RANGE_MAX
    command_timeout: int = COMMAND_TIMEOUT
    import_timeout: int = IMPORT_TIMEOUT
    scratch_dir: Path = SCRATCH_DIR
    image_cache_dir: Path = IMAGE_CACHE_DIR
    disk_slot: str = DEFAULT_DISK_SLOT


@dataclass
class VMDefinition:
    name: str
    image: str
    memory_mb: int
    cpus: int
    ssh_user: str = DEFAULT_SSH_USER
    ssh_key: Optional[Path] = None
    boot_mode: BootMode = BootMode.HEADLESS
    nic: Optional[NicConfig] = None
    guest_port: int = DEFAULT_GUEST_SSH_PORT
