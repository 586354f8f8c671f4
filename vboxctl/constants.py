"""Global constants and default configuration for vbox-vm-runner."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

VBOXMANAGE_BIN = "VBoxManage"
VIRT_SYSPREP_BIN = "virt-sysprep"

# Name of the NAT rule owned by this tool; re-applying it replaces the previous one.
SSH_PORT_RULE_NAME = "vboxctl_ssh_port_rule"
DEFAULT_GUEST_SSH_PORT = 22
DEFAULT_SSH_USER = "root"

PORT_RANGE_MIN = 7000
PORT_RANGE_MAX = 8000
FORWARD_HOST_ADDRESS = "127.0.0.1"

COMMAND_TIMEOUT = 300
IMPORT_TIMEOUT = 1800

SCRATCH_DIR = Path(tempfile.gettempdir())
IMAGE_CACHE_DIR = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache")) / "vbox-vm-runner" / "images"

# showvminfo --machinereadable keys
KEY_NAME = "name"
KEY_UUID = "UUID"
KEY_STATE = "VMState"
KEY_MEMORY = "memory"
KEY_CPUS = "cpus"
KEY_NIC1 = "nic1"
DEFAULT_DISK_SLOT = "SATA Controller-0-0"
FORWARDING_KEY_RE = re.compile(r"^Forwarding\((\d+)\)$")

STATE_RUNNING = "running"

GUEST_IP_PROPERTY = "/VirtualBox/GuestInfo/Net/0/V4/IP"
# /VirtualBox/GuestInfo/Net/0/V4/IP = '192.168.1.157' @ 2023-02-04T21:42:09.082Z TRANSIENT, TRANSRESET
GUEST_PROPERTY_RE = re.compile(r"^(?P<path>\S+) = '(?P<value>[^']*)' @ (?P<timestamp>\S+)(?:\s+(?P<flags>.*))?$")

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in {"1", "true", "yes", "on"}

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
