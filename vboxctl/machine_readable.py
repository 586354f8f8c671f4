"""Decoding of VBoxManage's machine-readable and guest-property output.

``showvminfo --machinereadable`` prints one ``key=value`` record per line.
Keys and values may be wrapped in a single layer of double quotes; some
values (NAT forwarding rules) are comma-separated records. Lines without
an ``=`` are sub-key continuations and carry nothing tracked here.

All knowledge of these formats lives in this module.
"""

from __future__ import annotations

from typing import List, Optional

from vboxctl.constants import (
    DEFAULT_DISK_SLOT,
    FORWARDING_KEY_RE,
    GUEST_PROPERTY_RE,
    KEY_CPUS,
    KEY_MEMORY,
    KEY_NAME,
    KEY_NIC1,
    KEY_STATE,
    KEY_UUID,
    SSH_PORT_RULE_NAME,
)
from vboxctl.exceptions import ParseError
from vboxctl.models import VMInfo


def strip_quotes(value: str) -> str:
    """Strip one leading and one trailing double quote, nothing more."""
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def split_forwarding_rule(value: str) -> List[str]:
    """Split a ``Forwarding(N)`` record: name,proto,host-ip,host-port,guest-ip,guest-port."""
    fields = strip_quotes(value).split(",")
    if len(fields) < 3:
        raise ParseError(f"Malformed forwarding rule record: {value!r}")
    return fields


def forwarded_host_port(fields: List[str]) -> int:
    raw = fields[-3]
    try:
        return int(raw)
    except ValueError:
        raise ParseError(f"Forwarding rule host port is not a number: {raw!r}")


def _optional_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except ValueError:
        return None


def parse_vm_info(
    text: str,
    disk_slot: str = DEFAULT_DISK_SLOT,
    rule_name: str = SSH_PORT_RULE_NAME,
) -> VMInfo:
    """Build a ``VMInfo`` from a full ``showvminfo --machinereadable`` dump.

    Unknown keys are ignored, so output from newer VirtualBox releases
    still parses. ``ssh_port`` is taken from the forwarding rule named
    ``rule_name``.
    """
    info = VMInfo()
    for line in text.splitlines():
        if "=" not in line:
            continue
        raw_key, raw_value = line.split("=", 1)
        key = strip_quotes(raw_key)
        value = strip_quotes(raw_value)

        if key == KEY_NAME:
            info.name = value
        elif key == KEY_UUID:
            info.id = value
        elif key == KEY_STATE:
            info.state = value
        elif key == disk_slot:
            info.disk_path = value
        elif key == KEY_MEMORY:
            info.memory_mb = _optional_int(value)
        elif key == KEY_CPUS:
            info.cpus = _optional_int(value)
        elif key == KEY_NIC1:
            info.nic1 = value
        elif FORWARDING_KEY_RE.match(key):
            fields = split_forwarding_rule(value)
            if fields[0] == rule_name:
                info.ssh_port = forwarded_host_port(fields)
    return info


def parse_guest_property(text: str) -> Optional[str]:
    """Return the value from ``<path> = '<value>' @ <timestamp>``.

    Empty output means the guest has not published the property yet.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return None
    match = GUEST_PROPERTY_RE.match(lines[0])
    if match is None:
        raise ParseError(f"Unexpected guest property output: {lines[0]!r}")
    return match.group("value") or None
