"""VBoxManage network argument rendering for vbox-vm-runner."""

from __future__ import annotations

from typing import List

from vboxctl.exceptions import ValidationError
from vboxctl.models import NicConfig, NicType, PortForwardRule
from vboxctl.utils import validate_argument

# Flag naming the host-side resource a NIC type attaches to, if it has one.
_ADAPTER_FLAGS = {
    NicType.BRIDGED: "--bridgeadapter1",
    NicType.HOSTONLY: "--hostonlyadapter1",
    NicType.HOSTONLYNET: "--host-only-net1",
    NicType.GENERIC: "--nic-generic-drv1",
    NicType.NATNETWORK: "--nat-network1",
    NicType.NAT: None,
}


def render_nic_args(config: NicConfig) -> List[str]:
    """Return the ``modifyvm`` arguments that configure NIC 1."""
    try:
        nic_type = NicType(config.type)
    except ValueError:
        supported = ", ".join(t.value for t in NicType)
        raise ValidationError(f"Unsupported network type '{config.type}'. Supported: {supported}")

    args = ["--nic1", nic_type.value]
    flag = _ADAPTER_FLAGS[nic_type]

    if nic_type is NicType.BRIDGED and not config.host_adapter:
        raise ValidationError("A host adapter must be set for bridged networking")
    if flag is None:
        if config.host_adapter:
            raise ValidationError(f"Network type '{nic_type.value}' does not take a host adapter")
        return args
    if config.host_adapter:
        args.extend([flag, validate_argument(config.host_adapter, "host adapter")])
    return args


def render_forwarding_rule(rule: PortForwardRule) -> str:
    """Render the ``--natpf1`` value: name,proto,host-ip,host-port,guest-ip,guest-port."""
    validate_argument(rule.name, "forwarding rule name", forbidden=",")
    for port, label in ((rule.host_port, "host port"), (rule.guest_port, "guest port")):
        if not 1 <= int(port) <= 65535:
            raise ValidationError(f"Forwarding rule {label} out of range: {port}")
    return f"{rule.name},{rule.protocol},{rule.host_ip},{int(rule.host_port)},,{int(rule.guest_port)}"
