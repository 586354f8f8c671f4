"""CLI entry points for vbox-vm-runner."""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
from typing import List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vboxctl.config import load_vm_definition, parse_env
from vboxctl.constants import DEFAULT_GUEST_SSH_PORT, DEFAULT_SSH_USER
from vboxctl.exceptions import ManagerError, ProvisionError
from vboxctl.models import BootMode, NicConfig, NicType, Settings, VMInfo
from vboxctl.provision import Provisioner
from vboxctl.utils import log
from vboxctl.vm import VBoxManager


def show_info(info: VMInfo, fmt: str = "text") -> None:
    """Print a VM descriptor, omitting fields the tool did not report."""
    data = {key: value for key, value in dataclasses.asdict(info).items() if value not in (None, "")}
    if fmt == "yaml":
        print(yaml.safe_dump(data, sort_keys=False).rstrip())
        return
    width = max((len(key) for key in data), default=0)
    for key, value in data.items():
        print(f"  {key:<{width}}  {value}")


def show_config(settings: Settings) -> None:
    """Print the resolved settings and exit."""
    for field in dataclasses.fields(settings):
        print(f"  {field.name}: {getattr(settings, field.name)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vboxctl", description="VirtualBox VM lifecycle manager")
    sub = parser.add_subparsers(dest="command", required=True)

    apply_p = sub.add_parser("apply", help="Provision a VM from a YAML definition")
    apply_p.add_argument("definition", type=Path)

    create_p = sub.add_parser("create", help="Import an appliance as a new VM")
    create_p.add_argument("image", help="Path or URL of the appliance (.ova/.ovf)")
    create_p.add_argument("name")
    create_p.add_argument("--memory", type=int, required=True, help="Memory in MiB")
    create_p.add_argument("--cpus", type=int, required=True)

    start_p = sub.add_parser("start", help="Start a VM")
    start_p.add_argument("vm")
    start_p.add_argument("--type", dest="boot_mode", choices=[m.value for m in BootMode], default="headless")

    for name, help_text in (
        ("stop", "Power off a VM"),
        ("destroy", "Unregister a VM and delete its storage"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("vm")

    info_p = sub.add_parser("info", help="Show a VM's current state")
    info_p.add_argument("vm")
    info_p.add_argument("--format", choices=["text", "yaml"], default="text")

    nic_p = sub.add_parser("set-nic", help="Configure network interface 1")
    nic_p.add_argument("vm")
    nic_p.add_argument("type", choices=[t.value for t in NicType])
    nic_p.add_argument("--host-adapter", default=None)

    fwd_p = sub.add_parser("forward-port", help="Forward a free local port to the guest")
    fwd_p.add_argument("vm")
    fwd_p.add_argument("--guest-port", type=int, default=DEFAULT_GUEST_SSH_PORT)

    inject_p = sub.add_parser("inject-key", help="Inject an SSH public key into the VM's disk")
    inject_p.add_argument("vm")
    inject_p.add_argument("key", help="Path to the public key file")
    inject_p.add_argument("--user", default=DEFAULT_SSH_USER)

    ip_p = sub.add_parser("guest-ip", help="Show the IPv4 address reported by the guest")
    ip_p.add_argument("vm")
    ip_p.add_argument("--wait", type=float, default=0, metavar="SECONDS", help="Poll up to SECONDS for an address")

    sub.add_parser("list", help="List registered VMs")
    sub.add_parser("show-config", help="Show resolved settings and exit")
    return parser


def dispatch(args: argparse.Namespace, settings: Settings) -> int:
    mgr = VBoxManager(settings)
    fmt = getattr(args, "format", "text")

    if args.command == "apply":
        definition = load_vm_definition(args.definition)
        show_info(Provisioner(mgr).apply(definition), fmt)
    elif args.command == "create":
        show_info(mgr.create(args.image, args.name, args.memory, args.cpus), fmt)
    elif args.command == "start":
        show_info(mgr.start(args.vm, BootMode(args.boot_mode)), fmt)
    elif args.command == "stop":
        show_info(mgr.stop(args.vm), fmt)
    elif args.command == "destroy":
        mgr.destroy(args.vm)
    elif args.command == "info":
        show_info(mgr.info(args.vm), fmt)
    elif args.command == "set-nic":
        show_info(mgr.modify_nic(args.vm, NicConfig(type=NicType(args.type), host_adapter=args.host_adapter)), fmt)
    elif args.command == "forward-port":
        show_info(mgr.forward_port(args.vm, args.guest_port), fmt)
    elif args.command == "inject-key":
        show_info(mgr.inject_ssh_key(args.vm, args.user, args.key), fmt)
    elif args.command == "guest-ip":
        ip = mgr.wait_for_guest_ip(args.vm, timeout=args.wait) if args.wait > 0 else mgr.guest_ip(args.vm)
        if not ip:
            log("WARN", f"{args.vm} has not reported an IPv4 address yet")
            return 1
        print(ip)
    elif args.command == "list":
        for line in mgr.list_vms():
            print(line)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = parse_env()
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1

    if args.command == "show-config":
        show_config(settings)
        return 0

    try:
        return dispatch(args, settings)
    except ProvisionError as exc:
        for diagnostic in exc.diagnostics:
            log("ERROR", str(diagnostic))
        return 1
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
