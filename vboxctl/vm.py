"""VM lifecycle management for vbox-vm-runner."""

from __future__ import annotations

import threading
import time
import weakref
from pathlib import Path
from typing import List, Optional

from vboxctl.constants import GUEST_IP_PROPERTY
from vboxctl.exceptions import ParseError, ToolError, ValidationError
from vboxctl.injector import inject_ssh_key
from vboxctl.machine_readable import parse_guest_property, parse_vm_info, strip_quotes
from vboxctl.models import BootMode, CommandResult, NicConfig, NicType, PortForwardRule, Settings, VMInfo
from vboxctl.network import render_forwarding_rule, render_nic_args
from vboxctl.ports import allocation_lock, find_free_port
from vboxctl.utils import (
    cached_download_path,
    check_tool,
    download_file,
    ensure_directory,
    is_url,
    log,
    validate_argument,
)


class VBoxManager:
    """Drives VBoxManage; every mutating call returns a freshly queried ``VMInfo``."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()
        # Entries disappear once no injection holds the lock.
        self._image_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._image_locks_guard = threading.Lock()

    def _vbox(self, *args: str, timeout: Optional[float] = None) -> CommandResult:
        cmd = [self.settings.vboxmanage, *args]
        return check_tool(cmd, timeout=timeout or self.settings.command_timeout)

    def _resolve_image(self, image: str) -> str:
        if not is_url(image):
            return validate_argument(image, "image path")
        destination = cached_download_path(image, self.settings.image_cache_dir)
        if destination.exists() and destination.stat().st_size > 0:
            log("INFO", f"Using cached download: {destination}")
        else:
            ensure_directory(self.settings.image_cache_dir)
            download_file(image, destination, label="Downloading image")
        return str(destination)

    def create(self, image: str, name: str, memory_mb: int, cpus: int) -> VMInfo:
        validate_argument(name, "VM name")
        if memory_mb < 1 or cpus < 1:
            raise ValidationError(f"memory and cpus must be positive (got memory={memory_mb}, cpus={cpus})")
        source = self._resolve_image(image)
        log("INFO", f"Importing {source} as {name} ({memory_mb} MiB, {cpus} CPUs)")
        self._vbox(
            "import",
            source,
            "--vsys=0",
            f"--vmname={name}",
            f"--memory={memory_mb}",
            f"--cpus={cpus}",
            timeout=self.settings.import_timeout,
        )
        self._vbox("modifyvm", name, "--nat-localhostreachable1", "on")
        info = self.info(name)
        log("SUCCESS", f"VM {name} created ({info.id})")
        return info

    def modify_nic(self, vm: str, nic: NicConfig) -> VMInfo:
        validate_argument(vm, "VM identifier")
        self._vbox("modifyvm", vm, *render_nic_args(nic))
        log("INFO", f"NIC 1 of {vm} set to {NicType(nic.type).value}")
        return self.info(vm)

    def start(self, vm: str, boot_mode: BootMode = BootMode.HEADLESS) -> VMInfo:
        validate_argument(vm, "VM identifier")
        try:
            mode = BootMode(boot_mode)
        except ValueError:
            supported = ", ".join(m.value for m in BootMode)
            raise ValidationError(f"Unsupported boot mode '{boot_mode}'. Supported: {supported}")
        self._vbox("startvm", vm, f"--type={mode.value}")
        log("SUCCESS", f"VM {vm} started ({mode.value})")
        return self.info(vm)

    def stop(self, vm: str) -> VMInfo:
        validate_argument(vm, "VM identifier")
        self._vbox("controlvm", vm, "poweroff")
        log("INFO", f"VM {vm} powered off")
        return self.info(vm)

    def destroy(self, vm: str) -> None:
        validate_argument(vm, "VM identifier")
        self._vbox("unregistervm", vm, "--delete", "--delete-all")
        log("INFO", f"VM {vm} unregistered and its storage deleted")

    def info(self, vm: str) -> VMInfo:
        validate_argument(vm, "VM identifier")
        result = self._vbox("showvminfo", vm, "--machinereadable")
        info = parse_vm_info(result.stdout, disk_slot=self.settings.disk_slot, rule_name=self.settings.rule_name)
        if info.is_running:
            info.ipv4 = self.guest_ip(info.id or vm)
        return info

    def guest_ip(self, vm: str) -> Optional[str]:
        """Return the IPv4 the guest reported on adapter 0, or None if not known yet.

        A failed, timed out or unreadable query counts as not known yet.
        """
        try:
            result = check_tool(
                [self.settings.vboxmanage, "guestproperty", "enumerate", vm, GUEST_IP_PROPERTY],
                timeout=self.settings.command_timeout,
            )
            return parse_guest_property(result.stdout)
        except ToolError as exc:
            log("WARN", f"Guest IP of {vm} not available: {exc}")
        except ParseError as exc:
            log("WARN", f"Ignoring unreadable guest IP for {vm}: {exc}")
        return None

    def wait_for_guest_ip(self, vm: str, timeout: float = 120.0, interval: float = 3.0) -> Optional[str]:
        """Poll ``guest_ip`` until the guest reports an address or ``timeout`` passes."""
        log("INFO", f"Waiting for {vm} to report an IPv4 address...")
        deadline = time.time() + timeout
        while True:
            ip = self.guest_ip(vm)
            if ip:
                log("SUCCESS", f"{vm} reported {ip}")
                return ip
            if time.time() >= deadline:
                break
            time.sleep(interval)
        log("WARN", f"{vm} did not report an IPv4 address within {int(timeout)}s")
        return None

    def forward_port(self, vm: str, guest_port: int) -> VMInfo:
        """Switch NIC 1 to NAT and forward a free loopback port to ``guest_port``."""
        validate_argument(vm, "VM identifier")
        rule_name = self.settings.rule_name
        with allocation_lock:
            host_port = find_free_port(self.settings.port_min, self.settings.port_max)
            rule = PortForwardRule(name=rule_name, host_port=host_port, guest_port=guest_port)
            rendered = render_forwarding_rule(rule)
            self._vbox("modifyvm", vm, "--nic1", NicType.NAT.value)
            if self.info(vm).ssh_port is not None:
                self._vbox("modifyvm", vm, "--natpf1", "delete", rule_name)
            self._vbox("modifyvm", vm, "--natpf1", rendered)
        log("SUCCESS", f"Forwarding 127.0.0.1:{host_port} -> {vm}:{guest_port}")
        return self.info(vm)

    def _image_lock(self, image_path: str) -> threading.Lock:
        with self._image_locks_guard:
            return self._image_locks.setdefault(image_path, threading.Lock())

    def inject_ssh_key(self, vm: str, ssh_user: str, key_path: str) -> VMInfo:
        info = self.info(vm)
        with self._image_lock(info.disk_path):
            inject_ssh_key(
                info.disk_path,
                ssh_user,
                str(Path(key_path).expanduser()),
                scratch_dir=self.settings.scratch_dir,
                virt_sysprep=self.settings.virt_sysprep,
                timeout=self.settings.import_timeout,
            )
        return self.info(vm)

    def list_vms(self) -> List[str]:
        result = self._vbox("list", "vms")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def is_registered(self, name: str) -> bool:
        """True if ``list vms`` shows a VM with this exact name or UUID."""
        for line in self.list_vms():
            listed_name, _, rest = line.rpartition(" ")
            if strip_quotes(listed_name) == name or rest.strip("{}") == name:
                return True
        return False
