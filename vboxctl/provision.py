"""Provisioning flow: create, forward SSH, inject a key and boot, with rollback."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from vboxctl.exceptions import ManagerError, ProvisionError
from vboxctl.models import NicType, VMDefinition, VMInfo
from vboxctl.utils import log
from vboxctl.vm import VBoxManager


@dataclass
class Diagnostic:
    summary: str
    detail: str

    def __str__(self) -> str:
        return f"{self.summary}: {self.detail}"


@dataclass
class Diagnostics:
    """Ordered list of errors collected during one provisioning attempt."""

    items: List[Diagnostic] = field(default_factory=list)

    def add_error(self, summary: str, detail: str) -> None:
        self.items.append(Diagnostic(summary, detail))

    def has_error(self) -> bool:
        return bool(self.items)

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __str__(self) -> str:
        return "; ".join(str(item) for item in self.items)


Step = Tuple[str, Callable[[str], VMInfo]]


class Provisioner:
    def __init__(self, manager: Optional[VBoxManager] = None) -> None:
        self.manager = manager or VBoxManager()

    def _steps(self, definition: VMDefinition) -> List[Step]:
        """Steps that run after import; each takes the VM id and returns its refreshed info."""
        mgr = self.manager
        steps: List[Step] = []
        if definition.nic is not None:
            steps.append(("configuring network", lambda vm_id: mgr.modify_nic(vm_id, definition.nic)))
        if definition.ssh_key is not None:
            if definition.nic is not None and definition.nic.type is not NicType.NAT:
                log("WARN", f"ssh_key is set; NIC 1 of {definition.name} will be switched to NAT for port forwarding")
            steps.append(("forwarding local port", lambda vm_id: mgr.forward_port(vm_id, definition.guest_port)))
            steps.append(
                (
                    "injecting ssh key",
                    lambda vm_id: mgr.inject_ssh_key(vm_id, definition.ssh_user, str(definition.ssh_key)),
                )
            )
        steps.append(("starting new vm", lambda vm_id: mgr.start(vm_id, definition.boot_mode)))
        return steps

    def _rollback(self, name: str, diagnostics: Diagnostics) -> None:
        log("WARN", f"Rolling back {name}")
        try:
            self.manager.destroy(name)
        except ManagerError as exc:
            diagnostics.add_error("Error destroying vm", str(exc))
            log("ERROR", f"Rollback of {name} failed: {exc}")

    def apply(self, definition: VMDefinition) -> VMInfo:
        """Provision ``definition`` and return the started VM's info.

        On any failure the VM is destroyed by name; a failing rollback is
        recorded as its own diagnostic next to the original error. A name
        that is already registered is refused before import and nothing is
        rolled back, so an existing VM is never destroyed.
        """
        diagnostics = Diagnostics()
        try:
            taken = self.manager.is_registered(definition.name)
        except ManagerError as exc:
            diagnostics.add_error("Error creating new vm", str(exc))
            raise ProvisionError(diagnostics) from exc
        if taken:
            diagnostics.add_error("Error creating new vm", f"a VM named '{definition.name}' is already registered")
            raise ProvisionError(diagnostics)

        try:
            info = self.manager.create(definition.image, definition.name, definition.memory_mb, definition.cpus)
        except ManagerError as exc:
            diagnostics.add_error("Error creating new vm", str(exc))
            self._rollback(definition.name, diagnostics)
            raise ProvisionError(diagnostics) from exc

        vm_id = info.id or definition.name
        for label, step in self._steps(definition):
            try:
                info = step(vm_id)
            except ManagerError as exc:
                diagnostics.add_error(f"Error {label}", str(exc))
                self._rollback(definition.name, diagnostics)
                raise ProvisionError(diagnostics) from exc

        log("SUCCESS", f"VM {definition.name} provisioned ({info.id})")
        return info

    def read(self, vm_id: str) -> VMInfo:
        return self.manager.info(vm_id)

    def delete(self, vm_id: str) -> None:
        self.manager.destroy(vm_id)
