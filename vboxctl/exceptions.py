"""Custom exceptions for vbox-vm-runner."""

from __future__ import annotations

from typing import Optional, Sequence


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ValidationError(ManagerError):
    """An argument was rejected before it reached an external tool."""


class ToolError(ManagerError):
    """An external command exited unsuccessfully.

    ``str()`` is the tool's standard error, verbatim, so callers can show
    exactly what VBoxManage or virt-sysprep reported.
    """

    def __init__(
        self,
        command: Sequence[str],
        stderr: str = "",
        returncode: Optional[int] = None,
    ) -> None:
        self.command = list(command)
        self.stderr = stderr
        self.returncode = returncode
        message = stderr.strip() or f"{' '.join(self.command)} exited with status {returncode}"
        super().__init__(message)


class CommandTimeoutError(ToolError):
    def __init__(self, command: Sequence[str], timeout: float) -> None:
        self.timeout = timeout
        super().__init__(command, f"{' '.join(command)} timed out after {timeout:g}s")


class PortExhaustedError(ManagerError):
    """No free TCP port could be bound in the configured range."""


class ParseError(ManagerError):
    """Tool output did not have the expected shape."""


class InjectionError(ManagerError):
    """A stage of the SSH key injection pipeline failed."""

    def __init__(self, stage: str, detail: str) -> None:
        self.stage = stage
        self.detail = detail
        super().__init__(f"ssh key injection failed during {stage}: {detail}")


class ProvisionError(ManagerError):
    """Provisioning failed; ``diagnostics`` holds every error collected, rollback included."""

    def __init__(self, diagnostics) -> None:
        self.diagnostics = diagnostics
        super().__init__(str(diagnostics))
