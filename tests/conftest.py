"""Shared test fixtures and a scripted stand-in for VBoxManage."""

from __future__ import annotations

import subprocess
from typing import Callable, Dict, List, Optional, Union
from unittest.mock import patch

import pytest

from vboxctl.models import Settings

VM_UUID = "5f1c2a3e-8d4b-4f0e-9a61-2b7c9d0e1f23"
DISK_PATH = "/home/user/VirtualBox VMs/vm1/vm1-disk001.vmdk"


def make_dump(
    name: str = "vm1",
    uuid: str = VM_UUID,
    state: Optional[str] = "poweroff",
    disk: Optional[str] = DISK_PATH,
    ssh_port: Optional[int] = None,
    rule_name: str = "vboxctl_ssh_port_rule",
) -> str:
    """Render a ``showvminfo --machinereadable`` dump the way VirtualBox 7 prints it."""
    lines = [
        f'name="{name}"',
        'Encryption:     disabled',
        'groups="/"',
        'ostype="Ubuntu (64-bit)"',
        f'UUID="{uuid}"',
        'CfgFile="/home/user/VirtualBox VMs/vm1/vm1.vbox"',
        "memory=2048",
        "cpus=2",
    ]
    if state is not None:
        lines.append(f'VMState="{state}"')
        lines.append('VMStateChangeTime="2023-02-04T21:40:00.000000000"')
    lines.append('storagecontrollername0="SATA Controller"')
    if disk is not None:
        lines.append(f'"SATA Controller-0-0"="{disk}"')
        lines.append('"SATA Controller-ImageUUID-0-0"="0a4e8f1c-3b2d-4c5e-8f9a-1b2c3d4e5f60"')
    lines.append('nic1="nat"')
    lines.append('natnet1="nat"')
    if ssh_port is not None:
        lines.append(f'Forwarding(0)="{rule_name},tcp,127.0.0.1,{ssh_port},,22"')
    return "\n".join(lines) + "\n"


Response = Union[subprocess.CompletedProcess, Callable[[List[str]], subprocess.CompletedProcess]]


class FakeVBox:
    """Records every command and answers per VBoxManage verb."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.dump = make_dump()
        self.responses: Dict[str, Response] = {}

    def fail(self, verb: str, stderr: str, returncode: int = 1) -> None:
        self.responses[verb] = lambda args: subprocess.CompletedProcess(args, returncode, "", stderr)

    def reply(self, verb: str, stdout: str) -> None:
        self.responses[verb] = lambda args: subprocess.CompletedProcess(args, 0, stdout, "")

    def verbs(self) -> List[str]:
        return [call[1] for call in self.calls]

    def calls_for(self, verb: str) -> List[List[str]]:
        return [call for call in self.calls if call[1] == verb]

    def __call__(self, args, **kwargs) -> subprocess.CompletedProcess:
        args = list(args)
        self.calls.append(args)
        handler = self.responses.get(args[1])
        if handler is not None:
            return handler(args) if callable(handler) else handler
        if args[1] == "showvminfo":
            return subprocess.CompletedProcess(args, 0, self.dump, "")
        return subprocess.CompletedProcess(args, 0, "", "")


@pytest.fixture
def fake_vbox():
    fake = FakeVBox()
    with patch("vboxctl.utils.subprocess.run", side_effect=fake):
        yield fake


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with scratch and cache space inside the test's tmp dir."""
    return Settings(scratch_dir=tmp_path / "scratch", image_cache_dir=tmp_path / "cache")


@pytest.fixture
def mock_env(monkeypatch):
    """Helper to set environment variables for tests."""

    def _set(**kwargs):
        for key, value in kwargs.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, str(value))

    return _set


# All environment variables that parse_env() reads.
_PARSE_ENV_VARS = [
    "VBOXMANAGE",
    "VIRT_SYSPREP",
    "SSH_PORT_RULE",
    "PORT_RANGE_MIN",
    "PORT_RANGE_MAX",
    "COMMAND_TIMEOUT",
    "IMPORT_TIMEOUT",
    "SCRATCH_DIR",
    "IMAGE_CACHE_DIR",
    "DISK_SLOT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all environment variables that parse_env() reads."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
