"""Tests for vboxctl.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from vboxctl.config import load_vm_definition, parse_env, parse_vm_definition
from vboxctl.constants import IMAGE_CACHE_DIR, SCRATCH_DIR
from vboxctl.exceptions import ManagerError, ValidationError
from vboxctl.models import BootMode, NicType


@pytest.fixture
def vm_definition_file(tmp_path):
    """Create a temporary vm.yaml file."""

    def _write(vm=None, raw=None):
        config_path = tmp_path / "vm.yaml"
        if raw is not None:
            config_path.write_text(raw)
        else:
            config_path.write_text(yaml.dump({"vm": vm}))
        return config_path

    return _write


class TestParseEnv:
    def test_defaults(self, clean_env):
        settings = parse_env()
        assert settings.vboxmanage == "VBoxManage"
        assert settings.virt_sysprep == "virt-sysprep"
        assert settings.rule_name == "vboxctl_ssh_port_rule"
        assert (settings.port_min, settings.port_max) == (7000, 8000)
        assert settings.command_timeout == 300
        assert settings.import_timeout == 1800
        assert settings.scratch_dir == SCRATCH_DIR
        assert settings.image_cache_dir == IMAGE_CACHE_DIR
        assert settings.disk_slot == "SATA Controller-0-0"

    def test_overrides(self, clean_env, mock_env, tmp_path):
        mock_env(
            VBOXMANAGE="/usr/local/bin/VBoxManage",
            VIRT_SYSPREP="/opt/virt-sysprep",
            SSH_PORT_RULE="terraform_ssh_port_rule",
            PORT_RANGE_MIN="7100",
            PORT_RANGE_MAX="7200",
            COMMAND_TIMEOUT="30",
            IMPORT_TIMEOUT="600",
            SCRATCH_DIR=str(tmp_path / "scratch"),
            IMAGE_CACHE_DIR=str(tmp_path / "cache"),
            DISK_SLOT="IDE Controller-0-0",
        )
        settings = parse_env()
        assert settings.vboxmanage == "/usr/local/bin/VBoxManage"
        assert settings.virt_sysprep == "/opt/virt-sysprep"
        assert settings.rule_name == "terraform_ssh_port_rule"
        assert (settings.port_min, settings.port_max) == (7100, 7200)
        assert settings.command_timeout == 30
        assert settings.import_timeout == 600
        assert settings.scratch_dir == tmp_path / "scratch"
        assert settings.image_cache_dir == tmp_path / "cache"
        assert settings.disk_slot == "IDE Controller-0-0"

    def test_blank_values_fall_back_to_defaults(self, clean_env, mock_env):
        mock_env(VBOXMANAGE="  ", SSH_PORT_RULE="", DISK_SLOT=" ")
        settings = parse_env()
        assert settings.vboxmanage == "VBoxManage"
        assert settings.rule_name == "vboxctl_ssh_port_rule"
        assert settings.disk_slot == "SATA Controller-0-0"

    def test_inverted_port_range(self, clean_env, mock_env):
        mock_env(PORT_RANGE_MIN="8000", PORT_RANGE_MAX="7000")
        with pytest.raises(ManagerError, match=r"PORT_RANGE_MIN \(8000\) must not exceed PORT_RANGE_MAX \(7000\)"):
            parse_env()

    def test_port_above_65535(self, clean_env, mock_env):
        mock_env(PORT_RANGE_MAX="70000")
        with pytest.raises(ManagerError, match="PORT_RANGE_MAX must be <= 65535"):
            parse_env()

    def test_non_integer_timeout(self, clean_env, mock_env):
        mock_env(COMMAND_TIMEOUT="soon")
        with pytest.raises(ManagerError, match="COMMAND_TIMEOUT must be an integer"):
            parse_env()

    def test_rule_name_with_comma_rejected(self, clean_env, mock_env):
        mock_env(SSH_PORT_RULE="a,b")
        with pytest.raises(ValidationError, match="SSH_PORT_RULE must not contain ','"):
            parse_env()


class TestParseVmDefinition:
    def test_minimal(self):
        definition = parse_vm_definition({"name": "vm1", "image": "base.ova", "memory": 2048, "cpus": 2})
        assert definition.name == "vm1"
        assert definition.image == "base.ova"
        assert definition.memory_mb == 2048
        assert definition.cpus == 2
        assert definition.ssh_user == "root"
        assert definition.ssh_key is None
        assert definition.boot_mode is BootMode.HEADLESS
        assert definition.nic is None
        assert definition.guest_port == 22

    def test_full(self):
        definition = parse_vm_definition(
            {
                "name": "vm1",
                "image": "https://example.com/base.ova",
                "memory": "4096",
                "cpus": 4,
                "ssh_user": "ubuntu",
                "ssh_key": "/keys/id.pub",
                "boot_mode": "GUI",
                "nic": {"type": "bridged", "host_adapter": "enp3s0"},
                "guest_port": 2222,
            }
        )
        assert definition.memory_mb == 4096
        assert definition.ssh_user == "ubuntu"
        assert definition.ssh_key == Path("/keys/id.pub")
        assert definition.boot_mode is BootMode.GUI
        assert definition.nic.type is NicType.BRIDGED
        assert definition.nic.host_adapter == "enp3s0"
        assert definition.guest_port == 2222

    def test_nic_as_plain_string(self):
        definition = parse_vm_definition({"name": "vm1", "image": "a.ova", "memory": 1, "cpus": 1, "nic": "nat"})
        assert definition.nic.type is NicType.NAT
        assert definition.nic.host_adapter is None

    def test_unknown_keys(self):
        with pytest.raises(ManagerError, match="Unknown VM definition keys: disk, ram"):
            parse_vm_definition({"name": "vm1", "image": "a.ova", "memory": 1, "cpus": 1, "ram": 1, "disk": 2})

    @pytest.mark.parametrize("key", ["name", "image"])
    def test_missing_required_string(self, key):
        data = {"name": "vm1", "image": "a.ova", "memory": 1, "cpus": 1}
        del data[key]
        with pytest.raises(ManagerError, match=f"missing '{key}'"):
            parse_vm_definition(data)

    def test_missing_memory(self):
        with pytest.raises(ManagerError, match="missing 'memory'"):
            parse_vm_definition({"name": "vm1", "image": "a.ova", "cpus": 1})

    @pytest.mark.parametrize("value", [0, "lots", True])
    def test_bad_cpus(self, value):
        with pytest.raises(ManagerError, match="'cpus'"):
            parse_vm_definition({"name": "vm1", "image": "a.ova", "memory": 1, "cpus": value})

    def test_unknown_boot_mode(self):
        with pytest.raises(ManagerError, match="Unknown boot_mode 'fullscreen'"):
            parse_vm_definition({"name": "vm1", "image": "a.ova", "memory": 1, "cpus": 1, "boot_mode": "fullscreen"})

    def test_unknown_nic_type(self):
        with pytest.raises(ManagerError, match="Unknown network type 'wifi'"):
            parse_vm_definition({"name": "vm1", "image": "a.ova", "memory": 1, "cpus": 1, "nic": "wifi"})

    def test_nic_mapping_without_type(self):
        with pytest.raises(ManagerError, match="'type' key"):
            parse_vm_definition({"name": "vm1", "image": "a.ova", "memory": 1, "cpus": 1, "nic": {"host_adapter": "x"}})


class TestLoadVmDefinition:
    def test_valid_file(self, vm_definition_file):
        path = vm_definition_file({"name": "vm1", "image": "base.ova", "memory": 2048, "cpus": 2})
        assert load_vm_definition(path).name == "vm1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManagerError, match="VM definition missing"):
            load_vm_definition(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, vm_definition_file):
        path = vm_definition_file(raw="vm: [unclosed\n")
        with pytest.raises(ManagerError, match="invalid YAML"):
            load_vm_definition(path)

    def test_missing_vm_key(self, vm_definition_file):
        path = vm_definition_file(raw="machines: {}\n")
        with pytest.raises(ManagerError, match="top-level 'vm' mapping"):
            load_vm_definition(path)
