"""Tests for sshd configuration management."""

from datetime import datetime

import pytest

from conftest import ED25519_KEY
from hardn.adapters.backup import FileBackupAdapter
from hardn.adapters.ssh import (
    ALPINE_SSHD_CONFIG,
    DROP_IN_SSHD_CONFIG,
    FileSSHAdapter,
    parse_sshd_config,
    render_sshd_config,
)
from hardn.exceptions import MutationError, ValidationError
from hardn.managers import SSHManager
from hardn.models import BackupConfig, SSHConfig
from hardn.services import SSHService
from hardn.types import OSType

OLD_CONFIG = b"Port 22\nPermitRootLogin yes\n"


@pytest.fixture
def ssh_adapter(mock_fs, mock_commander):
    return FileSSHAdapter(mock_fs, mock_commander, OSType.DEBIAN)


@pytest.fixture
def hardened_config():
    return SSHConfig(
        port=2222,
        listen_addresses=["0.0.0.0"],
        permit_root_login=False,
        allowed_users=["ops"],
        key_paths=[".ssh/authorized_keys"],
        auth_methods=["publickey"],
    )


def test_render_sshd_config(hardened_config):
    """Test the managed file declares every directive."""
    content = render_sshd_config(hardened_config)

    assert content.startswith("# SSH configuration managed by Hardn\n")
    assert "Port 2222\n" in content
    assert "ListenAddress 0.0.0.0\n" in content
    assert "AuthenticationMethods publickey\n" in content
    assert "PermitRootLogin no\n" in content
    assert "AllowUsers ops\n" in content
    assert "PasswordAuthentication no\n" in content
    assert "PermitEmptyPasswords no\n" in content
    assert "AuthorizedKeysFile .ssh/authorized_keys\n" in content


def test_parse_inverts_render(hardened_config):
    assert parse_sshd_config(render_sshd_config(hardened_config)) == hardened_config


def test_save_writes_drop_in_and_restarts(
    ssh_adapter, mock_fs, mock_commander, hardened_config
):
    ssh_adapter.save_ssh_config(hardened_config)

    assert DROP_IN_SSHD_CONFIG in mock_fs.files
    assert mock_fs.modes[DROP_IN_SSHD_CONFIG] == 0o644
    assert mock_commander.executed[-2:] == ["sshd -t", "systemctl restart ssh"]


def test_save_alpine_uses_main_config(mock_fs, mock_commander, hardened_config):
    adapter = FileSSHAdapter(mock_fs, mock_commander, OSType.ALPINE)

    adapter.save_ssh_config(hardened_config)

    assert ALPINE_SSHD_CONFIG in mock_fs.files
    assert mock_commander.was_executed("rc-service sshd restart")


def test_save_honours_config_file_path(ssh_adapter, mock_fs, hardened_config):
    hardened_config.config_file_path = "/etc/ssh/sshd_config.d/custom.conf"

    ssh_adapter.save_ssh_config(hardened_config)

    assert "/etc/ssh/sshd_config.d/custom.conf" in mock_fs.files
    assert DROP_IN_SSHD_CONFIG not in mock_fs.files


def test_custom_path_reads_back_save(ssh_adapter, mock_fs, hardened_config):
    """Test a config saved to its own path is read back from that path."""
    mock_fs.add_file(DROP_IN_SSHD_CONFIG, OLD_CONFIG)
    hardened_config.config_file_path = "/etc/ssh/sshd_config.d/custom.conf"

    ssh_adapter.save_ssh_config(hardened_config)

    assert (
        ssh_adapter.get_ssh_config("/etc/ssh/sshd_config.d/custom.conf")
        == hardened_config
    )
    assert ssh_adapter.get_ssh_config().port == 22


def test_custom_path_survives_read_modify_save(ssh_adapter, mock_fs, hardened_config):
    hardened_config.config_file_path = "/etc/ssh/sshd_config.d/custom.conf"
    ssh_adapter.save_ssh_config(hardened_config)

    config = ssh_adapter.get_ssh_config("/etc/ssh/sshd_config.d/custom.conf")
    config.port = 2200
    ssh_adapter.save_ssh_config(config)

    content = mock_fs.files["/etc/ssh/sshd_config.d/custom.conf"].decode()
    assert "Port 2200\n" in content
    assert DROP_IN_SSHD_CONFIG not in mock_fs.files


def test_rejected_config_is_reverted(
    ssh_adapter, mock_fs, mock_commander, hardened_config
):
    """Test that sshd -t failure restores the previous file."""
    mock_fs.add_file(DROP_IN_SSHD_CONFIG, OLD_CONFIG)
    mock_commander.add_error("sshd -t", output="line 3: Bad configuration option")

    with pytest.raises(ValidationError, match="Bad configuration option"):
        ssh_adapter.save_ssh_config(hardened_config)

    assert mock_fs.files[DROP_IN_SSHD_CONFIG] == OLD_CONFIG
    assert not mock_commander.was_executed("systemctl restart ssh")


def test_rejected_new_config_is_removed(
    ssh_adapter, mock_fs, mock_commander, hardened_config
):
    mock_commander.add_error("sshd -t", output="bad")

    with pytest.raises(ValidationError):
        ssh_adapter.save_ssh_config(hardened_config)

    assert DROP_IN_SSHD_CONFIG not in mock_fs.files


def test_missing_sshd_binary_skips_validation(
    ssh_adapter, mock_commander, hardened_config
):
    mock_commander.add_error("sshd -t", return_code=127)

    ssh_adapter.save_ssh_config(hardened_config)

    assert mock_commander.was_executed("systemctl restart ssh")


def test_restart_failure(ssh_adapter, mock_commander, hardened_config):
    mock_commander.add_error("systemctl restart ssh")

    with pytest.raises(MutationError, match="failed to restart SSH service"):
        ssh_adapter.save_ssh_config(hardened_config)


def test_get_ssh_config_defaults_when_missing(ssh_adapter):
    config = ssh_adapter.get_ssh_config()

    assert config.port == 22
    assert not config.permit_root_login


def test_get_ssh_config_reads_back_save(ssh_adapter, hardened_config):
    ssh_adapter.save_ssh_config(hardened_config)

    assert ssh_adapter.get_ssh_config() == hardened_config


def test_disable_root_access(ssh_adapter, mock_fs):
    """Test root login is refused and root leaves AllowUsers."""
    mock_fs.add_file(
        DROP_IN_SSHD_CONFIG, "Port 2222\nPermitRootLogin yes\nAllowUsers root ops\n"
    )

    ssh_adapter.disable_root_access()

    content = mock_fs.files[DROP_IN_SSHD_CONFIG].decode()
    assert "PermitRootLogin no\n" in content
    assert "AllowUsers ops\n" in content
    assert "Port 2222\n" in content


def test_add_authorized_key_for_root(ssh_adapter, mock_fs, mock_commander):
    ssh_adapter.add_authorized_key("root", ED25519_KEY)

    assert "/root/.ssh/authorized_keys" in mock_fs.files
    assert mock_commander.was_executed("chown -R root:root /root/.ssh")


def test_save_backs_up_previous_file(mock_fs, mock_commander, hardened_config):
    backup = FileBackupAdapter(
        mock_fs,
        BackupConfig(backup_dir="/var/backups/hardn"),
        clock=lambda: datetime(2026, 10, 17, 10, 30, 0),
    )
    adapter = FileSSHAdapter(mock_fs, mock_commander, OSType.DEBIAN, backup=backup)
    mock_fs.add_file(DROP_IN_SSHD_CONFIG, OLD_CONFIG)

    adapter.save_ssh_config(hardened_config)

    assert mock_fs.files["/var/backups/hardn/2026-10-17/hardn.conf.103000.bak"] == (
        OLD_CONFIG
    )


def test_service_validates_allowed_users(ssh_adapter, debian_os, hardened_config):
    service = SSHService(ssh_adapter, debian_os)
    hardened_config.allowed_users = ["Bad User"]

    with pytest.raises(ValidationError):
        service.configure_ssh(hardened_config)


def test_manager_rejects_invalid_port(ssh_adapter, debian_os):
    manager = SSHManager(SSHService(ssh_adapter, debian_os))

    with pytest.raises(ValidationError, match="invalid SSHConfig"):
        manager.configure_ssh(70000, ["0.0.0.0"], False, [], [])


def test_secure_ssh(ssh_adapter, debian_os, mock_fs):
    """Test the secure preset is key-only with root refused."""
    manager = SSHManager(SSHService(ssh_adapter, debian_os))

    manager.secure_ssh(2222, ["ops"])

    config = parse_sshd_config(mock_fs.files[DROP_IN_SSHD_CONFIG].decode())
    assert config.port == 2222
    assert config.listen_addresses == ["0.0.0.0"]
    assert not config.permit_root_login
    assert config.auth_methods == ["publickey"]
    assert config.key_paths == [".ssh/authorized_keys"]
