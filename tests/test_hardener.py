"""Tests for the composite hardening run."""

import pytest

from conftest import ED25519_KEY
from hardn.adapters.dns import RESOLVED_CONF
from hardn.adapters.ssh import DROP_IN_SSHD_CONFIG
from hardn.config import HardnConfig
from hardn.exceptions import HardnError, ValidationError
from hardn.factory import ServiceFactory
from hardn.hardener import SecurityManager
from hardn.models import HardeningConfig


@pytest.fixture
def factory(provider, debian_os):
    return ServiceFactory(provider, debian_os, HardnConfig(enable_backups=False), {})


@pytest.fixture
def security_manager(factory):
    return factory.create_security_manager()


@pytest.fixture
def full_config():
    return HardeningConfig(
        create_user=True,
        username="ops",
        sudo_no_password=True,
        ssh_keys=[ED25519_KEY],
        ssh_port=2222,
        ssh_allowed_users=["ops"],
        enable_firewall=True,
        allowed_ports=[443],
        configure_dns=True,
        nameservers=["9.9.9.9"],
    )


def test_harden_system_runs_every_step(
    security_manager, full_config, mock_fs, mock_commander
):
    """Test user, sshd, firewall and DNS are applied in order."""
    security_manager.harden_system(full_config)

    assert mock_fs.files["/etc/sudoers.d/ops"] == b"ops ALL=(ALL) NOPASSWD: ALL\n"
    assert ED25519_KEY.encode() in mock_fs.files["/home/ops/.ssh/authorized_keys"]
    sshd = mock_fs.files[DROP_IN_SSHD_CONFIG].decode()
    assert "Port 2222\n" in sshd
    assert "AllowUsers ops\n" in sshd
    assert mock_commander.was_executed("ufw allow 2222/tcp comment SSH access")
    assert mock_commander.was_executed("ufw allow 443/tcp comment Custom allowed port")
    assert b"DNS=9.9.9.9\n" in mock_fs.files[RESOLVED_CONF]

    order = [
        mock_commander.executed.index("usermod -aG sudo ops"),
        mock_commander.executed.index("sshd -t"),
        mock_commander.executed.index("ufw --force reset"),
        mock_commander.executed.index("systemctl restart systemd-resolved"),
    ]
    assert order == sorted(order)


def test_root_login_is_always_refused(security_manager, mock_fs):
    security_manager.harden_system(HardeningConfig(ssh_port=2200))

    assert "PermitRootLogin no\n" in mock_fs.files[DROP_IN_SSHD_CONFIG].decode()


def test_optional_steps_skipped(security_manager, mock_fs, mock_commander):
    """Test a minimal config only touches sshd."""
    security_manager.harden_system(HardeningConfig())

    assert not mock_commander.executed_starting_with("usermod")
    assert not mock_commander.executed_starting_with("ufw")
    assert RESOLVED_CONF not in mock_fs.files
    assert DROP_IN_SSHD_CONFIG in mock_fs.files


def test_user_skipped_without_username(security_manager, mock_commander):
    security_manager.harden_system(HardeningConfig(create_user=True))

    assert not mock_commander.executed_starting_with("usermod")


def test_failure_stops_the_run(security_manager, full_config, mock_fs, mock_commander):
    """Test a rejected sshd config aborts before the firewall step."""
    mock_commander.add_error("sshd -t", output="bad option")

    with pytest.raises(ValidationError, match="sshd rejected"):
        security_manager.harden_system(full_config)

    assert "/etc/sudoers.d/ops" in mock_fs.files
    assert not mock_commander.executed_starting_with("ufw")
    assert RESOLVED_CONF not in mock_fs.files


def test_invalid_nameserver_fails_dns_step(security_manager, full_config):
    full_config.nameservers = ["resolver.lan"]

    with pytest.raises(ValidationError, match="invalid nameserver"):
        security_manager.harden_system(full_config)


def test_apply_security_features(security_manager, mock_commander):
    security_manager.apply_security_features(HardeningConfig(enable_lynis=True))

    assert mock_commander.was_executed("lynis audit system")
    assert not mock_commander.was_executed("apt-get install -y apparmor")
    assert not mock_commander.was_executed("apt-get install -y unattended-upgrades")


def test_apply_security_features_without_service(factory, mock_commander):
    manager = SecurityManager(
        factory.create_user_manager(),
        factory.create_ssh_manager(),
        factory.create_firewall_manager(),
        factory.create_dns_manager(),
    )

    manager.apply_security_features(HardeningConfig(enable_app_armor=True))

    assert not mock_commander.executed


def test_menu_manager_delegates_hardening(factory, full_config, mock_fs):
    menu = factory.create_menu_manager()

    menu.harden_system(full_config)

    assert DROP_IN_SSHD_CONFIG in mock_fs.files
    assert menu.get_backup_status() == (False, "/var/backups/hardn")


def test_rerun_is_stable(factory, full_config, mock_fs):
    """Test a second run leaves the same files and the same posture."""
    evaluator = factory.create_posture_evaluator()
    factory.create_security_manager().harden_system(full_config)
    first_files = dict(mock_fs.files)
    first_status = evaluator.evaluate()

    factory.create_security_manager().harden_system(full_config)

    assert mock_fs.files == first_files
    assert evaluator.evaluate() == first_status


def test_firewall_failure_skips_dns(factory, full_config, mock_fs, mock_commander):
    mock_commander.add_error("ufw default deny incoming", output="ufw broken")

    with pytest.raises(HardnError):
        factory.create_security_manager().harden_system(full_config)

    assert "/etc/sudoers.d/ops" in mock_fs.files
    assert DROP_IN_SSHD_CONFIG in mock_fs.files
    assert RESOLVED_CONF not in mock_fs.files
    assert not factory.create_posture_evaluator().evaluate().firewall_enabled


def test_alpine_hardening(provider, alpine_os, full_config, mock_fs, mock_commander):
    """Test the Alpine commands and the canonical sshd_config path."""
    mock_commander.add_error("id ops")
    factory = ServiceFactory(
        provider, alpine_os, HardnConfig(enable_backups=False), {}
    )
    full_config.configure_dns = False

    factory.create_security_manager().harden_system(full_config)

    assert mock_commander.was_executed("adduser -D -g  ops")
    assert mock_commander.was_executed("addgroup ops wheel")
    assert mock_commander.was_executed("rc-service sshd restart")
    assert not mock_commander.was_executed("systemctl restart ssh")
    assert "Port 2222\n" in mock_fs.files["/etc/ssh/sshd_config"].decode()
    assert DROP_IN_SSHD_CONFIG not in mock_fs.files
