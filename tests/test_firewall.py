"""Tests for the ufw firewall adapter and manager."""

import pytest

from conftest import UFW_ACTIVE_STATUS
from hardn.adapters.firewall import (
    PROFILES_PATH,
    UFWFirewallAdapter,
    is_configured,
    parse_profiles,
    parse_status,
    render_profiles,
    rule_lines,
)
from hardn.exceptions import MutationError, SystemRequirementError, ValidationError
from hardn.managers import FirewallManager, secure_firewall_config
from hardn.models import FirewallConfig, FirewallProfile, FirewallRule
from hardn.services import FirewallService
from hardn.types import FirewallAction, FirewallProtocol

WEB_PROFILE = FirewallProfile(
    name="web",
    title="Web server",
    description="HTTP and HTTPS",
    ports=["80/tcp", "443/tcp"],
)


@pytest.fixture
def ufw(mock_fs, mock_commander):
    return UFWFirewallAdapter(mock_fs, mock_commander)


@pytest.fixture
def firewall_manager(ufw, debian_os):
    return FirewallManager(FirewallService(ufw, debian_os))


def test_parse_status():
    """Test defaults, rules and comments are read from ufw status."""
    config = parse_status(UFW_ACTIVE_STATUS)

    assert config.enabled
    assert config.default_incoming == FirewallAction.DENY
    assert config.default_outgoing == FirewallAction.ALLOW
    assert [r.port for r in config.rules] == [2222, 80, 443]
    assert config.rules[0].description == "SSH access"
    assert config.rules[0].source_ip == ""
    assert config.rules[2].source_ip == "10.0.0.0/8"


def test_parse_status_inactive():
    config = parse_status("Status: inactive\n")

    assert not config.enabled
    assert config.rules == []


def test_rule_lines_skip_headers():
    lines = rule_lines(UFW_ACTIVE_STATUS)

    assert len(lines) == 4
    assert lines[0].startswith("2222/tcp")


def test_is_configured():
    assert is_configured(UFW_ACTIVE_STATUS)
    assert not is_configured("Status: active\nDefault: allow (incoming)\n")


def test_profiles_round_trip():
    assert parse_profiles(render_profiles([WEB_PROFILE])) == [WEB_PROFILE]


def test_save_applies_policy_in_order(ufw, mock_fs, mock_commander):
    """Test defaults, reset, profiles, rules and enable run in sequence."""
    config = FirewallConfig(
        enabled=True,
        rules=[
            FirewallRule(port=2222, description="SSH access"),
            FirewallRule(
                action=FirewallAction.DENY,
                protocol=FirewallProtocol.UDP,
                port=53,
                source_ip="10.0.0.0/8",
            ),
        ],
        application_profiles=[WEB_PROFILE],
    )

    ufw.save_firewall_config(config)

    assert mock_commander.executed_starting_with("ufw") == [
        "ufw default deny incoming",
        "ufw default allow outgoing",
        "ufw disable",
        "ufw --force reset",
        "ufw allow from any to any app web",
        "ufw allow 2222/tcp comment SSH access",
        "ufw deny 53/udp from 10.0.0.0/8",
    ]
    assert mock_commander.executed[-1] == "sh -c yes | ufw enable"
    assert "[web]" in mock_fs.files[PROFILES_PATH].decode()


def test_save_disabled_config_does_not_enable(ufw, mock_commander):
    ufw.save_firewall_config(FirewallConfig(enabled=False))

    assert not mock_commander.was_executed("sh -c yes | ufw enable")


def test_save_requires_ufw(ufw, mock_commander):
    mock_commander.add_error("which ufw")

    with pytest.raises(SystemRequirementError, match="not installed"):
        ufw.save_firewall_config(FirewallConfig(enabled=True))


def test_save_reports_failed_step(ufw, mock_commander):
    mock_commander.add_error("ufw --force reset")

    with pytest.raises(MutationError, match="failed to reset UFW"):
        ufw.save_firewall_config(FirewallConfig(enabled=True))


def test_add_and_remove_rule(ufw, mock_commander):
    rule = FirewallRule(port=8080, source_ip="192.168.1.0/24")

    ufw.add_rule(rule)
    ufw.remove_rule(rule)

    assert mock_commander.executed == [
        "ufw allow 8080/tcp from 192.168.1.0/24",
        "ufw delete allow 8080/tcp from 192.168.1.0/24",
    ]


def test_add_profile_keeps_existing(ufw, mock_fs):
    """Test a new profile is merged with those already on disk."""
    mock_fs.add_file(
        PROFILES_PATH, render_profiles([FirewallProfile(name="db", ports=["5432"])])
    )

    ufw.add_profile(WEB_PROFILE)

    names = [p.name for p in parse_profiles(mock_fs.files[PROFILES_PATH].decode())]
    assert names == ["db", "web"]


def test_get_firewall_config(ufw, mock_fs, mock_commander):
    mock_commander.add_output("ufw status verbose", UFW_ACTIVE_STATUS)
    mock_fs.add_file(PROFILES_PATH, render_profiles([WEB_PROFILE]))

    config = ufw.get_firewall_config()

    assert config.enabled
    assert len(config.rules) == 3
    assert config.application_profiles == [WEB_PROFILE]


def test_status_not_installed(ufw, mock_commander):
    mock_commander.add_error("which ufw")

    status = ufw.get_firewall_status()

    assert not status.installed
    assert not status.enabled
    assert status.rules == []


def test_status_active(ufw, mock_commander):
    mock_commander.add_output("ufw status verbose", UFW_ACTIVE_STATUS)

    status = ufw.get_firewall_status()

    assert status.installed
    assert status.enabled
    assert status.configured
    assert len(status.rules) == 4


def test_secure_firewall_config():
    config = secure_firewall_config(2222, [80, 443])

    assert config.enabled
    assert config.default_incoming == FirewallAction.DENY
    assert [(r.port, r.description) for r in config.rules] == [
        (2222, "SSH access"),
        (80, "Custom allowed port"),
        (443, "Custom allowed port"),
    ]


def test_manager_secure_firewall(firewall_manager, mock_commander):
    firewall_manager.configure_secure_firewall(2222, [443], [WEB_PROFILE])

    assert mock_commander.was_executed("ufw allow 2222/tcp comment SSH access")
    assert mock_commander.was_executed("ufw allow 443/tcp comment Custom allowed port")
    assert mock_commander.was_executed("ufw allow from any to any app web")


def test_manager_rejects_bad_source(firewall_manager, mock_commander):
    with pytest.raises(ValidationError):
        firewall_manager.configure_firewall(
            "deny", "allow", [FirewallRule(port=22, source_ip="not-an-ip")], []
        )

    assert not mock_commander.executed


def test_manager_rejects_duplicate_profiles(firewall_manager):
    with pytest.raises(ValidationError, match="unique"):
        firewall_manager.configure_firewall(
            "deny", "allow", [], [WEB_PROFILE, WEB_PROFILE]
        )


def test_rule_requires_port():
    with pytest.raises(ValueError):
        FirewallRule(protocol=FirewallProtocol.TCP, port=0)
