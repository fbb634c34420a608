"""Tests for user accounts, authorized keys and sudo."""

import pytest

from conftest import ED25519_KEY, RSA_KEY
from hardn.adapters.last_login import FallbackLoginAdapter
from hardn.adapters.user import OSUserAdapter, resolve_key_path, sudoers_line
from hardn.exceptions import MutationError, NotFoundError, ValidationError
from hardn.managers import UserManager
from hardn.models import User
from hardn.services import UserService
from hardn.types import OSType

PASSWD = """root:x:0:0:root:/root:/bin/bash
daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin
ops:x:1000:1000:Ops:/home/ops:/bin/bash
svc:x:1001:1001::/home/svc:/usr/sbin/nologin
nobody:x:65534:65534:nobody:/nonexistent:/bin/sh
"""

GROUP = """root:x:0:
sudo:x:27:ops
ops:x:1000:
docker:x:1001:
devs:x:1002:ops,dev
"""


@pytest.fixture
def debian_users(mock_fs, mock_commander):
    return OSUserAdapter(mock_fs, mock_commander, OSType.DEBIAN)


@pytest.fixture
def alpine_users(mock_fs, mock_commander):
    return OSUserAdapter(mock_fs, mock_commander, OSType.ALPINE)


def test_resolve_key_path_patterns():
    """Test sshKeyPath pattern expansion."""
    assert resolve_key_path(".ssh_%u", "ops", "/home/ops") == (
        "/home/ops/.ssh_ops/authorized_keys"
    )
    assert resolve_key_path("", "ops", "/home/ops") == (
        "/home/ops/.ssh_ops/authorized_keys"
    )
    assert resolve_key_path("/srv/keys/%u", "ops", "/home/ops") == (
        "/srv/keys/ops/.ssh/authorized_keys"
    )
    assert resolve_key_path(".ssh/authorized_keys", "ops", "/home/ops") == (
        "/home/ops/.ssh/authorized_keys"
    )


def test_sudoers_line():
    assert sudoers_line("ops", False) == "ops ALL=(ALL) ALL\n"
    assert sudoers_line("ops", True) == "ops ALL=(ALL) NOPASSWD: ALL\n"


def test_create_new_user_debian(debian_users, mock_fs, mock_commander, sudoers_temp):
    """Test creating a sudo user with one key on Debian."""
    mock_commander.add_error("id ops")

    debian_users.create_user(
        User(
            username="ops",
            has_sudo=True,
            sudo_no_password=False,
            ssh_keys=[ED25519_KEY],
        )
    )

    assert mock_commander.was_executed("adduser --disabled-password --gecos  ops")
    assert mock_commander.was_executed("usermod -aG sudo ops")
    assert mock_commander.was_executed("chown -R ops:ops /home/ops/.ssh")
    assert mock_fs.files["/home/ops/.ssh/authorized_keys"] == (
        ED25519_KEY + "\n"
    ).encode()
    assert mock_fs.modes["/home/ops/.ssh/authorized_keys"] == 0o600
    assert mock_fs.dirs["/home/ops/.ssh"] == 0o700
    assert mock_fs.files["/etc/sudoers.d/ops"] == b"ops ALL=(ALL) ALL\n"
    assert mock_fs.modes["/etc/sudoers.d/ops"] == 0o440
    assert sudoers_temp not in mock_fs.files
    assert "/root/.ssh" not in mock_fs.dirs


def test_create_new_user_alpine(alpine_users, mock_fs, mock_commander):
    """Test that Alpine uses adduser -D and the wheel group."""
    mock_commander.add_error("id ops")

    alpine_users.create_user(User(username="ops", has_sudo=True, sudo_no_password=True))

    assert mock_commander.was_executed("adduser -D -g  ops")
    assert mock_commander.was_executed("addgroup ops wheel")
    assert mock_fs.files["/etc/sudoers.d/ops"] == b"ops ALL=(ALL) NOPASSWD: ALL\n"


def test_create_existing_user_augments(debian_users, mock_fs, mock_commander):
    """Test that an existing account only gets sudo and keys."""
    mock_fs.add_file("/home/ops/.ssh/authorized_keys", RSA_KEY + "\n", 0o600)

    debian_users.create_user(
        User(
            username="ops",
            has_sudo=True,
            sudo_no_password=True,
            ssh_keys=[ED25519_KEY],
        )
    )

    assert not mock_commander.executed_starting_with("adduser")
    assert mock_commander.was_executed("usermod -aG sudo ops")
    content = mock_fs.files["/home/ops/.ssh/authorized_keys"].decode()
    assert content == f"{RSA_KEY}\n{ED25519_KEY}\n"


def test_add_ssh_key_is_idempotent(debian_users, mock_fs):
    """Test that adding the same key twice keeps one copy."""
    debian_users.add_ssh_key("ops", ED25519_KEY)
    debian_users.add_ssh_key("ops", ED25519_KEY)

    content = mock_fs.files["/home/ops/.ssh/authorized_keys"].decode()
    assert content.count(ED25519_KEY) == 1


def test_add_ssh_key_appends_newline(debian_users, mock_fs):
    """Test that a file without trailing newline gets one before the new key."""
    mock_fs.add_file("/home/ops/.ssh/authorized_keys", RSA_KEY, 0o600)

    debian_users.add_ssh_key("ops", ED25519_KEY)

    content = mock_fs.files["/home/ops/.ssh/authorized_keys"].decode()
    assert content == f"{RSA_KEY}\n{ED25519_KEY}\n"


def test_add_ssh_key_uses_passwd_home(debian_users, mock_fs, mock_commander):
    mock_commander.add_output(
        "getent passwd ops", "ops:x:1000:1000::/srv/ops:/bin/bash\n"
    )

    debian_users.add_ssh_key("ops", ED25519_KEY)

    assert "/srv/ops/.ssh/authorized_keys" in mock_fs.files


def test_add_ssh_key_write_failure(debian_users, mock_fs):
    mock_fs.set_error(
        "write_file", "/home/ops/.ssh/authorized_keys", PermissionError("denied")
    )

    with pytest.raises(MutationError, match="authorized_keys"):
        debian_users.add_ssh_key("ops", ED25519_KEY)


def test_sudoers_rejected_by_visudo(
    debian_users, mock_fs, mock_commander, visudo_key, sudoers_temp
):
    """Test that a rejected sudoers file never reaches /etc/sudoers.d."""
    mock_commander.add_error(visudo_key, output="syntax error")

    with pytest.raises(ValidationError, match="invalid sudoers"):
        debian_users.configure_sudo("ops", True)

    assert "/etc/sudoers.d/ops" not in mock_fs.files
    assert sudoers_temp not in mock_fs.files


def test_adduser_failure(debian_users, mock_commander):
    mock_commander.add_error("id ops")
    mock_commander.add_error("adduser --disabled-password --gecos  ops")

    with pytest.raises(MutationError, match="failed to create user ops"):
        debian_users.create_user(User(username="ops"))


def test_configure_sudo_missing_user(debian_users, mock_commander):
    mock_commander.add_error("id ghost")

    with pytest.raises(NotFoundError):
        debian_users.configure_sudo("ghost", False)


def test_get_user_missing(debian_users, mock_commander):
    mock_commander.add_error("id ghost")

    with pytest.raises(NotFoundError):
        debian_users.get_user("ghost")


def test_get_non_system_users(debian_users, mock_fs):
    """Test filtering by UID and login shell."""
    mock_fs.add_file("/etc/passwd", PASSWD)
    mock_fs.add_file("/etc/group", GROUP)

    users = debian_users.get_non_system_users()

    assert [u.username for u in users] == ["ops"]
    assert users[0].uid == 1000
    assert users[0].home_directory == "/home/ops"
    assert users[0].has_sudo


def test_get_non_system_groups(debian_users, mock_fs):
    mock_fs.add_file("/etc/group", GROUP)

    assert debian_users.get_non_system_groups() == ["docker", "devs"]


def test_passwd_read_falls_back_to_cat(debian_users, mock_commander):
    mock_commander.add_output("cat /etc/passwd", PASSWD)

    users = debian_users.get_non_system_users()

    assert [u.username for u in users] == ["ops"]


def test_get_extended_user_info(mock_fs, mock_commander):
    """Test ids, sudo, keys and last login are all populated."""
    adapter = OSUserAdapter(
        mock_fs,
        mock_commander,
        OSType.DEBIAN,
        login=FallbackLoginAdapter(mock_commander),
    )
    mock_commander.add_output(
        "getent passwd ops", "ops:x:1000:1000::/home/ops:/bin/bash\n"
    )
    mock_commander.add_output("id -u ops", "1000\n")
    mock_commander.add_output("id -g ops", "1001\n")
    mock_commander.add_output("groups ops", "ops : ops sudo\n")
    mock_commander.add_output(
        "lastlog -u ops",
        "Username         Port     From             Latest\n"
        "ops              pts/0    192.168.1.5      Mon Jan  8 10:15:32 +0000 2024\n",
    )
    mock_fs.add_file("/etc/sudoers.d/ops", "ops ALL=(ALL) NOPASSWD: ALL\n", 0o440)
    mock_fs.add_file("/home/ops/.ssh/authorized_keys", ED25519_KEY + "\n", 0o600)

    user = adapter.get_extended_user_info("ops")

    assert user.uid == 1000
    assert user.gid == 1001
    assert user.has_sudo
    assert user.sudo_no_password
    assert user.ssh_keys == [ED25519_KEY]
    assert user.last_login is not None
    assert user.last_login.year == 2024
    assert user.last_login_ip == "192.168.1.5"


def test_extended_info_prefers_key_path_pattern(mock_fs, mock_commander):
    adapter = OSUserAdapter(mock_fs, mock_commander, OSType.DEBIAN)
    mock_fs.add_file("/home/ops/.ssh_ops/authorized_keys", RSA_KEY + "\n")
    mock_fs.add_file("/home/ops/.ssh/authorized_keys", ED25519_KEY + "\n")

    user = adapter.get_extended_user_info("ops")

    assert user.ssh_keys == [RSA_KEY]


def test_service_rejects_bad_username(debian_users, debian_os, mock_commander):
    service = UserService(debian_users, debian_os)

    with pytest.raises(ValidationError):
        service.create_user(User(username="Bad User"))

    assert not mock_commander.executed


def test_service_rejects_bad_key(debian_users, debian_os):
    service = UserService(debian_users, debian_os)

    with pytest.raises(ValidationError, match="unsupported SSH key type"):
        service.add_ssh_key("ops", "not-a-key AAAA")


def test_manager_rejects_empty_username(debian_users, debian_os):
    manager = UserManager(UserService(debian_users, debian_os))

    with pytest.raises(ValidationError, match="invalid User"):
        manager.create_user("", True, False, [])


def test_manager_create_user(debian_users, debian_os, mock_fs, mock_commander):
    mock_commander.add_error("id ops")
    manager = UserManager(UserService(debian_users, debian_os))

    manager.create_user("ops", True, True, [ED25519_KEY])

    assert mock_fs.files["/etc/sudoers.d/ops"] == b"ops ALL=(ALL) NOPASSWD: ALL\n"
