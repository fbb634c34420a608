"""Tests for the platform layer and its in-memory doubles."""

import os

import pytest

from hardn.exceptions import CommandExecutionError, ValidationError
from hardn.utils import Commander, FileSystem, Validator
from hardn.utils.mocks import MockCommander, MockFileSystem, MockNetworkOperations


def test_filesystem_write_creates_parents(tmp_path):
    fs = FileSystem()
    target = tmp_path / "etc" / "hardn" / "file.conf"

    fs.write_file(str(target), "content\n", 0o600)

    assert target.read_text() == "content\n"
    assert fs.stat(str(target)).mode == 0o600
    assert fs.read_text(str(target)) == "content\n"


def test_filesystem_write_resets_mode(tmp_path):
    """Test the mode is applied to files that already exist."""
    target = tmp_path / "sudoers"
    target.write_text("old")
    os.chmod(target, 0o644)

    FileSystem().write_file(str(target), b"new", 0o440)

    assert FileSystem().stat(str(target)).mode == 0o440


def test_filesystem_dry_run_skips_mutations(tmp_path):
    fs = FileSystem(dry_run=True)
    existing = tmp_path / "keep"
    existing.write_text("data")

    fs.write_file(str(tmp_path / "new"), "x")
    fs.mkdir_all(str(tmp_path / "dir"))
    fs.remove(str(existing))
    fs.remove_all(str(tmp_path))

    assert not (tmp_path / "new").exists()
    assert not (tmp_path / "dir").exists()
    assert fs.read_text(str(existing)) == "data"


def test_filesystem_listing_and_removal(tmp_path):
    fs = FileSystem()
    fs.write_file(str(tmp_path / "d" / "b"), "")
    fs.write_file(str(tmp_path / "d" / "a"), "")

    assert fs.list_dir(str(tmp_path / "d")) == ["a", "b"]
    assert fs.is_dir(str(tmp_path / "d"))

    fs.remove(str(tmp_path / "d" / "a"))
    fs.remove_all(str(tmp_path / "d"))
    fs.remove_all(str(tmp_path / "missing"))

    assert not fs.exists(str(tmp_path / "d"))


def test_commander_success():
    result = Commander().execute(["sh", "-c", "echo hello; echo oops >&2"])

    assert result.success
    assert "hello" in result.stdout
    assert "oops" in result.stdout


def test_commander_failure():
    with pytest.raises(CommandExecutionError) as exc_info:
        Commander().execute(["sh", "-c", "echo broken; exit 3"])

    assert exc_info.value.return_code == 3
    assert "broken" in str(exc_info.value)


def test_commander_failure_unchecked():
    result = Commander().execute(["sh", "-c", "exit 2"], check=False)

    assert not result.success
    assert result.return_code == 2


def test_commander_missing_program():
    result = Commander().execute(["hardn-no-such-program"], check=False)

    assert result.return_code == 127


def test_commander_stdin():
    result = Commander().execute(["cat"], input="from stdin")

    assert result.stdout == "from stdin"


def test_commander_dry_run_skips_mutations():
    """Test that dry-run skips mutating commands but still runs probes."""
    commander = Commander(dry_run=True)

    skipped = commander.execute(["sh", "-c", "exit 1"])
    probe = commander.execute(["id", "-u"])

    assert skipped.success
    assert skipped.stdout == ""
    assert probe.stdout.strip().isdigit()


def test_mock_filesystem_errors():
    fs = MockFileSystem()
    fs.set_error("read_file", "/etc/shadow", PermissionError("denied"))
    fs.add_file("/etc/shadow", "secret")

    with pytest.raises(PermissionError):
        fs.read_file("/etc/shadow")
    with pytest.raises(FileNotFoundError):
        fs.read_file("/etc/missing")


def test_mock_filesystem_directories():
    fs = MockFileSystem()
    fs.add_file("/etc/ssh/sshd_config", "Port 22\n")

    assert fs.is_dir("/etc/ssh")
    assert fs.list_dir("/etc") == ["ssh"]
    with pytest.raises(OSError):
        fs.remove("/etc/ssh")

    fs.remove_all("/etc/ssh")

    assert not fs.exists("/etc/ssh/sshd_config")


def test_mock_commander_records_calls():
    commander = MockCommander()
    commander.add_output("uname -r", "6.1.0\n")
    commander.add_error("false")

    assert commander.execute(["uname", "-r"]).stdout == "6.1.0\n"
    assert not commander.execute(["false"], check=False).success
    with pytest.raises(CommandExecutionError):
        commander.execute(["false"])
    commander.execute(["cat"], input="data")

    assert commander.executed == [
        "uname -r",
        "false",
        "false",
        "INPUT:data|cat",
    ]


def test_mock_network():
    network = MockNetworkOperations({"lo": ["127.0.0.1"], "eth0": ["10.0.5.4"]})

    assert network.get_ip_addresses() == ["10.0.5.4"]
    assert network.check_subnet("10.0.5")
    assert not network.check_subnet("10.0.6")
    assert not network.check_subnet("")


@pytest.mark.parametrize("username", ["ops", "_svc", "deploy-bot", "ci.user", "m$"])
def test_valid_usernames(username):
    Validator.validate_username(username)


@pytest.mark.parametrize("username", ["", "  ", "Ops", "1ops", "a b", "x" * 33])
def test_invalid_usernames(username):
    with pytest.raises(ValidationError):
        Validator.validate_username(username)


def test_validate_port():
    Validator.validate_port(22)
    with pytest.raises(ValidationError):
        Validator.validate_port(0)


def test_validate_public_key():
    Validator.validate_public_key("ecdsa-sha2-nistp256 AAAAE2Vj ops@host")
    with pytest.raises(ValidationError, match="single non-empty line"):
        Validator.validate_public_key("ssh-rsa AAAA\nssh-rsa BBBB")


def test_validate_source_ip():
    Validator.validate_source_ip("")
    Validator.validate_source_ip("any")
    Validator.validate_source_ip("10.0.0.0/8")
    Validator.validate_source_ip("2001:db8::1")
    with pytest.raises(ValidationError):
        Validator.validate_source_ip("10.0.0.300")
