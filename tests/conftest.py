"""Pytest configuration and fixtures."""

import pytest

from hardn.adapters.sudoers import SUDOERS_TEMP_PREFIX
from hardn.models import OSInfo
from hardn.types import OSType
from hardn.utils import Provider
from hardn.utils.mocks import MockCommander, MockFileSystem, MockNetworkOperations

ED25519_KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIBexamplekeyone ops@laptop"
RSA_KEY = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQexamplekeytwo ops@desktop"

UFW_ACTIVE_STATUS = """Status: active
Logging: on (low)
Default: deny (incoming), allow (outgoing), disabled (routed)
New profiles: skip

To                         Action      From
--                         ------      ----
2222/tcp                   ALLOW IN    Anywhere                   # SSH access
80/tcp                     ALLOW IN    Anywhere
443/tcp                    ALLOW IN    10.0.0.0/8
2222/tcp (v6)              ALLOW IN    Anywhere (v6)
"""


@pytest.fixture
def mock_fs() -> MockFileSystem:
    """Create an empty in-memory filesystem."""
    return MockFileSystem()


@pytest.fixture
def mock_commander() -> MockCommander:
    """Create a commander where every unknown command succeeds."""
    return MockCommander()


@pytest.fixture
def mock_network() -> MockNetworkOperations:
    """Create a network with one LAN address."""
    return MockNetworkOperations({"lo": ["127.0.0.1"], "eth0": ["192.168.1.10"]})


@pytest.fixture
def provider(
    mock_fs: MockFileSystem,
    mock_commander: MockCommander,
    mock_network: MockNetworkOperations,
) -> Provider:
    """Bundle the in-memory doubles."""
    return Provider(fs=mock_fs, commander=mock_commander, network=mock_network)


@pytest.fixture
def debian_os() -> OSInfo:
    return OSInfo(os_type=OSType.DEBIAN, version="12", codename="bookworm")


@pytest.fixture
def ubuntu_os() -> OSInfo:
    return OSInfo(os_type=OSType.UBUNTU, version="22.04", codename="jammy")


@pytest.fixture
def alpine_os() -> OSInfo:
    return OSInfo(os_type=OSType.ALPINE, version="3.19.1")


@pytest.fixture
def proxmox_os() -> OSInfo:
    return OSInfo(
        os_type=OSType.DEBIAN, version="12", codename="bookworm", is_proxmox=True
    )


@pytest.fixture
def visudo_key() -> str:
    """Command key for the visudo check of the temporary sudoers file."""
    return f"visudo -c -f {MockFileSystem.temp_path(SUDOERS_TEMP_PREFIX)}"


@pytest.fixture
def sudoers_temp() -> str:
    """Temporary sudoers path the in-memory filesystem hands out."""
    return MockFileSystem.temp_path(SUDOERS_TEMP_PREFIX)
