"""Distribution-specific adapters, one per port."""

from hardn.adapters.backup import FileBackupAdapter
from hardn.adapters.dns import FileDNSAdapter
from hardn.adapters.environment import FileEnvironmentAdapter
from hardn.adapters.features import OSSecurityFeatureAdapter
from hardn.adapters.firewall import UFWFirewallAdapter
from hardn.adapters.host_info import OSHostInfoAdapter
from hardn.adapters.last_login import FallbackLoginAdapter
from hardn.adapters.logs import FileLogsAdapter
from hardn.adapters.packages import OSPackageAdapter
from hardn.adapters.ssh import FileSSHAdapter
from hardn.adapters.user import OSUserAdapter

__all__ = [
    "FallbackLoginAdapter",
    "FileBackupAdapter",
    "FileDNSAdapter",
    "FileEnvironmentAdapter",
    "FileLogsAdapter",
    "FileSSHAdapter",
    "OSHostInfoAdapter",
    "OSPackageAdapter",
    "OSSecurityFeatureAdapter",
    "OSUserAdapter",
    "UFWFirewallAdapter",
]
