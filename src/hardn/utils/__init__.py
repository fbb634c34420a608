"""Platform layer: filesystem, commander and network access."""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from hardn.utils.command import Commander
from hardn.utils.file import FileSystem
from hardn.utils.network import NetworkOperations
from hardn.utils.validation import Validator

if TYPE_CHECKING:
    from hardn.ports import CommanderPort, FileSystemPort, NetworkPort


@dataclass
class Provider:
    """Bundle of the platform capabilities handed to the factory."""

    fs: "FileSystemPort"
    commander: "CommanderPort"
    network: "NetworkPort"

    @classmethod
    def default(cls, dry_run: bool = False) -> "Provider":
        """Build the OS-backed provider."""
        return cls(
            fs=FileSystem(dry_run=dry_run),
            commander=Commander(dry_run=dry_run),
            network=NetworkOperations(),
        )


__all__ = ["Commander", "FileSystem", "NetworkOperations", "Provider", "Validator"]
