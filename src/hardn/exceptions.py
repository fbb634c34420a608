"""Custom exceptions for hardn."""


class HardnError(Exception):
    """Base exception for all hardn errors."""

    pass


class ConfigurationError(HardnError):
    """Raised when the configuration file is missing or invalid."""

    pass


class SystemRequirementError(HardnError):
    """Raised when a required program or directory is missing."""

    pass


class ValidationError(HardnError):
    """Raised when a supplied value violates an invariant."""

    pass


class ProbeError(HardnError):
    """Raised when a read-only probe of the system fails."""

    pass


class NotFoundError(HardnError):
    """Raised when a referenced user, file or backup does not exist."""

    pass


class MutationError(HardnError):
    """Raised when a write, ownership change or restart fails."""

    pass


class CommandExecutionError(MutationError):
    """Raised when command execution fails."""

    def __init__(self, message: str, return_code: int = -1, output: str = "") -> None:
        super().__init__(message)
        self.return_code = return_code
        self.output = output


class BackupError(MutationError):
    """Raised when a backup cannot be created, restored or cleaned up."""

    pass
