"""Input validation utilities."""

import ipaddress
import re
from typing import List

from hardn.exceptions import ValidationError

USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_.-]*\$?$")
VALID_KEY_TYPES = [
    "ssh-rsa",
    "ssh-ed25519",
    "ecdsa-sha2",
    "ssh-dss",
    "sk-ssh-ed25519",
    "sk-ecdsa-sha2",
]


class Validator:
    """Validate values before they reach an adapter."""

    @staticmethod
    def validate_username(username: str) -> None:
        """Validate a Linux login name.

        Args:
            username: Username to validate

        Raises:
            ValidationError: If the name is empty or malformed
        """
        if not username or not username.strip():
            raise ValidationError("username cannot be empty")
        if len(username) > 32:
            raise ValidationError(f"username too long: {username}")
        if not USERNAME_RE.match(username):
            raise ValidationError(f"invalid username format: {username}")

    @staticmethod
    def validate_port(port: int) -> None:
        """Validate port number.

        Raises:
            ValidationError: If port is invalid
        """
        if not (1 <= port <= 65535):
            raise ValidationError(f"invalid port: {port}. Must be between 1-65535")

    @staticmethod
    def validate_public_key(key: str) -> None:
        """Check that a line looks like an OpenSSH public key.

        Raises:
            ValidationError: If the key type is unknown
        """
        line = key.strip()
        if not line or "\n" in line:
            raise ValidationError("SSH public key must be a single non-empty line")
        if not any(line.startswith(kt) for kt in VALID_KEY_TYPES):
            raise ValidationError(f"unsupported SSH key type: {line.split()[0]}")

    @staticmethod
    def validate_source_ip(source: str) -> None:
        """Validate an optional firewall source address or network."""
        if not source or source == "any":
            return
        try:
            ipaddress.ip_network(source, strict=False)
        except ValueError as e:
            raise ValidationError(f"invalid source address: {source}") from e

    @staticmethod
    def validate_nameservers(nameservers: List[str]) -> None:
        """Require at least one well-formed resolver address."""
        if not nameservers:
            raise ValidationError("at least one nameserver is required")
        for ns in nameservers:
            try:
                ipaddress.ip_address(ns)
            except ValueError as e:
                raise ValidationError(f"invalid nameserver address: {ns}") from e
