"""Composite hardening: user, sshd, firewall and DNS in one run."""

from typing import Optional

import structlog

from hardn.exceptions import HardnError
from hardn.managers import DNSManager, FirewallManager, SSHManager, UserManager
from hardn.models import HardeningConfig
from hardn.services import SecurityFeatureService

logger = structlog.get_logger(__name__)

HARDENING_DOMAIN = "lan"


class SecurityManager:
    """Applies a HardeningConfig in a fixed order, stopping at the first error.

    The run is not transactional: steps completed before a failure stay
    applied, and the backup directory holds the previous file versions.
    """

    def __init__(
        self,
        user_manager: UserManager,
        ssh_manager: SSHManager,
        firewall_manager: FirewallManager,
        dns_manager: DNSManager,
        features: Optional[SecurityFeatureService] = None,
    ) -> None:
        self.user_manager = user_manager
        self.ssh_manager = ssh_manager
        self.firewall_manager = firewall_manager
        self.dns_manager = dns_manager
        self.features = features

    def harden_system(self, config: HardeningConfig) -> None:
        """Run the hardening steps.

        1. Create (or augment) the sudo user.
        2. Rewrite the sshd policy; root login is always refused.
        3. Apply the secure firewall baseline.
        4. Point the resolver at the configured nameservers.

        Args:
            config: Composite hardening request

        Raises:
            HardnError: The first step failure, unchanged
        """
        logger.info(
            "hardening_started",
            user=config.username or None,
            ssh_port=config.ssh_port,
            firewall=config.enable_firewall,
            dns=config.configure_dns,
        )

        step = "user"
        try:
            if config.create_user and config.username:
                self.user_manager.create_user(
                    config.username,
                    True,
                    config.sudo_no_password,
                    config.ssh_keys,
                )

            step = "ssh"
            self.ssh_manager.configure_ssh(
                config.ssh_port,
                config.ssh_listen_addresses,
                False,
                config.ssh_allowed_users,
                config.ssh_key_paths,
            )

            if config.enable_firewall:
                step = "firewall"
                self.firewall_manager.configure_secure_firewall(
                    config.ssh_port,
                    config.allowed_ports,
                    config.firewall_profiles,
                )

            if config.configure_dns:
                step = "dns"
                self.dns_manager.configure_dns(config.nameservers, HARDENING_DOMAIN)

        except HardnError as e:
            logger.error("hardening_failed", step=step, error=str(e))
            raise

        logger.info("hardening_completed")

    def apply_security_features(self, config: HardeningConfig) -> None:
        """Install the optional features the config enables.

        Raises:
            HardnError: The first feature that fails
        """
        if self.features is None:
            return
        if config.enable_app_armor:
            self.features.setup_apparmor()
        if config.enable_lynis:
            self.features.setup_lynis()
        if config.enable_unattended_upgrades:
            self.features.setup_unattended_upgrades()
