#!/usr/bin/env python3
"""Configuration management for the retryable tracker.

This module provides frozen configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
and turned into the NetworkRegistry the tracker is built with.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from urllib.parse import urlparse

from .networks import DEFAULT_NETWORKS, Network, NetworkRegistry, NetworkRole

# Get logger for this module
logger = logging.getLogger(__name__)

INFURA_URLS: Mapping[int, str] = MappingProxyType({
    1: "https://mainnet.infura.io/v3/{key}",
    5: "https://goerli.infura.io/v3/{key}",
})

PUBLIC_L2_RPC_URLS: Mapping[int, str] = MappingProxyType({
    42161: "https://arb1.arbitrum.io/rpc",
    42170: "https://nova.arbitrum.io/rpc",
    421613: "https://goerli-rollup.arbitrum.io/rpc",
})


def _validate_rpc_url(chain_id: int, rpc_url: str) -> None:
    parsed = urlparse(rpc_url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ValueError(
            f"Invalid RPC URL for chain {chain_id}: {rpc_url!r}. "
            "Expected an http or https URL"
        )


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Timing settings for a lookup."""
    confirmation_timeout: float = 1.0  # seconds to wait for an L2 receipt
    request_deadline: float = 60.0  # seconds for a whole lookup
    request_timeout: int = 30  # HTTP request timeout in seconds
    seconds_per_block: int = 15  # L1 block time used for ETAs

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.confirmation_timeout <= 0:
            raise ValueError(f"Confirmation timeout must be positive, got {self.confirmation_timeout}")
        if self.confirmation_timeout > 60:
            raise ValueError(f"Confirmation timeout too long (max 60s), got {self.confirmation_timeout}")

        if self.request_deadline <= 0:
            raise ValueError(f"Request deadline must be positive, got {self.request_deadline}")
        if self.request_deadline < self.confirmation_timeout:
            raise ValueError(
                f"Request deadline ({self.request_deadline}s) must not be shorter than "
                f"the confirmation timeout ({self.confirmation_timeout}s)"
            )

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.seconds_per_block <= 0:
            raise ValueError(f"Seconds per block must be positive, got {self.seconds_per_block}")


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    """Main configuration for the tracker.

    Attributes:
        rpc_urls: RPC endpoint per chain ID, one for every supported network
        monitoring: Timing settings
        networks: Network descriptors to bind the endpoints to
    """

    rpc_urls: Mapping[int, str]
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    networks: tuple[Network, ...] = DEFAULT_NETWORKS

    def __post_init__(self) -> None:
        """Validate that every network has a usable endpoint."""
        for network in self.networks:
            if not (rpc_url := self.rpc_urls.get(network.chain_id)):
                raise ValueError(f"No RPC URL configured for {network}")
            _validate_rpc_url(network.chain_id, rpc_url)

        object.__setattr__(self, 'rpc_urls', MappingProxyType(dict(self.rpc_urls)))

    @classmethod
    def from_env(cls) -> "TrackerConfig":
        """Load configuration from environment variables.

        Returns:
            TrackerConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        infura_key = os.environ.get("INFURA_KEY", "")

        rpc_urls: dict[int, str] = {}
        for network in DEFAULT_NETWORKS:
            match network.role:
                case NetworkRole.L1:
                    override = os.environ.get(f"L1_RPC_URL_{network.chain_id}")
                    if override:
                        rpc_urls[network.chain_id] = override
                    elif infura_key:
                        rpc_urls[network.chain_id] = INFURA_URLS[network.chain_id].format(key=infura_key)
                    else:
                        raise ValueError(
                            f"INFURA_KEY environment variable is required unless "
                            f"L1_RPC_URL_{network.chain_id} is set. "
                            f"No endpoint available for {network}"
                        )
                case NetworkRole.L2:
                    rpc_urls[network.chain_id] = os.environ.get(
                        f"L2_RPC_URL_{network.chain_id}",
                        PUBLIC_L2_RPC_URLS[network.chain_id]
                    )

        monitoring_config = MonitoringConfig(
            confirmation_timeout=float(os.environ.get("CONFIRMATION_TIMEOUT", "1")),
            request_deadline=float(os.environ.get("REQUEST_DEADLINE", "60")),
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
            seconds_per_block=int(os.environ.get("SECONDS_PER_BLOCK", "15")),
        )

        return cls(rpc_urls=rpc_urls, monitoring=monitoring_config)

    def registry(self) -> NetworkRegistry:
        """Build the network registry with endpoints bound."""
        return NetworkRegistry.from_networks(
            network.with_rpc_url(self.rpc_urls[network.chain_id])
            for network in self.networks
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format, hiding API keys."""
        logger.info("=" * 60)
        logger.info("Retryable Tracker Configuration")
        logger.info("=" * 60)

        logger.info("Networks:")
        for network in self.networks:
            logger.info(f"  {network}: {_redact(self.rpc_urls[network.chain_id])}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Confirmation Timeout: {self.monitoring.confirmation_timeout} seconds")
        logger.info(f"  Request Deadline: {self.monitoring.request_deadline} seconds")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")
        logger.info(f"  Seconds Per Block: {self.monitoring.seconds_per_block}")

        logger.info("=" * 60)


def _redact(rpc_url: str) -> str:
    """Hide the last path segment of Infura-style URLs, which is the API key."""
    parsed = urlparse(rpc_url)
    if "/v3/" in parsed.path:
        return f"{parsed.scheme}://{parsed.netloc}/v3/[REDACTED]"
    return rpc_url
