#!/usr/bin/env python3
"""Network registry for the retryable tracker.

This module provides immutable network descriptors for the L1 and L2 chains
the tracker can probe, and the registry that maps chain IDs to them. The
registry is built once (see config.py) and shared read-only by every query.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from urllib.parse import urlparse

from web3 import Web3

from .errors import UnsupportedNetwork

logger = logging.getLogger(__name__)


class NetworkRole(Enum):
    """Which side of the bridge a network sits on."""
    L1 = "L1"
    L2 = "L2"


def _checksum(label: str, address: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label} address: {address}")
    return Web3.to_checksum_address(address)


@dataclass(frozen=True, slots=True)
class EthBridge:
    """Core bridge contracts of an L2, all deployed on its parent L1.

    Attributes:
        inbox: Inbox contract receiving L1 to L2 message submissions
        bridge: Bridge contract emitting MessageDelivered events
        outbox: Outbox contract executing L2 to L1 messages
        rollup: Rollup contract tracking assertion nodes
    """

    inbox: str
    bridge: str
    outbox: str
    rollup: str

    def __post_init__(self) -> None:
        """Validate and checksum bridge addresses."""
        for name in ("inbox", "bridge", "outbox", "rollup"):
            object.__setattr__(self, name, _checksum(name, getattr(self, name)))


@dataclass(frozen=True, slots=True)
class Network:
    """Descriptor of one supported chain.

    Attributes:
        chain_id: Chain ID of the network
        name: Human-readable network name
        role: L1 or L2
        rpc_url: HTTP(S) RPC endpoint (empty until configured)
        partner_chain_ids: L2 chains of an L1, or the single parent L1 of an L2
        explorer_url: Block explorer base URL, without trailing slash
        eth_bridge: Bridge contracts (L2 only)
        nitro_genesis_l1_block: First L1 block handled by the nitro bridge (L2 only)
        confirm_period_blocks: Challenge period length in L1 blocks (L2 only)
    """

    chain_id: int
    name: str
    role: NetworkRole
    explorer_url: str
    partner_chain_ids: tuple[int, ...] = ()
    rpc_url: str = ""
    eth_bridge: EthBridge | None = None
    nitro_genesis_l1_block: int = 0
    confirm_period_blocks: int = 0

    def __post_init__(self) -> None:
        """Validate the network descriptor."""
        if self.chain_id <= 0:
            raise ValueError(f"Chain ID must be positive, got {self.chain_id}")

        if self.rpc_url:
            parsed = urlparse(self.rpc_url)
            if parsed.scheme not in ('http', 'https'):
                raise ValueError(
                    f"Invalid RPC URL scheme for chain {self.chain_id}: {parsed.scheme}. "
                    "Expected http or https"
                )

        object.__setattr__(self, 'explorer_url', self.explorer_url.rstrip('/'))

        match self.role:
            case NetworkRole.L2:
                if len(self.partner_chain_ids) != 1:
                    raise ValueError(
                        f"L2 network {self.chain_id} must have exactly one parent chain, "
                        f"got {self.partner_chain_ids}"
                    )
                if self.eth_bridge is None:
                    raise ValueError(f"L2 network {self.chain_id} requires bridge contracts")
            case NetworkRole.L1:
                if self.eth_bridge is not None:
                    raise ValueError(f"L1 network {self.chain_id} cannot carry bridge contracts")

    @property
    def parent_chain_id(self) -> int:
        """Parent L1 chain ID of an L2 network."""
        if self.role is not NetworkRole.L2:
            raise ValueError(f"Network {self.chain_id} is not an L2")
        return self.partner_chain_ids[0]

    def tx_url(self, tx_hash: str) -> str:
        """Explorer URL for a transaction on this network."""
        return f"{self.explorer_url}/tx/{tx_hash}"

    def with_rpc_url(self, rpc_url: str) -> "Network":
        """Create a copy of this descriptor bound to an RPC endpoint."""
        return replace(self, rpc_url=rpc_url)

    def __str__(self) -> str:
        return f"{self.name} ({self.chain_id})"


# Built-in descriptors. RPC endpoints are bound by TrackerConfig.
MAINNET = Network(
    chain_id=1,
    name="Mainnet",
    role=NetworkRole.L1,
    explorer_url="https://etherscan.io",
    partner_chain_ids=(42161, 42170),
)

GOERLI = Network(
    chain_id=5,
    name="Goerli",
    role=NetworkRole.L1,
    explorer_url="https://goerli.etherscan.io",
    partner_chain_ids=(421613,),
)

ARBITRUM_ONE = Network(
    chain_id=42161,
    name="Arbitrum One",
    role=NetworkRole.L2,
    explorer_url="https://arbiscan.io",
    partner_chain_ids=(1,),
    eth_bridge=EthBridge(
        inbox="0x4Dbd4fc535Ac27206064B68FfCf827b0A60BAB3f",
        bridge="0x8315177aB297bA92A06054cE80a67Ed4DBd7ed3a",
        outbox="0x0B9857ae2D4A3DBe74ffE1d7DF045bb7F96E4840",
        rollup="0x5eF0D09d1E6204141B4d37530808eD19f60FBa35",
    ),
    nitro_genesis_l1_block=15447158,
    confirm_period_blocks=45818,
)

ARBITRUM_NOVA = Network(
    chain_id=42170,
    name="Arbitrum Nova",
    role=NetworkRole.L2,
    explorer_url="https://nova.arbiscan.io",
    partner_chain_ids=(1,),
    eth_bridge=EthBridge(
        inbox="0xc4448b71118c9071Bcb9734A0EAc55D18A153949",
        bridge="0xC1Ebd02f738644983b6C4B2d440b8e77DdE276Bd",
        outbox="0xD4B80C3D7240325D18E645B49e6535A3Bf95cc58",
        rollup="0xFb209827c58283535b744575e11953DCC4bEAD88",
    ),
    nitro_genesis_l1_block=0,
    confirm_period_blocks=45818,
)

ARBITRUM_GOERLI = Network(
    chain_id=421613,
    name="Arbitrum Goerli",
    role=NetworkRole.L2,
    explorer_url="https://goerli.arbiscan.io",
    partner_chain_ids=(5,),
    eth_bridge=EthBridge(
        inbox="0x6BEbC4925716945D46F0Ec336D5C2564F419682C",
        bridge="0xaf4159A80B6Cc41ED517DB1c453d1Ef5C2e4dB72",
        outbox="0x45Af9Ed1D03703e480CE7d328fB684bb67DA5049",
        rollup="0x45e5cAea8768F42B385A366D3551Ad1e0cbFAb17",
    ),
    nitro_genesis_l1_block=0,
    confirm_period_blocks=20,
)

DEFAULT_NETWORKS: tuple[Network, ...] = (
    MAINNET,
    GOERLI,
    ARBITRUM_ONE,
    ARBITRUM_NOVA,
    ARBITRUM_GOERLI,
)


@dataclass(frozen=True)
class NetworkRegistry:
    """Immutable chain ID to Network lookup table.

    Probing order for each direction is the order networks were given in.
    """

    networks: Mapping[int, Network] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze the mapping and check partner links point the right way."""
        object.__setattr__(self, 'networks', MappingProxyType(dict(self.networks)))

        for chain_id, network in self.networks.items():
            if chain_id != network.chain_id:
                raise ValueError(
                    f"Registry key {chain_id} does not match network chain id {network.chain_id}"
                )
            for partner_id in network.partner_chain_ids:
                partner = self.networks.get(partner_id)
                if partner is not None and partner.role is network.role:
                    raise ValueError(
                        f"Partner {partner_id} of chain {chain_id} has the same role {network.role.value}"
                    )

    @classmethod
    def from_networks(cls, networks: Iterable[Network]) -> "NetworkRegistry":
        """Build a registry from descriptors, keeping their order."""
        return cls({network.chain_id: network for network in networks})

    def get(self, chain_id: int) -> Network | None:
        """Look up a network, returning None when unknown."""
        return self.networks.get(chain_id)

    def require(self, chain_id: int) -> Network:
        """Look up a network.

        Raises:
            UnsupportedNetwork: If the chain ID is not registered
        """
        if (network := self.networks.get(chain_id)) is None:
            raise UnsupportedNetwork(chain_id)
        return network

    def by_role(self, role: NetworkRole) -> tuple[Network, ...]:
        """Networks with the given role, in probing priority order."""
        return tuple(n for n in self.networks.values() if n.role is role)

    @property
    def l1_networks(self) -> tuple[Network, ...]:
        return self.by_role(NetworkRole.L1)

    @property
    def l2_networks(self) -> tuple[Network, ...]:
        return self.by_role(NetworkRole.L2)

    def partner_chain_ids(self, network: Network) -> tuple[int, ...]:
        """Deduplicated partner chain IDs of a network, in declared order."""
        return tuple(dict.fromkeys(network.partner_chain_ids))

    def log_registry(self) -> None:
        """Log the registry contents for debugging."""
        logger.info("=" * 60)
        logger.info("Network Registry")
        logger.info("=" * 60)
        for network in self.networks.values():
            logger.info(f"{network.role.value} {network}:")
            logger.info(f"  RPC URL: {network.rpc_url or '[NOT SET]'}")
            logger.info(f"  Partners: {list(network.partner_chain_ids)}")
            if network.eth_bridge:
                logger.info(f"  Inbox: {network.eth_bridge.inbox}")
        logger.info("=" * 60)
