#!/usr/bin/env python3
"""Receipt location across candidate networks.

Probes networks in a fixed priority order and returns the first receipt
found, so a hash present on more than one network always resolves the same way.
"""

import logging
import re
from collections.abc import Sequence
from typing import NamedTuple

from web3.types import TxReceipt

from .errors import InvalidInput, NotFound
from .networks import Network, NetworkRegistry
from .utils.contract_utility import ProviderPool

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r'^0x[A-Fa-f0-9]{64}$')


def is_valid_tx_hash(tx_hash: str | None) -> bool:
    """Whether a string is a 0x-prefixed 32-byte hex hash."""
    if not tx_hash:
        return False
    return TX_HASH_PATTERN.fullmatch(tx_hash) is not None


class LocatedReceipt(NamedTuple):
    """A receipt paired with the network it was found on."""
    receipt: TxReceipt
    network: Network


class ReceiptLocator:
    """Finds which configured network a transaction hash belongs to."""

    def __init__(self, registry: NetworkRegistry, pool: ProviderPool) -> None:
        """
        Initialize the ReceiptLocator.

        Args:
            registry: Registry supplying the probing order
            pool: Per-query RPC pool
        """
        self.registry = registry
        self.pool = pool

    async def locate(self, tx_hash: str, networks: Sequence[Network]) -> LocatedReceipt:
        """
        Probe networks in order until one returns a receipt.

        Args:
            tx_hash: Transaction hash to look up
            networks: Candidate networks in priority order

        Returns:
            The first receipt found and its network

        Raises:
            InvalidInput: If the hash is malformed (no RPC call is made)
            NotFound: If no network knows the hash
        """
        if not is_valid_tx_hash(tx_hash):
            raise InvalidInput(tx_hash)

        for network in networks:
            utility = self.pool.for_network(network)
            try:
                receipt = await utility.get_receipt(tx_hash)
            except Exception as e:
                logger.warning(f"Receipt lookup failed on {network}: {e}")
                continue

            if receipt is not None:
                logger.info(f"Found {tx_hash[:10]}... on {network}")
                return LocatedReceipt(receipt, network)

            logger.debug(f"{tx_hash[:10]}... not on {network}")

        raise NotFound(tx_hash, tuple(network.chain_id for network in networks))

    async def locate_l1(self, tx_hash: str) -> LocatedReceipt:
        return await self.locate(tx_hash, self.registry.l1_networks)

    async def locate_l2(self, tx_hash: str) -> LocatedReceipt:
        return await self.locate(tx_hash, self.registry.l2_networks)
