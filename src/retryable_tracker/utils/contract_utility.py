import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import TimeExhausted, TransactionNotFound
from web3.types import TxReceipt

from ..errors import TransientRPC
from ..networks import Network

logger = logging.getLogger(__name__)

CONTRACTS_DIR: Path = Path(__file__).parent.parent / "contracts"


@lru_cache(maxsize=None)
def _load_abi(contract_name: str) -> tuple[dict[str, Any], ...]:
    contract_path: Path = (CONTRACTS_DIR / f"{contract_name}.json").resolve()

    with contract_path.open() as file:
        contract_data: dict[str, Any] = json.load(file)

    return tuple(contract_data["abi"])


class ContractUtility:
    """
    Read-only RPC access to one network.

    Wraps an AsyncWeb3 instance for the network's RPC endpoint and loads
    contract ABIs from the packaged contracts folder. Never signs or sends.
    """

    def __init__(self, network: Network, request_timeout: int = 30) -> None:
        """
        Initialize the ContractUtility.

        Args:
            network: Network to connect to (must have an RPC URL)
            request_timeout: HTTP request timeout in seconds
        """
        if not network.rpc_url:
            raise ValueError(f"RPC URL is required for {network}")

        self.network = network
        self.w3 = AsyncWeb3(AsyncHTTPProvider(
            network.rpc_url,
            request_kwargs={'timeout': request_timeout}
        ))

    @staticmethod
    def get_contract_abi(contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the contracts folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        return list(_load_abi(contract_name))

    def get_contract(self, contract_name: str, address: str) -> AsyncContract:
        """Create a contract instance bound to this network."""
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=self.get_contract_abi(contract_name)
        )

    async def get_receipt(self, tx_hash: str) -> TxReceipt | None:
        """Fetch a transaction receipt, returning None if the node doesn't know it."""
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> TxReceipt:
        """Wait a bounded time for a transaction receipt.

        Raises:
            TransientRPC: If no receipt shows up within the timeout
        """
        try:
            return await self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=timeout,
                poll_latency=min(0.5, timeout)
            )
        except TimeExhausted as e:
            logger.debug(f"No receipt for {tx_hash[:10]}... on {self.network} after {timeout}s")
            raise TransientRPC(str(e)) from e

    async def get_block_number(self) -> int:
        return await self.w3.eth.block_number

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        provider = self.w3.provider
        if hasattr(provider, 'disconnect'):
            try:
                await provider.disconnect()
            except Exception as e:
                logger.warning(f"Error closing provider for {self.network}: {e}")


class ProviderPool:
    """
    Per-query cache of ContractUtility instances, one per chain.

    A pool lives for a single lookup so no RPC state is shared across queries.
    """

    def __init__(self, request_timeout: int = 30) -> None:
        self.request_timeout = request_timeout
        self._utilities: dict[int, ContractUtility] = {}

    def for_network(self, network: Network) -> ContractUtility:
        """Get (or lazily create) the utility for a network."""
        if (utility := self._utilities.get(network.chain_id)) is None:
            utility = ContractUtility(network, request_timeout=self.request_timeout)
            self._utilities[network.chain_id] = utility
        return utility

    async def close(self) -> None:
        for utility in self._utilities.values():
            await utility.close()
        self._utilities.clear()
