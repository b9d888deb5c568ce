"""
Retryable tracker implementation.

This module contains the tracker that orchestrates one lookup end to end:
locate the receipt, extract its messages, resolve their statuses and map
them to displays. It also holds the supervisor that keeps at most one
lookup in flight.
"""

import asyncio
import logging
from collections.abc import Callable
from functools import partial

from web3.types import TxReceipt

from .config import MonitoringConfig, TrackerConfig
from .display import receipt_state_display
from .errors import InvalidInput, NotFound, QuerySuperseded, UpstreamFailed
from .message_extractor import MessageExtractor
from .models import L2TxnStatus, LookupResult, ReceiptState
from .networks import Network, NetworkRegistry, NetworkRole
from .outbound_resolver import OutboundResolver
from .receipt_locator import ReceiptLocator, is_valid_tx_hash
from .status_resolver import StatusResolver
from .utils.contract_utility import ProviderPool

logger = logging.getLogger(__name__)


class MessageTracker:
    """
    Single entry point for looking up a transaction's cross-chain messages.

    The tracker holds only the immutable registry and settings. Every lookup
    gets its own provider pool, so concurrent lookups share no RPC state.
    """

    def __init__(
        self,
        registry: NetworkRegistry,
        monitoring: MonitoringConfig | None = None,
        pool_factory: Callable[[], ProviderPool] | None = None
    ):
        """
        Initialize the MessageTracker.

        Args:
            registry: Networks to probe, with RPC endpoints bound
            monitoring: Timing settings
            pool_factory: Creates the per-lookup provider pool
        """
        self.registry = registry
        self.monitoring = monitoring or MonitoringConfig()
        self.pool_factory = pool_factory or partial(ProviderPool, self.monitoring.request_timeout)
        self.extractor = MessageExtractor(registry)

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "MessageTracker":
        """Create a MessageTracker from a loaded configuration."""
        return cls(config.registry(), config.monitoring)

    async def lookup(self, tx_hash: str) -> LookupResult:
        """
        Report the fate of every cross-chain message a transaction created.

        L1 networks are probed first. A hash unknown to every L1 is then
        treated as an L2 transaction sending messages back to L1.

        Args:
            tx_hash: Transaction hash from either side of the bridge

        Returns:
            The receipt-level state with its display and per-message results
        """
        if not is_valid_tx_hash(tx_hash):
            logger.info(f"Rejecting malformed hash {tx_hash!r}")
            return self._result(tx_hash, ReceiptState.INVALID_INPUT_LENGTH)

        pool = self.pool_factory()
        try:
            return await self._lookup(tx_hash, pool)
        except InvalidInput:
            return self._result(tx_hash, ReceiptState.INVALID_INPUT_LENGTH)
        except NotFound as e:
            logger.info(f"{e}")
            return self._result(tx_hash, ReceiptState.NOT_FOUND)
        except UpstreamFailed as e:
            logger.info(f"{e}")
            network = self.registry.get(e.chain_id)
            state = (
                ReceiptState.L2_FAILED
                if network is not None and network.role is NetworkRole.L2
                else ReceiptState.L1_FAILED
            )
            return self._result(tx_hash, state, network)
        finally:
            await pool.close()

    async def _lookup(self, tx_hash: str, pool: ProviderPool) -> LookupResult:
        locator = ReceiptLocator(self.registry, pool)
        try:
            located = await locator.locate_l1(tx_hash)
        except NotFound:
            logger.info(f"{tx_hash[:10]}... not on any L1, trying L2 networks")
            return await self._lookup_outbound(tx_hash, pool)

        return await self._lookup_inbound(tx_hash, located.receipt, located.network, pool)

    async def _lookup_inbound(
        self,
        tx_hash: str,
        receipt: TxReceipt,
        l1_network: Network,
        pool: ProviderPool
    ) -> LookupResult:
        if receipt.get('status') == 0:
            raise UpstreamFailed(tx_hash, l1_network.chain_id)

        messages = self.extractor.extract(receipt, l1_network)
        if not len(messages):
            return self._result(tx_hash, ReceiptState.NO_L1_L2_MESSAGES, l1_network)

        resolver = StatusResolver(pool, self.monitoring.confirmation_timeout)
        displays = await resolver.resolve(messages)
        return self._result(tx_hash, ReceiptState.MESSAGES_FOUND, l1_network, messages=displays)

    async def _lookup_outbound(self, tx_hash: str, pool: ProviderPool) -> LookupResult:
        resolver = OutboundResolver(self.registry, pool, self.monitoring.seconds_per_block)
        search = await resolver.resolve(tx_hash)

        match search.l2_txn_status:
            case L2TxnStatus.NOT_FOUND:
                raise NotFound(tx_hash, tuple(network.chain_id for network in self.registry.networks.values()))
            case L2TxnStatus.FAILURE:
                raise UpstreamFailed(tx_hash, search.network.chain_id)
            case L2TxnStatus.SUCCESS if not search.l2_to_l1_messages:
                return self._result(tx_hash, ReceiptState.NO_L2_L1_MESSAGES, search.network)
            case L2TxnStatus.SUCCESS:
                return self._result(
                    tx_hash,
                    ReceiptState.MESSAGES_FOUND,
                    search.network,
                    outbound_messages=search.l2_to_l1_messages,
                )

    @staticmethod
    def _result(
        tx_hash: str,
        state: ReceiptState,
        network: Network | None = None,
        **results
    ) -> LookupResult:
        return LookupResult(
            tx_hash=tx_hash,
            receipt_state=state,
            receipt_display=receipt_state_display(state),
            network=network,
            **results,
        )


class QuerySupervisor:
    """
    Keeps at most one lookup in flight.

    Submitting a new hash cancels the previous lookup instead of queueing
    behind it, and every lookup runs under a request deadline.
    """

    def __init__(self, tracker: MessageTracker, request_deadline: float | None = None):
        self.tracker = tracker
        self.request_deadline = request_deadline or tracker.monitoring.request_deadline
        self._task: asyncio.Task[LookupResult] | None = None
        self._tx_hash: str | None = None

    @property
    def receipt_state(self) -> ReceiptState:
        """LOADING while a lookup is in flight, EMPTY otherwise."""
        if self._task is not None and not self._task.done():
            return ReceiptState.LOADING
        return ReceiptState.EMPTY

    async def submit(self, tx_hash: str) -> LookupResult:
        """
        Run a lookup, cancelling any lookup still in flight.

        Raises:
            QuerySuperseded: If a newer submission cancelled this one
            TimeoutError: If the lookup exceeds the request deadline
        """
        if self._task is not None and not self._task.done():
            logger.info(f"Cancelling lookup of {self._tx_hash} in favour of {tx_hash}")
            self._task.cancel()

        task = asyncio.create_task(
            asyncio.wait_for(self.tracker.lookup(tx_hash), timeout=self.request_deadline)
        )
        self._task, self._tx_hash = task, tx_hash

        try:
            return await task
        except asyncio.CancelledError:
            if self._task is not task:
                raise QuerySuperseded(tx_hash) from None
            raise
        finally:
            if self._task is task:
                self._task, self._tx_hash = None, None
