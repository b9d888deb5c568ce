"""
Resolution of L2 to L1 messages.

This module finds the outbound messages an L2 transaction emitted through
ArbSys, reads their outbox status on the parent L1, and estimates when the
challenge period ends for those still waiting on it.
"""

import logging
from typing import NamedTuple

from eth_abi import decode
from web3 import Web3
from web3.types import TxReceipt

from .errors import NotFound, TransientRPC
from .messages import ARB_SYS_ADDRESS, NODE_INTERFACE_ADDRESS, OutboundMessage
from .models import (
    ConfirmationInfo,
    L2ToL1MessageStatus,
    L2ToL1SearchResult,
    L2TxnStatus,
    OutboundMessageResult,
)
from .networks import Network, NetworkRegistry
from .receipt_locator import ReceiptLocator
from .status_resolver import resolve_concurrently
from .utils.contract_utility import ContractUtility, ProviderPool
from .utils.event_utility import (
    event_topic,
    log_address,
    log_topics,
    parse_event_topic_as_address,
    parse_event_topic_as_int,
    parse_quantity,
    to_bytes,
    to_hex32,
)

logger = logging.getLogger(__name__)

L2_TO_L1_TX_TOPIC = event_topic(
    "L2ToL1Tx(address,address,uint256,uint256,uint256,uint256,uint256,uint256,bytes)"
)

_ASSERTION_TYPE = "(((bytes32[2],uint64[2]),uint8),((bytes32[2],uint64[2]),uint8),uint64)"
NODE_CREATED_TOPIC = event_topic(
    f"NodeCreated(uint64,bytes32,bytes32,bytes32,{_ASSERTION_TYPE},bytes32,bytes32,uint256)"
)

# L1 blocks allowed for a node to be created and then confirmed
ASSERTION_CREATED_PADDING = 50
ASSERTION_CONFIRMED_PADDING = 20

DEFAULT_SECONDS_PER_BLOCK = 15

BATCH_NOT_FOUND_ERROR = "batch doesn't exist"


def calculate_eta(deadline_block: int, current_block: int, seconds_per_block: int = DEFAULT_SECONDS_PER_BLOCK) -> int:
    """Seconds until an L1 block is reached, never negative."""
    return max(0, deadline_block - current_block) * seconds_per_block


def is_batch_not_found(error: Exception) -> bool:
    """Whether a node error says the message's batch hasn't been posted yet."""
    texts = [str(error), *(str(arg) for arg in error.args)]
    if (message := getattr(error, 'message', None)) is not None:
        texts.append(str(message))
    return any(BATCH_NOT_FOUND_ERROR in text for text in texts)


def decode_outbound_messages(
    receipt: TxReceipt,
    source_network: Network,
    target_network: Network,
) -> tuple[OutboundMessage, ...]:
    """
    Decode the ArbSys L2ToL1Tx events of an L2 receipt.

    Args:
        receipt: Receipt of the L2 transaction
        source_network: L2 network the receipt was found on
        target_network: Parent L1 network

    Returns:
        Outbound messages in log order
    """
    tx_hash = to_hex32(receipt['transactionHash'])
    messages: list[OutboundMessage] = []

    for log in receipt.get('logs', []):
        topics = log_topics(log)
        if log_address(log) != ARB_SYS_ADDRESS.lower() or len(topics) < 4 or topics[0] != L2_TO_L1_TX_TOPIC:
            continue

        caller, arb_block_num, eth_block_num, timestamp, callvalue, data = decode(
            ['address', 'uint256', 'uint256', 'uint256', 'uint256', 'bytes'],
            to_bytes(log.get('data'))
        )
        messages.append(OutboundMessage(
            tx_hash=tx_hash,
            network=target_network,
            source_network=source_network,
            caller=Web3.to_checksum_address(caller),
            destination=parse_event_topic_as_address(topics[1]),
            hash=parse_event_topic_as_int(topics[2]),
            position=parse_event_topic_as_int(topics[3]),
            arb_block_num=arb_block_num,
            eth_block_num=eth_block_num,
            timestamp=timestamp,
            callvalue=callvalue,
            data=data,
        ))

    return tuple(messages)


class RollupNode(NamedTuple):
    """The parts of a rollup assertion node the ETA needs."""
    node_num: int
    deadline_block: int
    created_at_block: int


class RollupReader:
    """
    Read-only view of an L2's rollup contract on L1.

    Send counts are read from the L2 block each node asserted, found through
    the node's NodeCreated event.
    """

    def __init__(self, l1: ContractUtility, l2: ContractUtility, l2_network: Network) -> None:
        self.l1 = l1
        self.l2 = l2
        self.l2_network = l2_network
        self.rollup = l1.get_contract("RollupCore", l2_network.eth_bridge.rollup)
        self._send_counts: dict[int, int] = {}

    async def latest_confirmed(self) -> int:
        return await self.rollup.functions.latestConfirmed().call()

    async def latest_node_created(self) -> int:
        return await self.rollup.functions.latestNodeCreated().call()

    async def confirm_period_blocks(self) -> int:
        if self.l2_network.confirm_period_blocks:
            return self.l2_network.confirm_period_blocks
        return await self.rollup.functions.confirmPeriodBlocks().call()

    async def get_node(self, node_num: int) -> RollupNode:
        node = await self.rollup.functions.getNode(node_num).call()
        return RollupNode(node_num=node_num, deadline_block=node[4], created_at_block=node[10])

    async def send_count(self, node_num: int) -> int:
        """
        Number of L2 to L1 messages sent up to the L2 block a node asserted.

        Raises:
            ValueError: If the node's NodeCreated event cannot be found
        """
        if node_num in self._send_counts:
            return self._send_counts[node_num]

        node = await self.get_node(node_num)
        logs = await self.l1.w3.eth.get_logs({
            'address': self.rollup.address,
            'topics': [Web3.to_hex(NODE_CREATED_TOPIC), Web3.to_hex(node_num.to_bytes(32, 'big'))],
            'fromBlock': node.created_at_block,
            'toBlock': node.created_at_block,
        })
        if not logs:
            raise ValueError(f"No NodeCreated event for node {node_num} at L1 block {node.created_at_block}")

        _, assertion, _, _, _ = decode(
            ['bytes32', _ASSERTION_TYPE, 'bytes32', 'bytes32', 'uint256'],
            to_bytes(logs[0].get('data'))
        )
        # afterState.globalState.bytes32Vals[0]
        l2_block_hash = assertion[1][0][0][0]
        l2_block = await self.l2.w3.eth.get_block(Web3.to_hex(l2_block_hash))

        send_count = parse_quantity(l2_block['sendCount'])
        self._send_counts[node_num] = send_count
        return send_count

    async def first_node_covering(self, position: int, after_node: int, latest_node: int) -> int | None:
        """
        Binary search the earliest node in (after_node, latest_node] whose send
        count exceeds a message position.

        Returns:
            The node number, or None if no created node covers the position yet
        """
        if latest_node <= after_node or await self.send_count(latest_node) <= position:
            return None

        low, high = after_node + 1, latest_node
        while low < high:
            mid = (low + high) // 2
            if await self.send_count(mid) > position:
                high = mid
            else:
                low = mid + 1
        return low


class OutboundResolver:
    """Finds and resolves the L2 to L1 messages of an L2 transaction."""

    def __init__(
        self,
        registry: NetworkRegistry,
        pool: ProviderPool,
        seconds_per_block: int = DEFAULT_SECONDS_PER_BLOCK
    ) -> None:
        """
        Initialize the OutboundResolver.

        Args:
            registry: Network registry
            pool: Per-query RPC pool
            seconds_per_block: L1 block time used for the ETA
        """
        self.registry = registry
        self.pool = pool
        self.seconds_per_block = seconds_per_block

    async def resolve(self, tx_hash: str) -> L2ToL1SearchResult:
        """
        Probe L2 networks for a transaction and resolve its outbound messages.

        Args:
            tx_hash: L2 transaction hash

        Returns:
            NOT_FOUND if no L2 knows the hash, FAILURE if it reverted,
            otherwise SUCCESS with one result per message

        Raises:
            InvalidInput: If the hash is malformed
        """
        try:
            located = await ReceiptLocator(self.registry, self.pool).locate_l2(tx_hash)
        except NotFound:
            return L2ToL1SearchResult(l2_txn_status=L2TxnStatus.NOT_FOUND, l2_tx_hash=tx_hash)

        return await self.resolve_receipt(tx_hash, located.receipt, located.network)

    async def resolve_receipt(self, tx_hash: str, receipt: TxReceipt, l2_network: Network) -> L2ToL1SearchResult:
        if receipt.get('status') == 0:
            logger.info(f"L2 transaction {tx_hash[:10]}... reverted on {l2_network}")
            return L2ToL1SearchResult(
                l2_txn_status=L2TxnStatus.FAILURE,
                l2_tx_hash=tx_hash,
                network=l2_network,
            )

        l1_network = self.registry.require(l2_network.parent_chain_id)
        messages = decode_outbound_messages(receipt, l2_network, l1_network)
        logger.info(f"Found {len(messages)} L2 to L1 messages in {tx_hash[:10]}... on {l2_network}")

        results: tuple[OutboundMessageResult, ...] = ()
        if messages:
            current_l1_block = await self.pool.for_network(l1_network).get_block_number()
            results = await resolve_concurrently(
                self.resolve_message(message, current_l1_block) for message in messages
            )

        return L2ToL1SearchResult(
            l2_txn_status=L2TxnStatus.SUCCESS,
            l2_tx_hash=tx_hash,
            l2_to_l1_messages=results,
            network=l2_network,
        )

    async def resolve_message(self, message: OutboundMessage, current_l1_block: int) -> OutboundMessageResult:
        """
        Resolve one message's status and, while unconfirmed, its ETA.

        A "batch doesn't exist" node error means the message is simply not
        posted yet, so it resolves to UNCONFIRMED without an ETA.
        """
        rollup = self._rollup_reader(message)
        try:
            status = await self.status(message, rollup)
            if status is not L2ToL1MessageStatus.UNCONFIRMED:
                return OutboundMessageResult(message=message, status=status)

            deadline_block = await self.first_executable_block(message, rollup, current_l1_block)
        except TransientRPC as e:
            logger.warning(f"{message} not yet in a batch: {e}")
            return OutboundMessageResult(message=message, status=L2ToL1MessageStatus.UNCONFIRMED)

        return OutboundMessageResult(
            message=message,
            status=L2ToL1MessageStatus.UNCONFIRMED,
            confirmation_info=ConfirmationInfo(
                deadline_block=deadline_block,
                eta_seconds=calculate_eta(deadline_block, current_l1_block, self.seconds_per_block),
            ),
        )

    async def status(self, message: OutboundMessage, rollup: RollupReader) -> L2ToL1MessageStatus:
        """
        Read the outbox status of a message.

        Raises:
            TransientRPC: If the message's batch hasn't been posted yet
        """
        l1 = self.pool.for_network(message.network)
        l2 = self.pool.for_network(message.source_network)

        outbox = l1.get_contract("Outbox", message.source_network.eth_bridge.outbox)
        if await outbox.functions.isSpent(message.position).call():
            return L2ToL1MessageStatus.EXECUTED

        node_interface = l2.get_contract("NodeInterface", NODE_INTERFACE_ADDRESS)
        try:
            await node_interface.functions.findBatchContainingBlock(message.arb_block_num).call()
        except Exception as e:
            if is_batch_not_found(e):
                raise TransientRPC(str(e)) from e
            raise

        if await rollup.send_count(await rollup.latest_confirmed()) > message.position:
            return L2ToL1MessageStatus.CONFIRMED
        return L2ToL1MessageStatus.UNCONFIRMED

    async def first_executable_block(
        self,
        message: OutboundMessage,
        rollup: RollupReader,
        current_l1_block: int
    ) -> int:
        """First L1 block at which an unconfirmed message can be executed."""
        latest_confirmed, latest_created = await resolve_concurrently(
            (rollup.latest_confirmed(), rollup.latest_node_created())
        )
        node_num = await rollup.first_node_covering(message.position, latest_confirmed, latest_created)

        if node_num is None:
            # not asserted yet: a node still has to be created and then confirmed
            confirm_period = await rollup.confirm_period_blocks()
            return current_l1_block + confirm_period + ASSERTION_CREATED_PADDING + ASSERTION_CONFIRMED_PADDING

        node = await rollup.get_node(node_num)
        return node.deadline_block + ASSERTION_CONFIRMED_PADDING

    def _rollup_reader(self, message: OutboundMessage) -> RollupReader:
        return RollupReader(
            self.pool.for_network(message.network),
            self.pool.for_network(message.source_network),
            message.source_network,
        )
