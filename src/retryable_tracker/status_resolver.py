"""
Status resolution for L1 to L2 messages.

This module classifies every message extracted from an L1 transaction and
maps it to a StatusDisplay, applying the deposit-disguise reclassification
for retryables that only move ETH.
"""

import asyncio
import logging
from typing import Any, Coroutine, Iterable, TypeVar

from .display import deposit_status_display, message_status_display
from .errors import TransientRPC
from .message_extractor import ExtractedMessages
from .messages import ClassicRetryableTicket, EthDeposit, RetryableTicket
from .models import L1ToL2MessageStatus, MessageReadResult, StatusDisplay
from .utils.contract_utility import ProviderPool

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def resolve_concurrently(coros: Iterable[Coroutine[Any, Any, T]]) -> tuple[T, ...]:
    """Run coroutines as sibling tasks, returning their results in order.

    The first failure cancels the remaining tasks and is re-raised as is.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coro) for coro in coros]
    except ExceptionGroup as eg:
        raise eg.exceptions[0] from None
    return tuple(task.result() for task in tasks)


class StatusResolver:
    """
    Resolves extracted messages to user-facing displays.

    Each message is resolved independently against its own target network,
    and all of them run concurrently.
    """

    def __init__(self, pool: ProviderPool, confirmation_timeout: float = 1.0):
        """
        Initialize the StatusResolver.

        Args:
            pool: Per-query RPC pool
            confirmation_timeout: Seconds to wait for a creation or deposit receipt
        """
        self.pool = pool
        self.confirmation_timeout = confirmation_timeout

    async def resolve(self, messages: ExtractedMessages) -> tuple[StatusDisplay, ...]:
        """
        Resolve every message of one L1 transaction.

        Args:
            messages: Messages produced by the extractor

        Returns:
            Displays ordered retryables first, then classic retryables, then deposits
        """
        tasks = [
            *(self.resolve_retryable(ticket) for ticket in messages.retryables),
            *(self.resolve_classic_retryable(ticket) for ticket in messages.classic_retryables),
            *(self.resolve_deposit(deposit) for deposit in messages.deposits),
        ]
        if not tasks:
            return ()

        return await resolve_concurrently(tasks)

    async def resolve_retryable(self, ticket: RetryableTicket) -> StatusDisplay:
        l2 = self.pool.for_network(ticket.network)
        try:
            result = await ticket.wait_for_status(l2, self.confirmation_timeout)
        except TransientRPC:
            result = MessageReadResult(L1ToL2MessageStatus.NOT_YET_CREATED)

        logger.info(
            f"Retryable {ticket.message_id[:10]}... on {ticket.network}: {result.status.name}"
        )
        info = message_status_display(
            result.status, ticket.generation, ticket.looks_like_eth_deposit
        )
        return StatusDisplay.build(info, ticket, result.l2_tx_hash)

    async def resolve_classic_retryable(self, ticket: ClassicRetryableTicket) -> StatusDisplay:
        result = await ticket.status(self.pool.for_network(ticket.network))

        logger.info(
            f"Classic retryable {ticket.message_id[:10]}... on {ticket.network}: {result.status.name}"
        )
        info = message_status_display(
            result.status, ticket.generation, ticket.looks_like_eth_deposit
        )
        return StatusDisplay.build(info, ticket, result.l2_tx_hash)

    async def resolve_deposit(self, deposit: EthDeposit) -> StatusDisplay:
        # a pending deposit and a failed one both end up here as failures
        try:
            receipt = await deposit.wait(self.pool.for_network(deposit.network), self.confirmation_timeout)
            succeeded = receipt.get('status') == 1
        except TransientRPC:
            succeeded = False

        logger.info(
            f"ETH deposit {deposit.message_id[:10]}... on {deposit.network}: "
            f"{'completed' if succeeded else 'not confirmed'}"
        )
        return StatusDisplay.build(
            deposit_status_display(succeeded),
            deposit,
            deposit.l2_deposit_tx_hash if succeeded else None,
        )
