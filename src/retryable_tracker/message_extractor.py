#!/usr/bin/env python3
"""Message extraction for L1 transactions.

This module decodes the bridge messages an L1 transaction submitted to its
partner L2 networks. For each partner addressed by the transaction it detects
the bridge protocol generation once and decodes every message with that
generation's rules only.
"""

import logging
from dataclasses import dataclass
from typing import Any, NamedTuple

from eth_abi import decode
from web3 import Web3
from web3.types import TxReceipt

from .messages import ClassicRetryableTicket, EthDeposit, RetryableTicket
from .models import ProtocolGeneration
from .networks import Network, NetworkRegistry
from .utils.event_utility import (
    event_topic,
    log_address,
    log_topics,
    parse_event_topic_as_int,
    to_bytes,
    to_hex32,
)

logger = logging.getLogger(__name__)

INBOX_MESSAGE_DELIVERED_TOPIC = event_topic("InboxMessageDelivered(uint256,bytes)")
MESSAGE_DELIVERED_TOPIC = event_topic(
    "MessageDelivered(uint256,bytes32,address,uint8,address,bytes32,uint256,uint64)"
)
CLASSIC_MESSAGE_DELIVERED_TOPIC = event_topic(
    "MessageDelivered(uint256,bytes32,address,uint8,address,bytes32)"
)

# L1MessageType values used by the bridge
SUBMIT_RETRYABLE_KIND = 9
ETH_DEPOSIT_KIND = 12


class BridgeMessage(NamedTuple):
    """Decoded bridge MessageDelivered event."""
    message_index: int
    inbox: str
    kind: int
    sender: str
    base_fee_l1: int


class InboxMessage(NamedTuple):
    """Decoded inbox InboxMessageDelivered event."""
    message_num: int
    data: bytes


@dataclass(frozen=True, slots=True)
class ExtractedMessages:
    """Messages created by one L1 transaction, grouped by variant."""
    retryables: tuple[RetryableTicket, ...] = ()
    classic_retryables: tuple[ClassicRetryableTicket, ...] = ()
    deposits: tuple[EthDeposit, ...] = ()

    def __len__(self) -> int:
        return len(self.retryables) + len(self.classic_retryables) + len(self.deposits)

    def merge(self, other: "ExtractedMessages") -> "ExtractedMessages":
        """Concatenate with another partner's messages."""
        return ExtractedMessages(
            retryables=self.retryables + other.retryables,
            classic_retryables=self.classic_retryables + other.classic_retryables,
            deposits=self.deposits + other.deposits,
        )


def _receipt_tx_hash(receipt: TxReceipt) -> str:
    return to_hex32(receipt['transactionHash'])


class MessageExtractor:
    """Decodes retryables and ETH deposits from an L1 receipt."""

    def __init__(self, registry: NetworkRegistry) -> None:
        """
        Initialize the MessageExtractor.

        Args:
            registry: Registry used to resolve partner L2 networks
        """
        self.registry = registry

    def extract(self, receipt: TxReceipt, l1_network: Network) -> ExtractedMessages:
        """
        Extract every L1 to L2 message a transaction created.

        Args:
            receipt: Receipt of the L1 transaction
            l1_network: Network the receipt was found on

        Returns:
            Messages across all partner L2 networks the transaction addressed

        Raises:
            UnsupportedNetwork: If a partner chain is missing from the registry
        """
        extracted = ExtractedMessages()

        for l2_chain_id in self.registry.partner_chain_ids(l1_network):
            l2_network = self.registry.require(l2_chain_id)
            extracted = extracted.merge(self.extract_for_partner(receipt, l2_network))

        logger.info(
            f"Extracted {len(extracted)} messages from {_receipt_tx_hash(receipt)[:10]}... "
            f"({len(extracted.retryables)} retryables, "
            f"{len(extracted.classic_retryables)} classic, "
            f"{len(extracted.deposits)} deposits)"
        )
        return extracted

    def extract_for_partner(self, receipt: TxReceipt, l2_network: Network) -> ExtractedMessages:
        """Extract messages sent to a single L2 network's inbox."""
        inbox = l2_network.eth_bridge.inbox.lower()
        inbox_logs = [log for log in receipt.get('logs', []) if log_address(log) == inbox]
        if not inbox_logs:
            logger.debug(f"No inbox logs for {l2_network}, skipping")
            return ExtractedMessages()

        generation = self.detect_generation(receipt, l2_network)
        logger.info(f"Transaction addressed {l2_network} ({generation.value} bridge)")

        inbox_messages = [
            message for log in inbox_logs
            if (message := self._decode_inbox_log(log)) is not None
        ]
        bridge_messages = self._bridge_messages(receipt, l2_network, generation)
        tx_hash = _receipt_tx_hash(receipt)

        match generation:
            case ProtocolGeneration.CLASSIC:
                return ExtractedMessages(
                    classic_retryables=tuple(
                        ClassicRetryableTicket.from_event_components(
                            tx_hash, l2_network, inbox_message.message_num, inbox_message.data
                        )
                        for inbox_message in inbox_messages
                        if self._kind_of(inbox_message, bridge_messages) == SUBMIT_RETRYABLE_KIND
                    )
                )
            case ProtocolGeneration.CURRENT:
                retryables: list[RetryableTicket] = []
                deposits: list[EthDeposit] = []
                for inbox_message in inbox_messages:
                    bridge_message = bridge_messages.get(inbox_message.message_num)
                    if bridge_message is None:
                        logger.warning(
                            f"No bridge event for inbox message {inbox_message.message_num}, skipping"
                        )
                        continue

                    if bridge_message.kind == SUBMIT_RETRYABLE_KIND:
                        retryables.append(RetryableTicket.from_event_components(
                            tx_hash,
                            l2_network,
                            inbox_message.message_num,
                            bridge_message.sender,
                            bridge_message.base_fee_l1,
                            inbox_message.data,
                        ))
                    elif bridge_message.kind == ETH_DEPOSIT_KIND:
                        deposits.append(EthDeposit.from_event_components(
                            tx_hash,
                            l2_network,
                            inbox_message.message_num,
                            bridge_message.sender,
                            inbox_message.data,
                        ))
                    else:
                        logger.debug(
                            f"Ignoring message {inbox_message.message_num} of kind {bridge_message.kind}"
                        )
                return ExtractedMessages(retryables=tuple(retryables), deposits=tuple(deposits))

    def detect_generation(self, receipt: TxReceipt, l2_network: Network) -> ProtocolGeneration:
        """
        Decide which bridge generation handled this transaction for one L2.

        The nitro bridge's MessageDelivered event carries extra fields, so its
        topic differs from the classic one. When the receipt holds neither
        (e.g. a bridge log was filtered out by the provider) fall back to the
        nitro genesis block of the L2.
        """
        bridge = l2_network.eth_bridge.bridge.lower()
        bridge_topics = {
            topics[0]
            for log in receipt.get('logs', [])
            if log_address(log) == bridge and (topics := log_topics(log))
        }

        if MESSAGE_DELIVERED_TOPIC in bridge_topics:
            return ProtocolGeneration.CURRENT
        if CLASSIC_MESSAGE_DELIVERED_TOPIC in bridge_topics:
            return ProtocolGeneration.CLASSIC

        if receipt['blockNumber'] < l2_network.nitro_genesis_l1_block:
            return ProtocolGeneration.CLASSIC
        return ProtocolGeneration.CURRENT

    def _decode_inbox_log(self, log: Any) -> InboxMessage | None:
        topics = log_topics(log)
        if len(topics) < 2 or topics[0] != INBOX_MESSAGE_DELIVERED_TOPIC:
            return None

        (data,) = decode(['bytes'], to_bytes(log.get('data')))
        return InboxMessage(message_num=parse_event_topic_as_int(topics[1]), data=data)

    def _bridge_messages(
        self,
        receipt: TxReceipt,
        l2_network: Network,
        generation: ProtocolGeneration
    ) -> dict[int, BridgeMessage]:
        """Decode the bridge's MessageDelivered events for one inbox, keyed by message index."""
        bridge = l2_network.eth_bridge.bridge.lower()
        inbox = l2_network.eth_bridge.inbox

        match generation:
            case ProtocolGeneration.CURRENT:
                topic = MESSAGE_DELIVERED_TOPIC
                types = ['address', 'uint8', 'address', 'bytes32', 'uint256', 'uint64']
            case ProtocolGeneration.CLASSIC:
                topic = CLASSIC_MESSAGE_DELIVERED_TOPIC
                types = ['address', 'uint8', 'address', 'bytes32']

        messages: dict[int, BridgeMessage] = {}
        for log in receipt.get('logs', []):
            topics = log_topics(log)
            if log_address(log) != bridge or len(topics) < 2 or topics[0] != topic:
                continue

            values = decode(types, to_bytes(log.get('data')))
            message = BridgeMessage(
                message_index=parse_event_topic_as_int(topics[1]),
                inbox=Web3.to_checksum_address(values[0]),
                kind=values[1],
                sender=Web3.to_checksum_address(values[2]),
                base_fee_l1=values[4] if generation is ProtocolGeneration.CURRENT else 0,
            )
            if message.inbox == inbox:
                messages[message.message_index] = message
        return messages

    @staticmethod
    def _kind_of(inbox_message: InboxMessage, bridge_messages: dict[int, BridgeMessage]) -> int | None:
        if (bridge_message := bridge_messages.get(inbox_message.message_num)) is None:
            return None
        return bridge_message.kind
