#!/usr/bin/env python3
"""Tests for MessageExtractor."""

import pytest
from web3 import Web3

from retryable_tracker.errors import UnsupportedNetwork
from retryable_tracker.message_extractor import (
    CLASSIC_MESSAGE_DELIVERED_TOPIC,
    ETH_DEPOSIT_KIND,
    SUBMIT_RETRYABLE_KIND,
    MessageExtractor,
)
from retryable_tracker.models import ProtocolGeneration
from retryable_tracker.networks import MAINNET, NetworkRegistry

TX_HASH = "0x" + "cd" * 32
SENDER = "0x1111111111111111111111111111111111111111"


def make_receipt(logs, block_number=18_000_000):
    return {
        'transactionHash': Web3.to_bytes(hexstr=TX_HASH),
        'blockNumber': block_number,
        'status': 1,
        'logs': logs,
    }


class TestMessageExtractor:
    """Tests for message extraction from L1 receipts."""

    def test_retryable_and_deposit(self, registry, mainnet, arbitrum_one, inbox_log, bridge_log,
                                   retryable_payload, deposit_payload):
        bridge = arbitrum_one.eth_bridge
        receipt = make_receipt([
            bridge_log(bridge.bridge, bridge.inbox, 100, SUBMIT_RETRYABLE_KIND),
            inbox_log(bridge.inbox, 100, retryable_payload(gas_limit=100_000, max_fee_per_gas=10**8)),
            bridge_log(bridge.bridge, bridge.inbox, 101, ETH_DEPOSIT_KIND),
            inbox_log(bridge.inbox, 101, deposit_payload(value=5)),
        ])

        extracted = MessageExtractor(registry).extract(receipt, mainnet)

        assert len(extracted) == 2
        (ticket,) = extracted.retryables
        (deposit,) = extracted.deposits
        assert ticket.message_number == 100
        assert ticket.network == arbitrum_one
        assert ticket.tx_hash == TX_HASH
        assert ticket.sender == SENDER
        assert ticket.params.gas_limit == 100_000
        assert ticket.retryable_creation_id.startswith("0x") and len(ticket.retryable_creation_id) == 66
        assert deposit.value == 5
        assert deposit.message_id == deposit.l2_deposit_tx_hash
        assert extracted.classic_retryables == ()

    def test_only_addressed_partner_is_used(self, registry, mainnet, arbitrum_one, inbox_log, bridge_log,
                                            deposit_payload):
        """Test that a receipt with inbox logs for One only yields One's messages."""
        bridge = arbitrum_one.eth_bridge
        receipt = make_receipt([
            bridge_log(bridge.bridge, bridge.inbox, 1, ETH_DEPOSIT_KIND),
            inbox_log(bridge.inbox, 1, deposit_payload()),
        ])

        extracted = MessageExtractor(registry).extract(receipt, mainnet)

        assert [d.network.chain_id for d in extracted.deposits] == [42161]

    def test_no_inbox_logs(self, registry, mainnet):
        receipt = make_receipt([{'address': SENDER, 'topics': [], 'data': b''}])

        extracted = MessageExtractor(registry).extract(receipt, mainnet)

        assert len(extracted) == 0

    def test_classic_receipt(self, registry, mainnet, arbitrum_one, inbox_log, bridge_log, retryable_payload):
        bridge = arbitrum_one.eth_bridge
        receipt = make_receipt([
            bridge_log(bridge.bridge, bridge.inbox, 42, SUBMIT_RETRYABLE_KIND,
                       topic=CLASSIC_MESSAGE_DELIVERED_TOPIC, classic=True),
            inbox_log(bridge.inbox, 42, retryable_payload()),
        ], block_number=14_000_000)

        extracted = MessageExtractor(registry).extract(receipt, mainnet)

        assert extracted.retryables == ()
        assert extracted.deposits == ()
        (ticket,) = extracted.classic_retryables
        assert ticket.generation is ProtocolGeneration.CLASSIC
        assert ticket.l2_tx_hash != ticket.retryable_creation_id

    def test_generation_falls_back_to_genesis_block(self, registry, arbitrum_one):
        extractor = MessageExtractor(registry)

        assert extractor.detect_generation(make_receipt([], 15_000_000), arbitrum_one) is ProtocolGeneration.CLASSIC
        assert extractor.detect_generation(make_receipt([], 16_000_000), arbitrum_one) is ProtocolGeneration.CURRENT

    def test_generation_from_bridge_topic_wins(self, registry, arbitrum_one, bridge_log):
        """Test that a nitro bridge event before genesis still selects nitro."""
        bridge = arbitrum_one.eth_bridge
        receipt = make_receipt(
            [bridge_log(bridge.bridge, bridge.inbox, 1, SUBMIT_RETRYABLE_KIND)],
            block_number=1,
        )

        assert MessageExtractor(registry).detect_generation(receipt, arbitrum_one) is ProtocolGeneration.CURRENT

    def test_message_numbers_give_distinct_ids(self, registry, mainnet, arbitrum_one, inbox_log, bridge_log,
                                               retryable_payload):
        bridge = arbitrum_one.eth_bridge
        payload = retryable_payload()
        receipt = make_receipt([
            bridge_log(bridge.bridge, bridge.inbox, 1, SUBMIT_RETRYABLE_KIND),
            inbox_log(bridge.inbox, 1, payload),
            bridge_log(bridge.bridge, bridge.inbox, 2, SUBMIT_RETRYABLE_KIND),
            inbox_log(bridge.inbox, 2, payload),
        ])

        extracted = MessageExtractor(registry).extract(receipt, mainnet)

        ids = [ticket.message_id for ticket in extracted.retryables]
        assert len(set(ids)) == 2

    def test_extraction_is_deterministic(self, registry, mainnet, deposit_receipt):
        extractor = MessageExtractor(registry)

        assert extractor.extract(deposit_receipt, mainnet) == extractor.extract(deposit_receipt, mainnet)

    def test_unsupported_partner_aborts(self, arbitrum_one, deposit_receipt):
        registry = NetworkRegistry.from_networks([MAINNET, arbitrum_one])

        with pytest.raises(UnsupportedNetwork) as exc_info:
            MessageExtractor(registry).extract(deposit_receipt, MAINNET)
        assert exc_info.value.chain_id == 42170
