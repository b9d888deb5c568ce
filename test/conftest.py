#!/usr/bin/env python3
"""Shared fixtures for the retryable tracker tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode
from web3 import Web3

from retryable_tracker.message_extractor import (
    ETH_DEPOSIT_KIND,
    INBOX_MESSAGE_DELIVERED_TOPIC,
    MESSAGE_DELIVERED_TOPIC,
)
from retryable_tracker.networks import DEFAULT_NETWORKS, NetworkRegistry

L1_TX_HASH = "0x" + "ab" * 32
SENDER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"

RPC_URLS = {
    1: "https://l1.example.org/rpc",
    5: "https://goerli.example.org/rpc",
    42161: "https://arb1.example.org/rpc",
    42170: "https://nova.example.org/rpc",
    421613: "https://arb-goerli.example.org/rpc",
}


def _word(value: int) -> bytes:
    return value.to_bytes(32, 'big')


def _address_word(address: str) -> int:
    return int(address, 16)


@pytest.fixture
def registry():
    """Registry of the built-in networks bound to fake endpoints."""
    return NetworkRegistry.from_networks(
        network.with_rpc_url(RPC_URLS[network.chain_id]) for network in DEFAULT_NETWORKS
    )


@pytest.fixture
def arbitrum_one(registry):
    return registry.require(42161)


@pytest.fixture
def mainnet(registry):
    return registry.require(1)


@pytest.fixture
def retryable_payload():
    """Factory for submitRetryable inbox payloads."""
    def build(
        destination: str = RECIPIENT,
        l2_call_value: int = 0,
        l1_value: int = 10**18,
        max_submission_fee: int = 10**14,
        excess_fee_refund_address: str = RECIPIENT,
        call_value_refund_address: str = RECIPIENT,
        gas_limit: int = 0,
        max_fee_per_gas: int = 0,
        data: bytes = b'',
    ) -> bytes:
        header = encode(['uint256'] * 9, [
            _address_word(destination),
            l2_call_value,
            l1_value,
            max_submission_fee,
            _address_word(excess_fee_refund_address),
            _address_word(call_value_refund_address),
            gas_limit,
            max_fee_per_gas,
            len(data),
        ])
        return header + data
    return build


@pytest.fixture
def deposit_payload():
    """Factory for ethDeposit inbox payloads."""
    def build(to: str = RECIPIENT, value: int = 10**18) -> bytes:
        return bytes.fromhex(to[2:]) + _word(value)
    return build


@pytest.fixture
def inbox_log():
    """Factory for InboxMessageDelivered logs."""
    def build(inbox: str, message_num: int, payload: bytes) -> dict:
        return {
            'address': inbox,
            'topics': [INBOX_MESSAGE_DELIVERED_TOPIC, _word(message_num)],
            'data': encode(['bytes'], [payload]),
        }
    return build


@pytest.fixture
def bridge_log():
    """Factory for bridge MessageDelivered logs (nitro or classic layout)."""
    def build(
        bridge: str,
        inbox: str,
        message_num: int,
        kind: int,
        sender: str = SENDER,
        base_fee: int = 30 * 10**9,
        topic: bytes = MESSAGE_DELIVERED_TOPIC,
        classic: bool = False,
    ) -> dict:
        if classic:
            data = encode(
                ['address', 'uint8', 'address', 'bytes32'],
                [inbox, kind, sender, b'\x00' * 32]
            )
        else:
            data = encode(
                ['address', 'uint8', 'address', 'bytes32', 'uint256', 'uint64'],
                [inbox, kind, sender, b'\x00' * 32, base_fee, 1_700_000_000]
            )
        return {
            'address': bridge,
            'topics': [topic, _word(message_num), b'\x00' * 32],
            'data': data,
        }
    return build


@pytest.fixture
def deposit_receipt(arbitrum_one, inbox_log, bridge_log, deposit_payload):
    """L1 receipt of a nitro ETH deposit to Arbitrum One."""
    bridge = arbitrum_one.eth_bridge
    return {
        'transactionHash': Web3.to_bytes(hexstr=L1_TX_HASH),
        'blockNumber': 18_000_000,
        'status': 1,
        'logs': [
            bridge_log(bridge.bridge, bridge.inbox, 7, ETH_DEPOSIT_KIND),
            inbox_log(bridge.inbox, 7, deposit_payload()),
        ],
    }


@pytest.fixture
def mock_pool():
    """ProviderPool stand-in handing out one MagicMock utility per chain."""
    utilities: dict[int, MagicMock] = {}

    def for_network(network):
        if network.chain_id not in utilities:
            utility = MagicMock()
            utility.network = network
            utility.get_receipt = AsyncMock(return_value=None)
            utility.wait_for_receipt = AsyncMock()
            utility.get_block_number = AsyncMock(return_value=0)
            utilities[network.chain_id] = utility
        return utilities[network.chain_id]

    pool = MagicMock()
    pool.for_network = MagicMock(side_effect=for_network)
    pool.close = AsyncMock()
    pool.utilities = utilities
    return pool
