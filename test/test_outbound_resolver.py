#!/usr/bin/env python3
"""Tests for the L2 to L1 message resolver."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_abi import encode
from web3 import Web3

from retryable_tracker.errors import TransientRPC
from retryable_tracker.messages import ARB_SYS_ADDRESS
from retryable_tracker.models import L2ToL1MessageStatus, L2TxnStatus
from retryable_tracker.outbound_resolver import (
    ASSERTION_CONFIRMED_PADDING,
    ASSERTION_CREATED_PADDING,
    L2_TO_L1_TX_TOPIC,
    OutboundResolver,
    RollupReader,
    calculate_eta,
    decode_outbound_messages,
    is_batch_not_found,
)

L2_TX_HASH = "0x" + "34" * 32
CALLER = "0x4444444444444444444444444444444444444444"
DESTINATION = "0x5555555555555555555555555555555555555555"


def l2_to_l1_log(position: int, arb_block_num: int = 1_000) -> dict:
    return {
        'address': ARB_SYS_ADDRESS,
        'topics': [
            L2_TO_L1_TX_TOPIC,
            bytes(12) + bytes.fromhex(DESTINATION[2:]),
            (777).to_bytes(32, 'big'),
            position.to_bytes(32, 'big'),
        ],
        'data': encode(
            ['address', 'uint256', 'uint256', 'uint256', 'uint256', 'bytes'],
            [CALLER, arb_block_num, 18_000_000, 1_700_000_000, 10**17, b'\xca\xfe']
        ),
    }


def l2_receipt(logs, status=1) -> dict:
    return {
        'transactionHash': Web3.to_bytes(hexstr=L2_TX_HASH),
        'blockNumber': 1_000,
        'status': status,
        'logs': logs,
    }


@pytest.fixture
def outbound_message(arbitrum_one, mainnet):
    (message,) = decode_outbound_messages(l2_receipt([l2_to_l1_log(position=50)]), arbitrum_one, mainnet)
    return message


class TestCalculateEta:
    """Tests for the challenge period ETA."""

    def test_deadline_reached(self):
        assert calculate_eta(100, 100) == 0

    def test_deadline_passed_is_not_negative(self):
        assert calculate_eta(100, 150) == 0

    def test_linear_in_blocks(self):
        assert calculate_eta(110, 100) == 150
        assert calculate_eta(120, 100) == 2 * calculate_eta(110, 100)
        assert calculate_eta(110, 100, seconds_per_block=12) == 120


class TestDecodeOutboundMessages:
    """Tests for ArbSys L2ToL1Tx decoding."""

    def test_decode(self, arbitrum_one, mainnet):
        receipt = l2_receipt([
            {'address': CALLER, 'topics': [L2_TO_L1_TX_TOPIC], 'data': b''},  # not ArbSys
            l2_to_l1_log(position=3),
            l2_to_l1_log(position=4),
        ])

        messages = decode_outbound_messages(receipt, arbitrum_one, mainnet)

        assert [m.position for m in messages] == [3, 4]
        message = messages[0]
        assert message.tx_hash == L2_TX_HASH
        assert message.network == mainnet
        assert message.source_network == arbitrum_one
        assert message.caller == Web3.to_checksum_address(CALLER)
        assert message.destination == Web3.to_checksum_address(DESTINATION)
        assert message.hash == 777
        assert message.arb_block_num == 1_000
        assert message.callvalue == 10**17
        assert message.data == b'\xca\xfe'


class TestIsBatchNotFound:
    """Tests for the recoverable node error check."""

    def test_matches_message(self):
        assert is_batch_not_found(ValueError("execution reverted: batch doesn't exist"))

    def test_matches_nested_args(self):
        assert is_batch_not_found(ValueError({'code': -32000, 'message': "batch doesn't exist"}))

    def test_other_error(self):
        assert not is_batch_not_found(ValueError("header not found"))


class TestRollupReader:
    """Tests for the node binary search."""

    @pytest.fixture
    def reader(self, arbitrum_one):
        reader = RollupReader(MagicMock(), MagicMock(), arbitrum_one)
        send_counts = {node: node * 10 for node in range(0, 21)}
        reader.send_count = AsyncMock(side_effect=lambda node: send_counts[node])
        return reader

    @pytest.mark.asyncio
    async def test_first_node_covering(self, reader):
        # node n has sent n * 10 messages, so position 55 needs node 6
        assert await reader.first_node_covering(55, after_node=2, latest_node=20) == 6

    @pytest.mark.asyncio
    async def test_position_on_boundary(self, reader):
        assert await reader.first_node_covering(60, after_node=2, latest_node=20) == 7

    @pytest.mark.asyncio
    async def test_not_yet_asserted(self, reader):
        assert await reader.first_node_covering(500, after_node=2, latest_node=20) is None

    @pytest.mark.asyncio
    async def test_no_pending_nodes(self, reader):
        assert await reader.first_node_covering(5, after_node=20, latest_node=20) is None


class TestOutboundResolver:
    """Tests for OutboundResolver."""

    @pytest.mark.asyncio
    async def test_not_found(self, registry, mock_pool):
        result = await OutboundResolver(registry, mock_pool).resolve(L2_TX_HASH)

        assert result.l2_txn_status is L2TxnStatus.NOT_FOUND
        assert result.l2_to_l1_messages == ()

    @pytest.mark.asyncio
    async def test_reverted_l2_transaction(self, registry, mock_pool, arbitrum_one):
        mock_pool.for_network(arbitrum_one).get_receipt = AsyncMock(
            return_value=l2_receipt([l2_to_l1_log(1)], status=0)
        )

        result = await OutboundResolver(registry, mock_pool).resolve(L2_TX_HASH)

        assert result.l2_txn_status is L2TxnStatus.FAILURE
        assert result.l2_to_l1_messages == ()
        assert result.network == arbitrum_one

    @pytest.mark.asyncio
    async def test_success_without_messages(self, registry, mock_pool, arbitrum_one):
        mock_pool.for_network(arbitrum_one).get_receipt = AsyncMock(return_value=l2_receipt([]))

        result = await OutboundResolver(registry, mock_pool).resolve(L2_TX_HASH)

        assert result.l2_txn_status is L2TxnStatus.SUCCESS
        assert result.l2_to_l1_messages == ()

    @pytest.mark.asyncio
    async def test_batch_missing_gives_unconfirmed_without_info(self, registry, mock_pool, outbound_message):
        resolver = OutboundResolver(registry, mock_pool)
        with patch.object(OutboundResolver, 'status', AsyncMock(side_effect=TransientRPC("batch doesn't exist"))):
            result = await resolver.resolve_message(outbound_message, current_l1_block=100)

        assert result.status is L2ToL1MessageStatus.UNCONFIRMED
        assert result.confirmation_info is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, registry, mock_pool, outbound_message):
        resolver = OutboundResolver(registry, mock_pool)
        with patch.object(OutboundResolver, 'status', AsyncMock(side_effect=ConnectionError("rpc down"))):
            with pytest.raises(ConnectionError):
                await resolver.resolve_message(outbound_message, current_l1_block=100)

    @pytest.mark.asyncio
    async def test_unconfirmed_with_eta(self, registry, mock_pool, outbound_message):
        resolver = OutboundResolver(registry, mock_pool, seconds_per_block=12)
        with patch.object(OutboundResolver, 'status', AsyncMock(return_value=L2ToL1MessageStatus.UNCONFIRMED)), \
                patch.object(OutboundResolver, 'first_executable_block', AsyncMock(return_value=1_100)):
            result = await resolver.resolve_message(outbound_message, current_l1_block=1_000)

        assert result.confirmation_info.deadline_block == 1_100
        assert result.confirmation_info.eta_seconds == 1_200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [L2ToL1MessageStatus.CONFIRMED, L2ToL1MessageStatus.EXECUTED])
    async def test_confirmed_has_no_eta(self, registry, mock_pool, outbound_message, status):
        resolver = OutboundResolver(registry, mock_pool)
        with patch.object(OutboundResolver, 'status', AsyncMock(return_value=status)):
            result = await resolver.resolve_message(outbound_message, current_l1_block=1_000)

        assert result.status is status
        assert result.confirmation_info is None

    @pytest.mark.asyncio
    async def test_status_executed(self, registry, mock_pool, mainnet, outbound_message):
        outbox = mock_pool.for_network(mainnet).get_contract.return_value
        outbox.functions.isSpent.return_value.call = AsyncMock(return_value=True)

        status = await OutboundResolver(registry, mock_pool).status(outbound_message, MagicMock())

        assert status is L2ToL1MessageStatus.EXECUTED

    @pytest.mark.asyncio
    async def test_status_batch_missing(self, registry, mock_pool, mainnet, arbitrum_one, outbound_message):
        outbox = mock_pool.for_network(mainnet).get_contract.return_value
        outbox.functions.isSpent.return_value.call = AsyncMock(return_value=False)
        node_interface = mock_pool.for_network(arbitrum_one).get_contract.return_value
        node_interface.functions.findBatchContainingBlock.return_value.call = AsyncMock(
            side_effect=ValueError("execution reverted: batch doesn't exist")
        )

        with pytest.raises(TransientRPC):
            await OutboundResolver(registry, mock_pool).status(outbound_message, MagicMock())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("confirmed_send_count,expected", [
        (51, L2ToL1MessageStatus.CONFIRMED),
        (50, L2ToL1MessageStatus.UNCONFIRMED),
    ])
    async def test_status_from_confirmed_send_count(self, registry, mock_pool, mainnet, arbitrum_one,
                                                    outbound_message, confirmed_send_count, expected):
        outbox = mock_pool.for_network(mainnet).get_contract.return_value
        outbox.functions.isSpent.return_value.call = AsyncMock(return_value=False)
        node_interface = mock_pool.for_network(arbitrum_one).get_contract.return_value
        node_interface.functions.findBatchContainingBlock.return_value.call = AsyncMock(return_value=12)
        rollup = MagicMock()
        rollup.latest_confirmed = AsyncMock(return_value=3)
        rollup.send_count = AsyncMock(return_value=confirmed_send_count)

        status = await OutboundResolver(registry, mock_pool).status(outbound_message, rollup)

        assert status is expected
        rollup.send_count.assert_awaited_once_with(3)

    @pytest.mark.asyncio
    async def test_first_executable_block_from_node(self, registry, mock_pool, outbound_message):
        rollup = MagicMock()
        rollup.latest_confirmed = AsyncMock(return_value=3)
        rollup.latest_node_created = AsyncMock(return_value=9)
        rollup.first_node_covering = AsyncMock(return_value=5)
        rollup.get_node = AsyncMock(return_value=MagicMock(deadline_block=2_000))

        block = await OutboundResolver(registry, mock_pool).first_executable_block(outbound_message, rollup, 1_000)

        assert block == 2_000 + ASSERTION_CONFIRMED_PADDING
        rollup.first_node_covering.assert_awaited_once_with(50, 3, 9)

    @pytest.mark.asyncio
    async def test_first_executable_block_estimated(self, registry, mock_pool, outbound_message):
        rollup = MagicMock()
        rollup.latest_confirmed = AsyncMock(return_value=3)
        rollup.latest_node_created = AsyncMock(return_value=3)
        rollup.first_node_covering = AsyncMock(return_value=None)
        rollup.confirm_period_blocks = AsyncMock(return_value=45_818)

        block = await OutboundResolver(registry, mock_pool).first_executable_block(outbound_message, rollup, 1_000)

        assert block == 1_000 + 45_818 + ASSERTION_CREATED_PADDING + ASSERTION_CONFIRMED_PADDING
