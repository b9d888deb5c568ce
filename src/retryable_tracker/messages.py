#!/usr/bin/env python3
"""Cross-chain message variants.

Each variant is an immutable composition of a decoded bridge message and the
network it targets. The protocol generation is fixed when the variant is
chosen at extraction time, and each variant carries its own status query:

- RetryableTicket: nitro retryable (full five-state lifecycle)
- ClassicRetryableTicket: pre-nitro retryable (two-outcome read)
- EthDeposit: nitro ETH deposit message
- OutboundMessage: L2 to L1 message emitted through ArbSys
"""

import logging
from dataclasses import dataclass
from typing import Any, ClassVar

import rlp
from eth_abi import decode
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.types import TxParams, TxReceipt, Wei

from .models import L1ToL2MessageStatus, MessageReadResult, ProtocolGeneration
from .networks import Network
from .utils.contract_utility import ContractUtility
from .utils.event_utility import (
    event_topic,
    log_address,
    log_topics,
    to_bytes,
    to_hex32,
    uint_to_address,
)

logger = logging.getLogger(__name__)

ARB_SYS_ADDRESS = "0x0000000000000000000000000000000000000064"
ARB_RETRYABLE_TX_ADDRESS = "0x000000000000000000000000000000000000006E"
NODE_INTERFACE_ADDRESS = "0x00000000000000000000000000000000000000C8"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

REDEEM_SCHEDULED_TOPIC = event_topic(
    "RedeemScheduled(bytes32,bytes32,uint64,uint64,address,uint256,uint256)"
)
NO_TICKET_WITH_ID_SELECTOR = Web3.keccak(text="NoTicketWithID()")[:4].hex()

# Transaction type prefixes arbos uses when deriving L2 hashes
SUBMIT_RETRYABLE_TX_TYPE = b'\x69'
DEPOSIT_TX_TYPE = b'\x64'

CLASSIC_MESSAGE_NUMBER_FLAG = 1 << 255

# submitRetryable payload: nine 32-byte words followed by the call data
_RETRYABLE_WORDS = 9


def _format_number(value: int) -> bytes:
    """Minimal big-endian encoding (zero encodes to empty bytes)."""
    return value.to_bytes((value.bit_length() + 7) // 8, 'big')


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(address[2:])


@dataclass(frozen=True, slots=True)
class RetryableParams:
    """Creation parameters of a retryable ticket, decoded from the inbox message.

    Attributes:
        destination: L2 call target
        l2_call_value: Value passed to the L2 call
        l1_value: Total value deposited on L1
        max_submission_fee: Maximum fee for creating the ticket
        excess_fee_refund_address: L2 address receiving unused fees
        call_value_refund_address: L2 address receiving the call value on failure
        gas_limit: Gas allowance for the auto-redeem
        max_fee_per_gas: Gas price bid for the auto-redeem
        data: L2 call data
    """

    destination: str
    l2_call_value: int
    l1_value: int
    max_submission_fee: int
    excess_fee_refund_address: str
    call_value_refund_address: str
    gas_limit: int
    max_fee_per_gas: int
    data: bytes

    @classmethod
    def decode(cls, message_data: Any) -> "RetryableParams":
        """Decode an InboxMessageDelivered payload of a retryable submission.

        Raises:
            ValueError: If the payload is shorter than the fixed header or
                its declared calldata length
        """
        payload = to_bytes(message_data)
        header_size = 32 * _RETRYABLE_WORDS
        if len(payload) < header_size:
            raise ValueError(
                f"Retryable payload too short: {len(payload)} bytes, need {header_size}"
            )

        words = decode(['uint256'] * _RETRYABLE_WORDS, payload[:header_size])
        data_length = words[8]
        if data_length > len(payload) - header_size:
            raise ValueError(
                f"Retryable calldata length {data_length} exceeds the "
                f"{len(payload) - header_size} bytes after the header"
            )
        call_data = payload[len(payload) - data_length:] if data_length else b''

        return cls(
            destination=uint_to_address(words[0]),
            l2_call_value=words[1],
            l1_value=words[2],
            max_submission_fee=words[3],
            excess_fee_refund_address=uint_to_address(words[4]),
            call_value_refund_address=uint_to_address(words[5]),
            gas_limit=words[6],
            max_fee_per_gas=words[7],
            data=call_data,
        )

    @property
    def looks_like_eth_deposit(self) -> bool:
        """Whether the ticket is only a vehicle for moving ETH.

        Such tickets carry no call, no gas and send every refund to the
        destination, so on-chain they are indistinguishable from a plain
        deposit routed through the retryable mechanism.
        """
        return (
            self.l2_call_value == 0
            and self.gas_limit == 0
            and self.max_fee_per_gas == 0
            and len(self.data) == 0
            and self.destination == self.excess_fee_refund_address
            and self.excess_fee_refund_address == self.call_value_refund_address
        )


def calculate_submit_retryable_id(
    l2_chain_id: int,
    from_address: str,
    message_number: int,
    l1_base_fee: int,
    params: RetryableParams,
) -> str:
    """Hash of the L2 submit-retryable transaction arbos creates for a ticket."""
    destination = b'' if params.destination == ZERO_ADDRESS else _address_bytes(params.destination)
    fields = [
        _format_number(l2_chain_id),
        message_number.to_bytes(32, 'big'),
        _address_bytes(Web3.to_checksum_address(from_address)),
        _format_number(l1_base_fee),
        _format_number(params.l1_value),
        _format_number(params.max_fee_per_gas),
        _format_number(params.gas_limit),
        destination,
        _format_number(params.l2_call_value),
        _address_bytes(params.call_value_refund_address),
        _format_number(params.max_submission_fee),
        _address_bytes(params.excess_fee_refund_address),
        params.data,
    ]
    return Web3.to_hex(Web3.keccak(SUBMIT_RETRYABLE_TX_TYPE + rlp.encode(fields)))


def calculate_deposit_tx_id(
    l2_chain_id: int,
    message_number: int,
    from_address: str,
    to_address: str,
    value: int,
) -> str:
    """Hash of the L2 deposit transaction arbos creates for an ETH deposit."""
    fields = [
        _format_number(l2_chain_id),
        message_number.to_bytes(32, 'big'),
        _address_bytes(Web3.to_checksum_address(from_address)),
        _address_bytes(Web3.to_checksum_address(to_address)),
        _format_number(value),
    ]
    return Web3.to_hex(Web3.keccak(DEPOSIT_TX_TYPE + rlp.encode(fields)))


def calculate_classic_retryable_id(l2_chain_id: int, message_number: int) -> str:
    """Ticket id of a classic retryable: chain id and bit-flipped message number."""
    flipped = message_number | CLASSIC_MESSAGE_NUMBER_FLAG
    return Web3.to_hex(Web3.keccak(l2_chain_id.to_bytes(32, 'big') + flipped.to_bytes(32, 'big')))


def calculate_classic_l2_tx_hash(retryable_creation_id: str) -> str:
    """Hash of the user L2 transaction derived from a classic ticket id."""
    return Web3.to_hex(Web3.keccak(to_bytes(retryable_creation_id) + (0).to_bytes(32, 'big')))


def _is_no_ticket_error(error: ContractLogicError) -> bool:
    detail = f"{getattr(error, 'data', '') or ''} {error}"
    return NO_TICKET_WITH_ID_SELECTOR in detail or "NoTicketWithID" in detail


@dataclass(frozen=True, slots=True)
class RetryableTicket:
    """Nitro retryable ticket targeting one L2 network.

    Attributes:
        tx_hash: Originating L1 transaction hash
        network: Target L2 network
        message_number: Bridge message index
        sender: Sender recorded by the bridge (aliased for contracts)
        l1_base_fee: L1 base fee recorded by the bridge
        params: Decoded creation parameters
        retryable_creation_id: L2 hash of the ticket creation transaction
    """

    generation: ClassVar[ProtocolGeneration] = ProtocolGeneration.CURRENT

    tx_hash: str
    network: Network
    message_number: int
    sender: str
    l1_base_fee: int
    params: RetryableParams
    retryable_creation_id: str

    @classmethod
    def from_event_components(
        cls,
        tx_hash: str,
        network: Network,
        message_number: int,
        sender: str,
        l1_base_fee: int,
        message_data: Any,
    ) -> "RetryableTicket":
        params = RetryableParams.decode(message_data)
        return cls(
            tx_hash=tx_hash,
            network=network,
            message_number=message_number,
            sender=Web3.to_checksum_address(sender),
            l1_base_fee=l1_base_fee,
            params=params,
            retryable_creation_id=calculate_submit_retryable_id(
                network.chain_id, sender, message_number, l1_base_fee, params
            ),
        )

    @property
    def message_id(self) -> str:
        return self.retryable_creation_id

    @property
    def looks_like_eth_deposit(self) -> bool:
        return self.params.looks_like_eth_deposit

    async def status(self, l2: ContractUtility) -> MessageReadResult:
        """Read the current status without waiting."""
        creation_receipt = await l2.get_receipt(self.retryable_creation_id)
        if creation_receipt is None:
            return MessageReadResult(L1ToL2MessageStatus.NOT_YET_CREATED)
        return await self._status_after_creation(l2, creation_receipt)

    async def wait_for_status(self, l2: ContractUtility, timeout: float) -> MessageReadResult:
        """Wait a bounded time for the ticket to be created, then read its status.

        Raises:
            TransientRPC: If the creation receipt doesn't appear within the timeout
        """
        creation_receipt = await l2.wait_for_receipt(self.retryable_creation_id, timeout)
        return await self._status_after_creation(l2, creation_receipt)

    async def _status_after_creation(
        self,
        l2: ContractUtility,
        creation_receipt: TxReceipt
    ) -> MessageReadResult:
        if creation_receipt.get('status') == 0:
            return MessageReadResult(L1ToL2MessageStatus.CREATION_FAILED)

        # auto-redeem is scheduled in the creation transaction itself
        if redeem_hash := await self._find_successful_redeem(l2, creation_receipt.get('logs', [])):
            return MessageReadResult(L1ToL2MessageStatus.REDEEMED, redeem_hash)

        if await self.retryable_exists(l2):
            return MessageReadResult(L1ToL2MessageStatus.FUNDS_DEPOSITED_ON_L2)

        manual_redeems = await l2.w3.eth.get_logs({
            'address': Web3.to_checksum_address(ARB_RETRYABLE_TX_ADDRESS),
            'topics': [Web3.to_hex(REDEEM_SCHEDULED_TOPIC), self.retryable_creation_id],
            'fromBlock': creation_receipt['blockNumber'],
            'toBlock': 'latest',
        })
        if redeem_hash := await self._find_successful_redeem(l2, manual_redeems):
            return MessageReadResult(L1ToL2MessageStatus.REDEEMED, redeem_hash)

        return MessageReadResult(L1ToL2MessageStatus.EXPIRED)

    async def _find_successful_redeem(self, l2: ContractUtility, logs: Any) -> str | None:
        ticket_id = to_bytes(self.retryable_creation_id)
        for log in logs:
            if log_address(log) != ARB_RETRYABLE_TX_ADDRESS.lower():
                continue
            topics = log_topics(log)
            if len(topics) < 3 or topics[0] != REDEEM_SCHEDULED_TOPIC or topics[1] != ticket_id:
                continue

            retry_tx_hash = to_hex32(topics[2])
            receipt = await l2.get_receipt(retry_tx_hash)
            if receipt is not None and receipt.get('status') == 1:
                return retry_tx_hash
            logger.debug(f"Redeem attempt {retry_tx_hash[:10]}... did not succeed")
        return None

    async def retryable_exists(self, l2: ContractUtility) -> bool:
        """Whether the ticket is still alive (not redeemed and not timed out)."""
        contract = l2.get_contract("ArbRetryableTx", ARB_RETRYABLE_TX_ADDRESS)
        latest_block = await l2.w3.eth.get_block('latest')
        try:
            timeout = await contract.functions.getTimeout(to_bytes(self.retryable_creation_id)).call()
        except ContractLogicError as e:
            if _is_no_ticket_error(e):
                return False
            raise
        return latest_block['timestamp'] <= timeout

    def redeem_transaction(self) -> TxParams:
        """Unsigned transaction that manually redeems this ticket on L2."""
        contract = Web3().eth.contract(
            address=Web3.to_checksum_address(ARB_RETRYABLE_TX_ADDRESS),
            abi=ContractUtility.get_contract_abi("ArbRetryableTx")
        )
        return {
            'to': Web3.to_checksum_address(ARB_RETRYABLE_TX_ADDRESS),
            'data': contract.encode_abi("redeem", args=[to_bytes(self.retryable_creation_id)]),
            'value': Wei(0),
            'chainId': self.network.chain_id,
        }


@dataclass(frozen=True, slots=True)
class ClassicRetryableTicket:
    """Pre-nitro retryable ticket. Only a two-outcome read is available."""

    generation: ClassVar[ProtocolGeneration] = ProtocolGeneration.CLASSIC

    tx_hash: str
    network: Network
    message_number: int
    params: RetryableParams
    retryable_creation_id: str
    l2_tx_hash: str

    @classmethod
    def from_event_components(
        cls,
        tx_hash: str,
        network: Network,
        message_number: int,
        message_data: Any,
    ) -> "ClassicRetryableTicket":
        retryable_creation_id = calculate_classic_retryable_id(network.chain_id, message_number)
        return cls(
            tx_hash=tx_hash,
            network=network,
            message_number=message_number,
            params=RetryableParams.decode(message_data),
            retryable_creation_id=retryable_creation_id,
            l2_tx_hash=calculate_classic_l2_tx_hash(retryable_creation_id),
        )

    @property
    def message_id(self) -> str:
        return self.retryable_creation_id

    @property
    def looks_like_eth_deposit(self) -> bool:
        return self.params.looks_like_eth_deposit

    async def status(self, l2: ContractUtility) -> MessageReadResult:
        creation_receipt = await l2.get_receipt(self.retryable_creation_id)
        if creation_receipt is None:
            return MessageReadResult(L1ToL2MessageStatus.NOT_YET_CREATED)
        if creation_receipt.get('status') == 0:
            return MessageReadResult(L1ToL2MessageStatus.CREATION_FAILED)

        l2_receipt = await l2.get_receipt(self.l2_tx_hash)
        if l2_receipt is not None and l2_receipt.get('status') == 1:
            return MessageReadResult(L1ToL2MessageStatus.REDEEMED, self.l2_tx_hash)
        return MessageReadResult(L1ToL2MessageStatus.EXPIRED)


@dataclass(frozen=True, slots=True)
class EthDeposit:
    """Nitro ETH deposit message.

    Attributes:
        tx_hash: Originating L1 transaction hash
        network: Target L2 network
        message_number: Bridge message index
        sender: Sender recorded by the bridge
        to: L2 recipient
        value: Deposited amount in wei
        l2_deposit_tx_hash: L2 hash of the deposit transaction
    """

    generation: ClassVar[ProtocolGeneration] = ProtocolGeneration.CURRENT

    tx_hash: str
    network: Network
    message_number: int
    sender: str
    to: str
    value: int
    l2_deposit_tx_hash: str

    @classmethod
    def from_event_components(
        cls,
        tx_hash: str,
        network: Network,
        message_number: int,
        sender: str,
        message_data: Any,
    ) -> "EthDeposit":
        """Build from an ethDeposit inbox payload (20-byte recipient then 32-byte value)."""
        payload = to_bytes(message_data)
        if len(payload) < 20:
            raise ValueError(f"ETH deposit payload too short: {len(payload)} bytes")

        to = Web3.to_checksum_address(payload[:20])
        value = int.from_bytes(payload[20:], 'big')
        return cls(
            tx_hash=tx_hash,
            network=network,
            message_number=message_number,
            sender=Web3.to_checksum_address(sender),
            to=to,
            value=value,
            l2_deposit_tx_hash=calculate_deposit_tx_id(
                network.chain_id, message_number, sender, to, value
            ),
        )

    @property
    def message_id(self) -> str:
        return self.l2_deposit_tx_hash

    async def wait(self, l2: ContractUtility, timeout: float) -> TxReceipt:
        """Wait a bounded time for the L2 deposit receipt.

        Raises:
            TransientRPC: If the receipt doesn't appear within the timeout
        """
        return await l2.wait_for_receipt(self.l2_deposit_tx_hash, timeout)


CrossChainMessage = RetryableTicket | ClassicRetryableTicket | EthDeposit


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """L2 to L1 message emitted by ArbSys.

    Attributes:
        tx_hash: Originating L2 transaction hash
        network: Target L1 network
        source_network: L2 network the message was sent from
        caller: L2 sender
        destination: L1 call target
        hash: Message hash
        position: Index of the message in the outbox send tree
        arb_block_num: L2 block the message was sent in
        eth_block_num: L1 block number seen by L2 at send time
        timestamp: L2 timestamp at send time
        callvalue: Value carried to L1
        data: L1 call data
    """

    tx_hash: str
    network: Network
    source_network: Network
    caller: str
    destination: str
    hash: int
    position: int
    arb_block_num: int
    eth_block_num: int
    timestamp: int
    callvalue: int
    data: bytes

    def __str__(self) -> str:
        return (
            f"OutboundMessage(position={self.position}, "
            f"destination={self.destination[:8]}..., "
            f"l2_block={self.arb_block_num})"
        )
