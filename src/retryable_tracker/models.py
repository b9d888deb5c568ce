#!/usr/bin/env python3
"""Data models for the retryable tracker.

This module provides the status enumerations and immutable result records
produced by a lookup. Records are derived per query and never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .messages import CrossChainMessage, OutboundMessage
    from .networks import Network


class ProtocolGeneration(Enum):
    """Bridge protocol generation a retryable was created under."""
    CLASSIC = "classic"
    CURRENT = "nitro"


class L1ToL2MessageStatus(IntEnum):
    """Lifecycle of a retryable ticket on L2."""
    NOT_YET_CREATED = 1
    CREATION_FAILED = 2
    FUNDS_DEPOSITED_ON_L2 = 3
    REDEEMED = 4
    EXPIRED = 5


class L2ToL1MessageStatus(IntEnum):
    """Lifecycle of an outbound message waiting on the challenge period."""
    UNCONFIRMED = 1
    CONFIRMED = 2
    EXECUTED = 3


class L2TxnStatus(Enum):
    """Outcome of probing L2 networks for a transaction."""
    SUCCESS = "success"
    FAILURE = "failure"
    NOT_FOUND = "not_found"


class AlertLevel(Enum):
    """Severity of a displayed status line."""
    RED = "failure"
    YELLOW = "warning"
    GREEN = "success"
    NONE = "none"


class ReceiptState(Enum):
    """Overall state of a lookup, before per-message results."""
    EMPTY = "empty"
    LOADING = "loading"
    INVALID_INPUT_LENGTH = "invalid_input_length"
    NOT_FOUND = "not_found"
    L1_FAILED = "l1_failed"
    L2_FAILED = "l2_failed"
    NO_L1_L2_MESSAGES = "no_l1_l2_messages"
    MESSAGES_FOUND = "messages_found"
    NO_L2_L1_MESSAGES = "no_l2_l1_messages"


@dataclass(frozen=True, slots=True)
class DisplayInfo:
    """Text, severity and action flag for one status."""
    text: str
    alert_level: AlertLevel
    show_redeem_button: bool = False


@dataclass(frozen=True, slots=True)
class MessageReadResult:
    """Raw status read of an L1 to L2 message.

    Attributes:
        status: Lifecycle status of the message
        l2_tx_hash: Hash of the L2 transaction that redeemed it, if any
    """
    status: L1ToL2MessageStatus
    l2_tx_hash: str | None = None


@dataclass(frozen=True, slots=True)
class StatusDisplay:
    """User-facing status of one L1 to L2 message.

    Attributes:
        text: Status line shown to the user
        alert_level: Severity of the status
        show_redeem_button: Whether manual redemption is available
        explorer_url: Explorer base URL of the target network
        message_id: Retryable creation id or L2 deposit tx hash
        network: Target L2 network
        message: Underlying message, handed to the redemption collaborator
        l2_tx_hash: L2 transaction that executed the retryable, if known
    """
    text: str
    alert_level: AlertLevel
    show_redeem_button: bool
    explorer_url: str
    message_id: str
    network: "Network"
    message: "CrossChainMessage"
    l2_tx_hash: str | None = None

    @classmethod
    def build(
        cls,
        info: DisplayInfo,
        message: "CrossChainMessage",
        l2_tx_hash: str | None = None
    ) -> "StatusDisplay":
        return cls(
            text=info.text,
            alert_level=info.alert_level,
            show_redeem_button=info.show_redeem_button,
            explorer_url=message.network.explorer_url,
            message_id=message.message_id,
            network=message.network,
            message=message,
            l2_tx_hash=l2_tx_hash,
        )

    def explorer_link(self) -> str:
        """Explorer URL of the ticket or deposit transaction."""
        return f"{self.explorer_url}/tx/{self.message_id}"

    def redeem_tx_link(self) -> str | None:
        """Explorer URL of the executing L2 transaction, if there is one."""
        if self.l2_tx_hash is None:
            return None
        return f"{self.explorer_url}/tx/{self.l2_tx_hash}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "text": self.text,
            "alert_level": self.alert_level.value,
            "show_redeem_button": self.show_redeem_button,
            "chain_id": self.network.chain_id,
            "network": self.network.name,
            "message_id": self.message_id,
            "explorer_link": self.explorer_link(),
            "l2_tx_hash": self.l2_tx_hash,
        }


@dataclass(frozen=True, slots=True)
class ConfirmationInfo:
    """When an outbound message becomes executable on L1.

    Attributes:
        deadline_block: First L1 block at which the message is executable
        eta_seconds: Estimated seconds until that block
    """
    deadline_block: int
    eta_seconds: int


@dataclass(frozen=True, slots=True)
class OutboundMessageResult:
    """Resolved status of one L2 to L1 message."""
    message: "OutboundMessage"
    status: L2ToL1MessageStatus
    confirmation_info: ConfirmationInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        info = self.confirmation_info
        return {
            "status": self.status.name,
            "position": self.message.position,
            "destination": self.message.destination,
            "l1_chain_id": self.message.network.chain_id,
            "deadline_block": info.deadline_block if info else None,
            "eta_seconds": info.eta_seconds if info else None,
        }


@dataclass(frozen=True, slots=True)
class L2ToL1SearchResult:
    """Outcome of probing L2 networks for outbound messages."""
    l2_txn_status: L2TxnStatus
    l2_tx_hash: str
    l2_to_l1_messages: tuple[OutboundMessageResult, ...] = ()
    network: "Network | None" = None


@dataclass(frozen=True, slots=True)
class LookupResult:
    """Everything one lookup learned about a transaction hash.

    Attributes:
        tx_hash: The queried hash
        receipt_state: Overall receipt-level state
        receipt_display: One-line display of the receipt state
        network: Network the transaction was found on, if any
        messages: L1 to L2 message displays, in resolution order
        outbound_messages: L2 to L1 message results, in extraction order
    """
    tx_hash: str
    receipt_state: ReceiptState
    receipt_display: DisplayInfo
    network: "Network | None" = None
    messages: tuple[StatusDisplay, ...] = field(default_factory=tuple)
    outbound_messages: tuple[OutboundMessageResult, ...] = field(default_factory=tuple)

    @property
    def needs_action(self) -> bool:
        """Whether any message offers manual redemption."""
        return any(display.show_redeem_button for display in self.messages)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "tx_hash": self.tx_hash,
            "receipt_state": self.receipt_state.value,
            "text": self.receipt_display.text,
            "alert_level": self.receipt_display.alert_level.value,
            "chain_id": self.network.chain_id if self.network else None,
            "messages": [display.to_dict() for display in self.messages],
            "outbound_messages": [result.to_dict() for result in self.outbound_messages],
        }
