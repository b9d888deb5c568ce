#!/usr/bin/env python3
"""Status to display mapping.

Pure, exhaustive mappers from resolved statuses to user-facing text,
severity and action flag. Any value a mapper does not recognize raises
UnknownStatus instead of falling through to a default.
"""

from .errors import UnknownStatus
from .models import (
    AlertLevel,
    DisplayInfo,
    L1ToL2MessageStatus,
    L2ToL1MessageStatus,
    OutboundMessageResult,
    ProtocolGeneration,
    ReceiptState,
)

DEPOSIT_COMPLETED = DisplayInfo(
    text="Success! 🎉 Your Eth deposit has completed",
    alert_level=AlertLevel.GREEN,
)

DEPOSIT_CHECK_FAILED = DisplayInfo(
    text="Something failed in this tracker, you can try to check your account on l2",
    alert_level=AlertLevel.RED,
)

_CURRENT_DISPLAYS: dict[L1ToL2MessageStatus, DisplayInfo] = {
    L1ToL2MessageStatus.CREATION_FAILED: DisplayInfo(
        text="L2 message creation reverted; perhaps provided maxSubmissionCost was too low?",
        alert_level=AlertLevel.RED,
    ),
    L1ToL2MessageStatus.EXPIRED: DisplayInfo(
        text="Retryable ticket expired.",
        alert_level=AlertLevel.RED,
    ),
    L1ToL2MessageStatus.NOT_YET_CREATED: DisplayInfo(
        text="L1 to L2 message initiated from L1, but not yet created — check again in a few minutes!",
        alert_level=AlertLevel.YELLOW,
    ),
    L1ToL2MessageStatus.REDEEMED: DisplayInfo(
        text="Success! 🎉 Your retryable was executed.",
        alert_level=AlertLevel.GREEN,
    ),
    # we do not know why auto redeem failed in nitro
    L1ToL2MessageStatus.FUNDS_DEPOSITED_ON_L2: DisplayInfo(
        text="Auto-redeem failed; you can redeem it now:",
        alert_level=AlertLevel.YELLOW,
        show_redeem_button=True,
    ),
}

# Classic tickets cannot be redeemed from here any more
_CLASSIC_DISPLAYS: dict[L1ToL2MessageStatus, DisplayInfo] = {
    L1ToL2MessageStatus.CREATION_FAILED: DisplayInfo(
        text="Classic L2 message creation reverted before the nitro upgrade.",
        alert_level=AlertLevel.RED,
    ),
    L1ToL2MessageStatus.EXPIRED: DisplayInfo(
        text="Classic retryable ticket was not executed and can no longer be redeemed.",
        alert_level=AlertLevel.RED,
    ),
    L1ToL2MessageStatus.NOT_YET_CREATED: DisplayInfo(
        text="Classic L1 to L2 message not found on L2.",
        alert_level=AlertLevel.YELLOW,
    ),
    L1ToL2MessageStatus.REDEEMED: DisplayInfo(
        text="Success! 🎉 Your classic retryable was executed.",
        alert_level=AlertLevel.GREEN,
    ),
}

# Statuses where a deposit-shaped ticket has in fact delivered its ETH
_DEPOSIT_RECLASSIFIED = frozenset({
    L1ToL2MessageStatus.EXPIRED,
    L1ToL2MessageStatus.FUNDS_DEPOSITED_ON_L2,
})

_RECEIPT_DISPLAYS: dict[ReceiptState, DisplayInfo] = {
    ReceiptState.EMPTY: DisplayInfo(text="", alert_level=AlertLevel.NONE),
    ReceiptState.LOADING: DisplayInfo(text="Loading...", alert_level=AlertLevel.NONE),
    ReceiptState.INVALID_INPUT_LENGTH: DisplayInfo(
        text="Error: invalid transaction hash",
        alert_level=AlertLevel.RED,
    ),
    ReceiptState.NOT_FOUND: DisplayInfo(
        text="Transaction not found on any supported network",
        alert_level=AlertLevel.YELLOW,
    ),
    ReceiptState.L1_FAILED: DisplayInfo(
        text="Error: L1 transaction reverted",
        alert_level=AlertLevel.RED,
    ),
    ReceiptState.L2_FAILED: DisplayInfo(
        text="Error: L2 transaction reverted",
        alert_level=AlertLevel.RED,
    ),
    ReceiptState.NO_L1_L2_MESSAGES: DisplayInfo(
        text="No L1-to-L2 messages created by provided L1 transaction",
        alert_level=AlertLevel.YELLOW,
    ),
    ReceiptState.MESSAGES_FOUND: DisplayInfo(
        text="Cross chain messages found",
        alert_level=AlertLevel.GREEN,
    ),
    ReceiptState.NO_L2_L1_MESSAGES: DisplayInfo(
        text="No L2-to-L1 messages created by provided L2 transaction",
        alert_level=AlertLevel.YELLOW,
    ),
}

_OUTBOUND_DISPLAYS: dict[L2ToL1MessageStatus, DisplayInfo] = {
    L2ToL1MessageStatus.UNCONFIRMED: DisplayInfo(
        text="L2 to L1 message is waiting for the challenge period to end",
        alert_level=AlertLevel.YELLOW,
    ),
    L2ToL1MessageStatus.CONFIRMED: DisplayInfo(
        text="L2 to L1 message is confirmed and ready to be executed on L1",
        alert_level=AlertLevel.YELLOW,
        show_redeem_button=True,
    ),
    L2ToL1MessageStatus.EXECUTED: DisplayInfo(
        text="Success! 🎉 Your L2 to L1 message was executed",
        alert_level=AlertLevel.GREEN,
    ),
}


def message_status_display(
    status: L1ToL2MessageStatus,
    generation: ProtocolGeneration,
    looks_like_deposit: bool = False,
) -> DisplayInfo:
    """
    Map a retryable's resolved status to its display.

    Args:
        status: Resolved lifecycle status
        generation: Protocol generation of the ticket
        looks_like_deposit: Whether the ticket is deposit-shaped

    Returns:
        Text, severity and action flag for the ticket

    Raises:
        UnknownStatus: If the status (or generation) is not handled
    """
    match generation:
        case ProtocolGeneration.CURRENT:
            displays = _CURRENT_DISPLAYS
        case ProtocolGeneration.CLASSIC:
            displays = _CLASSIC_DISPLAYS
        case _:
            raise UnknownStatus(generation)

    if status not in displays:
        raise UnknownStatus(status)

    if looks_like_deposit and status in _DEPOSIT_RECLASSIFIED:
        return DEPOSIT_COMPLETED
    return displays[status]


def deposit_status_display(succeeded: bool) -> DisplayInfo:
    """Display of an ETH deposit message after waiting on its L2 receipt."""
    return DEPOSIT_COMPLETED if succeeded else DEPOSIT_CHECK_FAILED


def receipt_state_display(state: ReceiptState) -> DisplayInfo:
    """
    Map an overall receipt state to its one-line display.

    Raises:
        UnknownStatus: If the state is not handled
    """
    if state not in _RECEIPT_DISPLAYS:
        raise UnknownStatus(state)
    return _RECEIPT_DISPLAYS[state]


def outbound_status_display(result: OutboundMessageResult) -> DisplayInfo:
    """
    Map an outbound message result to its display, with the ETA when known.

    Raises:
        UnknownStatus: If the status is not handled
    """
    if result.status not in _OUTBOUND_DISPLAYS:
        raise UnknownStatus(result.status)

    info = _OUTBOUND_DISPLAYS[result.status]
    if result.confirmation_info is None:
        return info

    eta = result.confirmation_info.eta_seconds
    return DisplayInfo(
        text=f"{info.text} (about {format_eta(eta)} left, L1 block {result.confirmation_info.deadline_block})",
        alert_level=info.alert_level,
        show_redeem_button=info.show_redeem_button,
    )


def format_eta(seconds: int) -> str:
    """Render a duration in seconds as e.g. '6d 8h 15m'."""
    if seconds <= 0:
        return "0m"
    days, remainder = divmod(seconds, 86_400)
    hours, remainder = divmod(remainder, 3_600)
    minutes = remainder // 60
    parts = [f"{days}d"] if days else []
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)
