#!/usr/bin/env python3
"""Error taxonomy for the retryable tracker.

Only TransientRPC is recovered locally (absorbed into a safe default status).
Everything else surfaces to the caller as one classified outcome.
"""


class TrackerError(Exception):
    """Base class for all tracker errors."""


class InvalidInput(TrackerError):
    """The transaction hash is malformed. Raised before any RPC call."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"Invalid transaction hash: {tx_hash!r}")
        self.tx_hash = tx_hash


class NotFound(TrackerError):
    """The transaction hash is absent from every probed network."""

    def __init__(self, tx_hash: str, chain_ids: tuple[int, ...] = ()) -> None:
        super().__init__(
            f"Transaction {tx_hash} not found on chains {list(chain_ids)}"
        )
        self.tx_hash = tx_hash
        self.chain_ids = chain_ids


class UpstreamFailed(TrackerError):
    """The located transaction reverted on-chain."""

    def __init__(self, tx_hash: str, chain_id: int) -> None:
        super().__init__(f"Transaction {tx_hash} reverted on chain {chain_id}")
        self.tx_hash = tx_hash
        self.chain_id = chain_id


class UnsupportedNetwork(TrackerError):
    """A partner chain ID has no entry in the network registry."""

    def __init__(self, chain_id: int) -> None:
        super().__init__(
            f"Unknown chain id {chain_id}. This chain is not supported by the tracker"
        )
        self.chain_id = chain_id


class TransientRPC(TrackerError):
    """A bounded wait timed out or the node reported a known recoverable error."""


class UnknownStatus(TrackerError):
    """A status value reached a mapper that does not handle it."""

    def __init__(self, status: object) -> None:
        super().__init__(f"Unhandled status value: {status!r}")
        self.status = status


class QuerySuperseded(TrackerError):
    """An in-flight query was cancelled because a newer one replaced it."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"Query for {tx_hash} was superseded by a newer query")
        self.tx_hash = tx_hash
