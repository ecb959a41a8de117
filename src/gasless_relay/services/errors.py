"""Exception hierarchy for the relay.

Rejections are terminal for the submitted intent; unavailability errors are
transient and the caller is expected to retry the same intent later.
"""

from __future__ import annotations

from enum import Enum


class RejectionReason(str, Enum):
    """Why an intent was refused at intake."""

    MALFORMED = "malformed"
    POLL_INACTIVE = "poll_inactive"
    ALREADY_VOTED = "already_voted"
    STALE_NONCE = "stale_nonce"
    INVALID_SIGNATURE = "invalid_signature"


class RelayError(RuntimeError):
    """Base exception raised for relay failures."""


class VoteRejectedError(RelayError):
    """Raised when an intent is structurally or semantically invalid."""

    def __init__(self, reason: RejectionReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


class ValidatorUnavailableError(RelayError):
    """Raised when validation could not reach chain state."""


class QueueRejectedError(RelayError):
    """Base class for local queue admission failures."""


class DuplicatePendingError(QueueRejectedError):
    """Raised when an intent for the same (poll, voter) is already queued."""


class QueueFullError(QueueRejectedError):
    """Raised when the pending queue is at capacity."""


class SubmissionInProgressError(RelayError):
    """Raised when a batch is requested while another is in flight."""


class ContractError(RelayError):
    """Base exception for contract interaction failures."""


class ContractUnavailableError(ContractError):
    """Raised when the RPC endpoint cannot be reached or times out."""


class ContractNotConfiguredError(ContractUnavailableError):
    """Raised when contract operations are attempted without an address or key."""


class BatchRevertedError(ContractError):
    """Raised when the chain executed the batch call and rejected it."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
