"""Vote intent and batch snapshot types."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _new_intent_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VoteIntent:
    """A single off-chain signed vote awaiting submission.

    Attributes:
        poll_id: Target poll identifier (uint256).
        vote: True for yes, False for no.
        nonce: Voter nonce the signature was produced over.
        signature: 0x-prefixed hex EIP-712 signature over (poll_id, vote, nonce).
        voter: Address that claims to have produced the signature.
        received_at: When the relay accepted the intent.
        intent_id: Relay-local identifier used to commit or discard the intent.
    """

    poll_id: int
    vote: bool
    nonce: int
    signature: str
    voter: str
    received_at: datetime = field(default_factory=_utcnow)
    intent_id: str = field(default_factory=_new_intent_id)

    @property
    def key(self) -> tuple[int, str]:
        """Deduplication key; at most one queued intent per (poll, voter)."""
        return (self.poll_id, self.voter.lower())

    @property
    def voter_key(self) -> str:
        return self.voter.lower()

    def signature_bytes(self) -> bytes:
        raw = self.signature[2:] if self.signature[:2].lower() == "0x" else self.signature
        return bytes.fromhex(raw)

    def short_voter(self) -> str:
        return f"{self.voter[:8]}..."

    def redacted(self) -> dict[str, object]:
        """Diagnostic view without the signature."""
        return {
            "pollId": self.poll_id,
            "voter": self.voter,
            "vote": self.vote,
            "timestamp": int(self.received_at.timestamp() * 1000),
        }


@dataclass(frozen=True)
class BatchJob:
    """Immutable snapshot of intents taken from the front of the queue."""

    intents: tuple[VoteIntent, ...]

    def __len__(self) -> int:
        return len(self.intents)

    @property
    def ids(self) -> list[str]:
        return [intent.intent_id for intent in self.intents]

    def without(self, intent_ids: Iterable[str]) -> BatchJob:
        """Return a narrower batch that excludes the given intents."""
        dropped = set(intent_ids)
        return BatchJob(
            intents=tuple(i for i in self.intents if i.intent_id not in dropped)
        )

    def call_arguments(self) -> tuple[list[int], list[bool], list[int], list[bytes]]:
        """Arrange the batch as the four parallel sequences `submitVotes` expects."""
        poll_ids = [i.poll_id for i in self.intents]
        votes = [i.vote for i in self.intents]
        nonces = [i.nonce for i in self.intents]
        signatures = [i.signature_bytes() for i in self.intents]
        return poll_ids, votes, nonces, signatures
