"""Bounded, deduplicated FIFO of validated vote intents.

A single `asyncio.Lock` guards the deque, the key index and the submission
state token, so the decision to admit an intent and the decision to start a
batch can never interleave.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict, deque
from collections.abc import Iterable
from enum import Enum
from itertools import islice

from gasless_relay.models.intent import BatchJob, VoteIntent
from gasless_relay.services.errors import (
    DuplicatePendingError,
    QueueFullError,
    RejectionReason,
    SubmissionInProgressError,
    VoteRejectedError,
)

logger = logging.getLogger(__name__)

# Voters tracked for consumed nonces; the oldest entries are evicted first.
CONSUMED_NONCE_LIMIT = 10_000


class RelayState(Enum):
    """Submission state token."""

    IDLE = "idle"
    SUBMITTING = "submitting"


class PendingVoteQueue:
    """Ordered holding area for intents awaiting batch submission."""

    def __init__(self, capacity: int, consumed_nonce_limit: int = CONSUMED_NONCE_LIMIT) -> None:
        if capacity < 1:
            raise ValueError("Queue capacity must be positive")
        self.capacity = capacity
        self._items: deque[VoteIntent] = deque()
        self._keys: dict[tuple[int, str], str] = {}
        self.consumed_nonce_limit = consumed_nonce_limit
        # Highest nonce per voter seen in a confirmed batch, until the chain catches up.
        self._consumed_nonces: OrderedDict[str, int] = OrderedDict()
        self._state = RelayState.IDLE
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def submitting(self) -> bool:
        return self._state is RelayState.SUBMITTING

    @property
    def is_full(self) -> bool:
        return len(self._items) >= self.capacity

    def snapshot(self) -> list[VoteIntent]:
        """Return the queued intents in order."""
        return list(self._items)

    def _admission_error(self, intent: VoteIntent) -> Exception | None:
        if intent.key in self._keys:
            return DuplicatePendingError("vote already pending")
        if len(self._items) >= self.capacity:
            return QueueFullError("relayer at capacity")
        consumed = self._consumed_nonces.get(intent.voter_key)
        if consumed is not None and intent.nonce <= consumed:
            return VoteRejectedError(
                RejectionReason.STALE_NONCE,
                f"Invalid nonce. Nonce {intent.nonce} was already consumed",
            )
        for queued in self._items:
            if queued.voter_key == intent.voter_key and queued.nonce == intent.nonce:
                return VoteRejectedError(
                    RejectionReason.STALE_NONCE,
                    f"Invalid nonce. Nonce {intent.nonce} is already pending for this voter",
                )
        return None

    async def precheck(self, intent: VoteIntent) -> None:
        """Fail fast on local admission errors before any chain reads.

        The result is advisory; `enqueue` repeats the same checks under the lock.
        """
        async with self._lock:
            error = self._admission_error(intent)
        if error is not None:
            raise error

    async def enqueue(self, intent: VoteIntent) -> int:
        """Append an intent and return its 1-based queue position.

        Raises:
            DuplicatePendingError: An intent for the same (poll, voter) is queued.
            QueueFullError: The queue is at capacity.
            VoteRejectedError: The nonce is already pending or consumed.
        """
        async with self._lock:
            error = self._admission_error(intent)
            if error is not None:
                raise error
            self._items.append(intent)
            self._keys[intent.key] = intent.intent_id
            # Admission past the record means a validated nonce above it.
            self._consumed_nonces.pop(intent.voter_key, None)
            return len(self._items)

    async def peek_batch(self, size: int) -> list[VoteIntent]:
        async with self._lock:
            return list(islice(self._items, max(0, size)))

    def _remove(self, intent_ids: set[str]) -> list[VoteIntent]:
        removed = [i for i in self._items if i.intent_id in intent_ids]
        if removed:
            self._items = deque(i for i in self._items if i.intent_id not in intent_ids)
            for intent in removed:
                if self._keys.get(intent.key) == intent.intent_id:
                    del self._keys[intent.key]
        return removed

    async def commit(self, intent_ids: Iterable[str]) -> int:
        """Remove intents confirmed on-chain and remember their consumed nonces."""
        async with self._lock:
            removed = self._remove(set(intent_ids))
            for intent in removed:
                previous = self._consumed_nonces.pop(intent.voter_key, -1)
                self._consumed_nonces[intent.voter_key] = max(previous, intent.nonce)
            while len(self._consumed_nonces) > self.consumed_nonce_limit:
                self._consumed_nonces.popitem(last=False)
            return len(removed)

    async def discard(self, intent_ids: Iterable[str]) -> int:
        """Remove permanently rejected intents without touching nonce records."""
        async with self._lock:
            return len(self._remove(set(intent_ids)))

    async def requeue_front(self, intents: Iterable[VoteIntent]) -> list[VoteIntent]:
        """Put intents back at the head of the queue in their given order.

        Intents still queued are moved to the front. Intents no longer queued
        are reinserted when their key is free and there is room.

        Returns:
            Intents that could not be reinserted.
        """
        ordered = list(intents)
        async with self._lock:
            present_ids = {i.intent_id for i in self._items}
            self._remove({i.intent_id for i in ordered if i.intent_id in present_ids})

            restored: list[VoteIntent] = []
            skipped: list[VoteIntent] = []
            room = self.capacity - len(self._items)
            for intent in ordered:
                owner = self._keys.get(intent.key)
                if owner is not None and owner != intent.intent_id:
                    skipped.append(intent)
                elif len(restored) >= room:
                    skipped.append(intent)
                else:
                    restored.append(intent)
                    self._keys[intent.key] = intent.intent_id

            self._items.extendleft(reversed(restored))

        if skipped:
            logger.error("Could not requeue %d intents; key taken or queue full", len(skipped))
        return skipped

    async def begin_batch(self, size: int) -> BatchJob | None:
        """Claim the submission token and snapshot the front of the queue.

        Returns:
            The batch, or None when the queue is empty (the token stays idle).

        Raises:
            SubmissionInProgressError: Another batch is in flight.
        """
        async with self._lock:
            if self._state is RelayState.SUBMITTING:
                raise SubmissionInProgressError("Batch processing already in progress")
            intents = tuple(islice(self._items, max(0, size)))
            if not intents:
                return None
            self._state = RelayState.SUBMITTING
            return BatchJob(intents=intents)

    async def release(self) -> None:
        """Return the submission token to idle."""
        async with self._lock:
            self._state = RelayState.IDLE
