"""Relay runtime wiring.

`RelayRuntime` owns one instance of each relay component and exposes the
intake flow used by the HTTP layer: local admission precheck, chain
validation, then the locked enqueue decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gasless_relay.core.config import RelayConfig, load_relay_config
from gasless_relay.models.intent import VoteIntent
from gasless_relay.services.contract import PollContractClient
from gasless_relay.services.scheduler import BatchScheduler
from gasless_relay.services.submitter import BatchSubmitter, RelayStats
from gasless_relay.services.validator import VoteValidator
from gasless_relay.services.vote_queue import PendingVoteQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntakeReceipt:
    """Acceptance details returned to the voter."""

    queue_position: int
    estimated_processing_time_ms: int


class RelayRuntime:
    """Container for the validator, queue, submitter and scheduler."""

    def __init__(
        self,
        config: RelayConfig | None = None,
        client: PollContractClient | None = None,
    ) -> None:
        self.config = config or load_relay_config()
        self.client = client or PollContractClient(self.config)
        self.queue = PendingVoteQueue(self.config.max_pending_votes)
        self.validator = VoteValidator(self.client, self.config)
        self.stats = RelayStats()
        self.submitter = BatchSubmitter(self.client, self.queue, self.config, self.stats)
        self.scheduler = BatchScheduler(self.queue, self.submitter, self.config)

    async def submit_intent(self, intent: VoteIntent) -> IntakeReceipt:
        """Validate and queue an intent.

        Raises:
            DuplicatePendingError, QueueFullError: Local admission failed.
            VoteRejectedError: The intent is invalid.
            ValidatorUnavailableError: Chain state could not be read.
        """
        await self.queue.precheck(intent)
        await self.validator.validate(intent)
        position = await self.queue.enqueue(intent)

        logger.info(
            "Vote queued: poll %d, voter %s, vote %s",
            intent.poll_id,
            intent.short_voter(),
            "Yes" if intent.vote else "No",
        )

        if len(self.queue) >= self.config.batch_size:
            self.scheduler.notify()

        return IntakeReceipt(
            queue_position=position,
            estimated_processing_time_ms=self.config.estimated_processing_time_ms(position),
        )

    async def start(self) -> None:
        await self.scheduler.start()

    async def shutdown(self) -> None:
        await self.scheduler.stop(drain=True)
        await self.client.close()


class _RelayRuntimeSingleton:
    """Singleton wrapper for RelayRuntime."""

    _instance: RelayRuntime | None = None

    @classmethod
    def get_instance(cls) -> RelayRuntime:
        """Get or create the singleton RelayRuntime instance."""
        if cls._instance is None:
            cls._instance = RelayRuntime()
        return cls._instance


def get_relay_runtime() -> RelayRuntime:
    """Return the process-wide relay runtime."""
    return _RelayRuntimeSingleton.get_instance()
