"""Batch submission and reconciliation.

A batch is either fully committed or fully requeued. A revert is never
blamed on an individual vote, since the batch call fails atomically and the
relay cannot tell which intent poisoned it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from web3.exceptions import ContractLogicError

from gasless_relay.core.config import RelayConfig
from gasless_relay.models.intent import BatchJob, VoteIntent
from gasless_relay.services.contract import BatchReceipt, PollContractClient
from gasless_relay.services.errors import (
    BatchRevertedError,
    ContractUnavailableError,
)
from gasless_relay.services.vote_queue import PendingVoteQueue

logger = logging.getLogger(__name__)

FAILURE_WARNING_THRESHOLD = 3


class SubmissionOutcome(str, Enum):
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    NETWORK_FAILURE = "network_failure"


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of one submission attempt."""

    outcome: SubmissionOutcome
    batch_size: int
    receipt: BatchReceipt | None = None
    error: str | None = None
    discarded: int = 0

    @property
    def tx_hash(self) -> str | None:
        return self.receipt.tx_hash if self.receipt else None


@dataclass
class RelayStats:
    """Running counters for operator monitoring."""

    batches_attempted: int = 0
    batches_confirmed: int = 0
    batches_reverted: int = 0
    network_failures: int = 0
    votes_confirmed: int = 0
    votes_discarded: int = 0
    consecutive_failures: int = 0
    total_gas_used: int = 0
    last_tx_hash: str | None = None

    def record(self, result: SubmissionResult) -> None:
        self.batches_attempted += 1
        self.votes_discarded += result.discarded
        if result.outcome is SubmissionOutcome.CONFIRMED:
            self.batches_confirmed += 1
            self.votes_confirmed += result.batch_size
            self.consecutive_failures = 0
            if result.receipt is not None:
                self.total_gas_used += result.receipt.gas_used
                self.last_tx_hash = result.receipt.tx_hash
        elif result.outcome is SubmissionOutcome.REVERTED:
            self.batches_reverted += 1
            self.consecutive_failures += 1
        else:
            self.network_failures += 1
            self.consecutive_failures += 1

    def as_dict(self) -> dict[str, object]:
        return {
            "batchesAttempted": self.batches_attempted,
            "batchesConfirmed": self.batches_confirmed,
            "batchesReverted": self.batches_reverted,
            "networkFailures": self.network_failures,
            "votesConfirmed": self.votes_confirmed,
            "votesDiscarded": self.votes_discarded,
            "consecutiveFailures": self.consecutive_failures,
            "totalGasUsed": self.total_gas_used,
            "lastTxHash": self.last_tx_hash,
        }


class BatchSubmitter:
    """Packages batches into a single contract call and reconciles the queue."""

    def __init__(
        self,
        client: PollContractClient,
        queue: PendingVoteQueue,
        config: RelayConfig,
        stats: RelayStats | None = None,
    ) -> None:
        self.client = client
        self.queue = queue
        self.config = config
        self.stats = stats or RelayStats()

    async def submit(self, batch: BatchJob) -> SubmissionResult:
        """Send the batch on-chain and classify the outcome.

        Does not touch the queue.
        """
        poll_ids, votes, nonces, signatures = batch.call_arguments()
        try:
            receipt = await self.client.submit_votes_batch(poll_ids, votes, nonces, signatures)
        except BatchRevertedError as exc:
            return SubmissionResult(SubmissionOutcome.REVERTED, len(batch), error=str(exc))
        except ContractUnavailableError as exc:
            return SubmissionResult(SubmissionOutcome.NETWORK_FAILURE, len(batch), error=str(exc))
        return SubmissionResult(SubmissionOutcome.CONFIRMED, len(batch), receipt=receipt)

    async def process(self, batch: BatchJob) -> SubmissionResult | None:
        """Revalidate, submit and reconcile a batch claimed from the queue.

        Returns:
            The submission result, or None if revalidation emptied the batch.
        """
        discarded = 0
        if self.config.revalidate_before_submit:
            stale = await self._find_stale(batch.intents)
            if stale:
                discarded = await self.queue.discard(i.intent_id for i in stale)
                batch = batch.without(i.intent_id for i in stale)
            if not batch.intents:
                self.stats.votes_discarded += discarded
                logger.info("No valid votes to process")
                return None

        logger.info("Processing batch of %d votes", len(batch))
        result = replace(await self.submit(batch), discarded=discarded)
        await self._reconcile(batch, result)
        self.stats.record(result)
        if self.stats.consecutive_failures >= FAILURE_WARNING_THRESHOLD:
            logger.warning(
                "%d consecutive batch failures; a poisoned vote may be blocking the queue",
                self.stats.consecutive_failures,
            )
        return result

    async def _reconcile(self, batch: BatchJob, result: SubmissionResult) -> None:
        if result.outcome is SubmissionOutcome.CONFIRMED:
            await self.queue.commit(batch.ids)
            receipt = result.receipt
            if receipt is not None:
                logger.info(
                    "Batch confirmed in block %d (tx %s, gas used %d)",
                    receipt.block_number,
                    receipt.tx_hash,
                    receipt.gas_used,
                )
            return

        await self.queue.requeue_front(batch.intents)
        if result.outcome is SubmissionOutcome.REVERTED:
            logger.error(
                "Batch of %d votes reverted, requeued at front: %s", len(batch), result.error
            )
        else:
            logger.warning(
                "Batch of %d votes hit a network failure, requeued at front: %s",
                len(batch),
                result.error,
            )

    async def _find_stale(self, intents: tuple[VoteIntent, ...]) -> list[VoteIntent]:
        """Return intents that would certainly revert: closed poll or vote already cast.

        Read failures and reverted reads keep the intent; the submission itself
        will surface them.
        """
        poll_active: dict[int, bool] = {}
        stale: list[VoteIntent] = []
        for intent in intents:
            try:
                if intent.poll_id not in poll_active:
                    try:
                        poll = await self.client.get_poll(intent.poll_id)
                        poll_active[intent.poll_id] = poll.active
                    except ContractLogicError:
                        poll_active[intent.poll_id] = False
                if not poll_active[intent.poll_id]:
                    logger.info(
                        "Discarding vote for inactive poll %d from %s",
                        intent.poll_id,
                        intent.short_voter(),
                    )
                    stale.append(intent)
                    continue
                if await self.client.has_voted(intent.poll_id, intent.voter):
                    logger.info(
                        "Discarding vote already recorded on-chain for poll %d from %s",
                        intent.poll_id,
                        intent.short_voter(),
                    )
                    stale.append(intent)
            except ContractUnavailableError as exc:
                logger.warning("Error checking poll %d: %s", intent.poll_id, exc)
            except ContractLogicError as exc:
                logger.warning(
                    "Vote status read for poll %d reverted, keeping vote: %s", intent.poll_id, exc
                )
        return stale
