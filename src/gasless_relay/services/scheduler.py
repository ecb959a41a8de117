"""Timer and threshold driven batch scheduling.

This module provides the BatchScheduler class. It wakes on a fixed interval,
or earlier when intake fills a batch, and hands the front of the queue to
the submitter. At most one batch is ever in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from gasless_relay.core.config import RelayConfig
from gasless_relay.services.errors import RelayError, SubmissionInProgressError
from gasless_relay.services.submitter import BatchSubmitter, SubmissionOutcome, SubmissionResult
from gasless_relay.services.vote_queue import PendingVoteQueue

# Configure logger for this module
logger = logging.getLogger(__name__)

DRAIN_RETRY_DELAY_SECONDS = 0.05


class CycleStatus(str, Enum):
    EMPTY = "empty"
    BUSY = "busy"
    SKIPPED = "skipped"
    SUBMITTED = "submitted"


@dataclass(frozen=True)
class CycleReport:
    """What a single scheduler cycle did."""

    status: CycleStatus
    result: SubmissionResult | None = None

    @property
    def confirmed(self) -> bool:
        return self.result is not None and self.result.outcome is SubmissionOutcome.CONFIRMED


class BatchScheduler:
    """Periodically forms batches from the pending queue and submits them.

    The loop runs as a cancellable asyncio task. Stopping it prevents new
    cycles, waits for an in-flight cycle, and then drains what is left within
    the shutdown timeout.
    """

    def __init__(
        self, queue: PendingVoteQueue, submitter: BatchSubmitter, config: RelayConfig
    ) -> None:
        self.queue = queue
        self.submitter = submitter
        self.config = config
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()
        self._wake = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background batching loop."""

        if not self.submitter.client.enabled:
            logger.warning("Contract or relayer key not configured; batch scheduling disabled")
            return

        if self._task is None or self._task.done():
            self._stopping.clear()
            self._wake.clear()
            self._task = asyncio.create_task(self._run())
            logger.info(
                "Batch processing scheduled every %dms (batch size %d)",
                self.config.batch_interval_ms,
                self.config.batch_size,
            )

    def notify(self) -> None:
        """Request an immediate cycle, e.g. because a full batch is waiting."""
        self._wake.set()

    async def stop(self, drain: bool = True) -> None:
        """Stop the loop, then best-effort submit whatever is still pending."""

        if self._task is not None:
            self._stopping.set()
            self._wake.set()
            await self._task
            self._task = None

        if not drain or not self.submitter.client.enabled or len(self.queue) == 0:
            return

        logger.info("Processing %d remaining votes before shutdown", len(self.queue))
        try:
            await asyncio.wait_for(self.drain(), timeout=self.config.shutdown_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Shutdown timeout reached with %d votes still pending", len(self.queue)
            )

    async def drain(self) -> None:
        """Submit batches until the queue is empty or a batch fails."""
        while len(self.queue) > 0:
            report = await self.run_cycle()
            if report.status is CycleStatus.BUSY:
                await asyncio.sleep(DRAIN_RETRY_DELAY_SECONDS)
                continue
            if report.status is CycleStatus.EMPTY:
                return
            if report.status is CycleStatus.SUBMITTED and not report.confirmed:
                return

    async def run_cycle(self) -> CycleReport:
        """Form and submit one batch if the queue allows it."""
        try:
            batch = await self.queue.begin_batch(self.config.batch_size)
        except SubmissionInProgressError:
            logger.debug("Batch already in flight; skipping cycle")
            return CycleReport(CycleStatus.BUSY)

        if batch is None:
            return CycleReport(CycleStatus.EMPTY)

        try:
            result = await self.submitter.process(batch)
        finally:
            await self.queue.release()

        if result is None:
            return CycleReport(CycleStatus.SKIPPED)
        return CycleReport(CycleStatus.SUBMITTED, result)

    async def _run(self) -> None:
        interval = max(0.01, self.config.batch_interval_seconds)

        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._stopping.is_set():
                break

            try:
                report = await self.run_cycle()
            except RelayError as e:
                logger.warning("BatchScheduler encountered relay error: %s", e)
                continue
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.error(
                    "BatchScheduler encountered data processing error: %s", e, exc_info=True
                )
                continue
            except Exception as e:
                # Queued votes stay put; the next cycle retries them.
                logger.error("BatchScheduler cycle failed unexpectedly: %s", e, exc_info=True)
                continue

            # Keep going while full batches are waiting and the chain is accepting them.
            if report.confirmed and len(self.queue) >= self.config.batch_size:
                self._wake.set()
