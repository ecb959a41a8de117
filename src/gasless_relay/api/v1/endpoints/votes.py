"""Vote intake and batch control endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from gasless_relay.api.v1.dependencies import RelayDep
from gasless_relay.schemas.vote import PendingVote, PendingVotes, VoteAccepted, VoteSubmission
from gasless_relay.services.errors import (
    ContractNotConfiguredError,
    SubmissionInProgressError,
)
from gasless_relay.services.scheduler import CycleStatus

router = APIRouter(tags=["votes"])


@router.post("/submit-vote", response_model=VoteAccepted, response_model_by_alias=True)
async def submit_vote(submission: VoteSubmission, relay: RelayDep) -> VoteAccepted:
    """Validate a signed vote and queue it for the next batch."""
    receipt = await relay.submit_intent(submission.to_intent())
    return VoteAccepted(
        queue_position=receipt.queue_position,
        estimated_processing_time_ms=receipt.estimated_processing_time_ms,
    )


@router.get("/pending-votes", response_model=PendingVotes, response_model_by_alias=True)
async def list_pending_votes(relay: RelayDep) -> PendingVotes:
    """Diagnostic listing of queued votes, without signatures."""
    intents = relay.queue.snapshot()
    return PendingVotes(
        count=len(intents),
        votes=[PendingVote.model_validate(intent.redacted()) for intent in intents],
    )


@router.post("/process-batch")
async def process_batch(relay: RelayDep) -> dict[str, object]:
    """Force an immediate batch cycle.

    Returns:
        Cycle status and, when a batch was sent, its outcome

    Raises:
        SubmissionInProgressError: Another batch is already in flight (409).
    """
    if not relay.client.enabled:
        raise ContractNotConfiguredError("Contract or relayer key not configured")

    report = await relay.scheduler.run_cycle()
    if report.status is CycleStatus.BUSY:
        raise SubmissionInProgressError("Batch processing already in progress")

    body: dict[str, object] = {
        "success": True,
        "status": report.status.value,
        "message": "Batch processing completed",
    }
    if report.result is not None:
        body.update(
            {
                "outcome": report.result.outcome.value,
                "batchSize": report.result.batch_size,
                "discarded": report.result.discarded,
                "txHash": report.result.tx_hash,
                "error": report.result.error,
            }
        )
    return body
