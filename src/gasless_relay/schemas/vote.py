"""Vote-related Pydantic schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr

from gasless_relay.models.intent import VoteIntent


class VoteSubmission(BaseModel):
    """Schema for a signed vote intent posted by a voter."""

    model_config = ConfigDict(populate_by_name=True)

    poll_id: StrictInt = Field(..., alias="pollId", description="Target poll id")
    vote: StrictBool = Field(..., description="true for yes, false for no")
    nonce: StrictInt = Field(..., description="Voter's current on-chain nonce")
    signature: StrictStr = Field(..., description="0x-prefixed EIP-712 signature")
    voter: StrictStr = Field(..., description="Address of the signer")

    def to_intent(self) -> VoteIntent:
        return VoteIntent(
            poll_id=self.poll_id,
            vote=self.vote,
            nonce=self.nonce,
            signature=self.signature,
            voter=self.voter,
        )


class VoteAccepted(BaseModel):
    """Response returned once a vote is queued.

    The queue position is a promise to submit, not a confirmation.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Vote submitted successfully"
    queue_position: int = Field(..., alias="queuePosition")
    estimated_processing_time_ms: int = Field(..., alias="estimatedProcessingTimeMs")


class PendingVote(BaseModel):
    """Redacted view of a queued intent; signatures are never exposed."""

    model_config = ConfigDict(populate_by_name=True)

    poll_id: int = Field(..., alias="pollId")
    voter: str
    vote: bool
    timestamp: int


class PendingVotes(BaseModel):
    count: int
    votes: list[PendingVote]
