"""Signature and nonce validation for incoming vote intents.

Every check except the structural one reads chain state, so validation can
fail for reasons unrelated to the vote itself. Those failures surface as
`ValidatorUnavailableError` and must not be reported as a rejection.
"""

from __future__ import annotations

import logging

from web3 import Web3
from web3.exceptions import ContractLogicError

from gasless_relay.core.config import RelayConfig
from gasless_relay.models.intent import VoteIntent
from gasless_relay.services.contract import PollContractClient
from gasless_relay.services.errors import (
    ContractUnavailableError,
    RejectionReason,
    ValidatorUnavailableError,
    VoteRejectedError,
)
from gasless_relay.services.signing import (
    UINT256_MAX,
    SigningDomain,
    is_well_formed_signature,
    recover_vote_signer,
)

logger = logging.getLogger(__name__)


def check_structure(intent: VoteIntent) -> None:
    """Reject intents whose fields are out of range or badly encoded.

    Raises:
        VoteRejectedError: With reason `MALFORMED`.
    """
    if isinstance(intent.poll_id, bool) or not isinstance(intent.poll_id, int):
        raise VoteRejectedError(RejectionReason.MALFORMED, "pollId must be an integer")
    if not 0 <= intent.poll_id <= UINT256_MAX:
        raise VoteRejectedError(RejectionReason.MALFORMED, "pollId out of range")
    if not isinstance(intent.vote, bool):
        raise VoteRejectedError(RejectionReason.MALFORMED, "vote must be a boolean")
    if isinstance(intent.nonce, bool) or not isinstance(intent.nonce, int):
        raise VoteRejectedError(RejectionReason.MALFORMED, "nonce must be an integer")
    if not 0 <= intent.nonce <= UINT256_MAX:
        raise VoteRejectedError(RejectionReason.MALFORMED, "nonce out of range")
    if not isinstance(intent.voter, str) or not Web3.is_address(intent.voter):
        raise VoteRejectedError(RejectionReason.MALFORMED, "voter is not a valid address")
    if not is_well_formed_signature(intent.signature):
        raise VoteRejectedError(
            RejectionReason.MALFORMED,
            "signature must be a 0x-prefixed 65-byte hex string",
        )


class VoteValidator:
    """Validates intents against the contract before they are queued."""

    def __init__(self, client: PollContractClient, config: RelayConfig) -> None:
        self.client = client
        self.config = config

    @property
    def signing_domain(self) -> SigningDomain | None:
        if not self.config.contract_address:
            return None
        return SigningDomain(
            name=self.config.domain_name,
            version=self.config.domain_version,
            chain_id=self.config.chain_id,
            verifying_contract=self.config.contract_address,
        )

    async def validate(self, intent: VoteIntent) -> None:
        """Run every check in order, stopping at the first failure.

        Raises:
            VoteRejectedError: The intent is invalid and must not be queued.
            ValidatorUnavailableError: Chain state could not be read.
        """
        check_structure(intent)
        try:
            await self._check_poll_active(intent)
            await self._check_not_voted(intent)
            await self._check_nonce(intent)
            await self._check_signature(intent)
        except ContractUnavailableError as exc:
            logger.warning("Validation of vote from %s unavailable: %s", intent.short_voter(), exc)
            raise ValidatorUnavailableError(str(exc)) from exc

    async def _check_poll_active(self, intent: VoteIntent) -> None:
        try:
            poll = await self.client.get_poll(intent.poll_id)
        except ContractLogicError as exc:
            raise VoteRejectedError(
                RejectionReason.POLL_INACTIVE, f"Poll {intent.poll_id} does not exist"
            ) from exc
        if not poll.active:
            raise VoteRejectedError(RejectionReason.POLL_INACTIVE, "Poll is not active")

    async def _check_not_voted(self, intent: VoteIntent) -> None:
        if await self.client.has_voted(intent.poll_id, intent.voter):
            raise VoteRejectedError(
                RejectionReason.ALREADY_VOTED, "User has already voted on this poll"
            )

    async def _check_nonce(self, intent: VoteIntent) -> None:
        expected = await self.client.get_voter_nonce(intent.voter)
        if expected != intent.nonce:
            raise VoteRejectedError(
                RejectionReason.STALE_NONCE,
                f"Invalid nonce. Expected: {expected}, got: {intent.nonce}",
            )

    async def _check_signature(self, intent: VoteIntent) -> None:
        recovered = await self._recover_signer(intent)
        if recovered is None or recovered.lower() != intent.voter.lower():
            raise VoteRejectedError(RejectionReason.INVALID_SIGNATURE, "Invalid signature")

    async def _recover_signer(self, intent: VoteIntent) -> str | None:
        domain = self.signing_domain
        if self.config.signature_recovery == "local" and domain is not None:
            try:
                return recover_vote_signer(
                    domain, intent.poll_id, intent.vote, intent.nonce, intent.signature
                )
            except ValueError:
                return None

        try:
            return await self.client.recover_signer(
                intent.poll_id, intent.vote, intent.nonce, intent.signature_bytes()
            )
        except ContractLogicError:
            # ECDSA recovery reverts on malleable or zero signatures.
            return None
