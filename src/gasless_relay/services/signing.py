"""EIP-712 vote signing helpers.

The relay normally asks the contract to recover the signer, but the same
recovery can be done locally with `eth_account` when the signing domain is
known. Tooling and tests use `sign_vote` to produce signatures a wallet
would produce.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

SIGNATURE_LENGTH_BYTES = 65
UINT256_MAX = 2**256 - 1


@dataclass(frozen=True)
class SigningDomain:
    """EIP-712 domain the voter signed under."""

    name: str
    version: str
    chain_id: int
    verifying_contract: str


def vote_typed_data(domain: SigningDomain, poll_id: int, vote: bool, nonce: int) -> dict[str, Any]:
    """Return the full EIP-712 payload for a `Vote` message."""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "Vote": [
                {"name": "pollId", "type": "uint256"},
                {"name": "vote", "type": "bool"},
                {"name": "nonce", "type": "uint256"},
            ],
        },
        "primaryType": "Vote",
        "domain": {
            "name": domain.name,
            "version": domain.version,
            "chainId": domain.chain_id,
            "verifyingContract": Web3.to_checksum_address(domain.verifying_contract),
        },
        "message": {"pollId": poll_id, "vote": vote, "nonce": nonce},
    }


def is_well_formed_signature(signature: str) -> bool:
    """Return True for a 0x-prefixed hex string of exactly 65 bytes."""
    if not isinstance(signature, str) or not signature[:2].lower() == "0x":
        return False
    body = signature[2:]
    if len(body) != SIGNATURE_LENGTH_BYTES * 2:
        return False
    try:
        bytes.fromhex(body)
    except ValueError:
        return False
    return True


def recover_vote_signer(
    domain: SigningDomain, poll_id: int, vote: bool, nonce: int, signature: str
) -> str:
    """Recover the address that signed a vote.

    Raises:
        ValueError: If the signature cannot be decoded or recovered.
    """
    signable = encode_typed_data(full_message=vote_typed_data(domain, poll_id, vote, nonce))
    try:
        return str(Account.recover_message(signable, signature=signature))
    except Exception as err:
        raise ValueError(f"Unrecoverable signature: {err}") from err


def sign_vote(
    private_key: str, domain: SigningDomain, poll_id: int, vote: bool, nonce: int
) -> str:
    """Sign a vote the way a wallet's `eth_signTypedData_v4` would.

    Returns:
        0x-prefixed hex signature
    """
    signable = encode_typed_data(full_message=vote_typed_data(domain, poll_id, vote, nonce))
    signed = Account.sign_message(signable, private_key=private_key)
    return Web3.to_hex(signed.signature)
