# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Iterator
from itertools import count
from unittest.mock import AsyncMock

import pytest
from eth_account import Account
from fastapi import FastAPI
from fastapi.testclient import TestClient
from web3 import Web3

from gasless_relay.api.v1.dependencies import get_relay_runtime_dep
from gasless_relay.core.config import RelayConfig
from gasless_relay.main import app as fastapi_app
from gasless_relay.models.intent import VoteIntent
from gasless_relay.services import relay as relay_module
from gasless_relay.services.contract import BatchReceipt, PollContractClient, PollInfo
from gasless_relay.services.relay import RelayRuntime
from gasless_relay.services.signing import SigningDomain, recover_vote_signer, sign_vote
from gasless_relay.services.vote_queue import PendingVoteQueue

# Well-known Hardhat development accounts; never hold real funds.
OPERATOR_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
VOTER_KEYS = [
    "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d",
    "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a",
    "0x7c852118294e51e653712a81e05800f419141751be58f605c371e15141b007a6",
    "0x47e179ec197488593b187f80a00eb0da91f1b9d0b13f8733639f19c30a34926a",
    "0x8b3a350cf5c34c9194ca85829a2df0ec3153be0318b5e2d3348e872092edffba",
    "0x92db14e403b83dfe3df233f83dfa3a0d7096f21ca9b0d6d6b8d88b2b4ec1564e",
]
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CHAIN_ID = 31337

TEST_DOMAIN = SigningDomain(
    name="GaslessPoll",
    version="1",
    chain_id=CHAIN_ID,
    verifying_contract=CONTRACT_ADDRESS,
)

_TX_COUNTER = count(1)


def voter_address(index: int) -> str:
    return str(Account.from_key(VOTER_KEYS[index]).address)


def make_intent(
    voter_index: int = 0,
    poll_id: int = 1,
    vote: bool = True,
    nonce: int = 0,
    domain: SigningDomain = TEST_DOMAIN,
) -> VoteIntent:
    """Build an intent carrying a genuine EIP-712 signature."""
    key = VOTER_KEYS[voter_index]
    return VoteIntent(
        poll_id=poll_id,
        vote=vote,
        nonce=nonce,
        signature=sign_vote(key, domain, poll_id, vote, nonce),
        voter=voter_address(voter_index),
    )


def make_payload(**overrides: object) -> dict[str, object]:
    intent = make_intent(
        voter_index=int(overrides.pop("voter_index", 0)),  # type: ignore[arg-type]
        poll_id=int(overrides.get("pollId", 1)),  # type: ignore[arg-type]
        vote=bool(overrides.get("vote", True)),
        nonce=int(overrides.get("nonce", 0)),  # type: ignore[arg-type]
    )
    payload: dict[str, object] = {
        "pollId": intent.poll_id,
        "vote": intent.vote,
        "nonce": intent.nonce,
        "signature": intent.signature,
        "voter": intent.voter,
    }
    payload.update(overrides)
    return payload


def next_receipt() -> BatchReceipt:
    n = next(_TX_COUNTER)
    return BatchReceipt(tx_hash=f"0x{n:064x}", block_number=100 + n, gas_used=21_000 * n)


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(
        rpc_url="http://127.0.0.1:8545",
        chain_id=CHAIN_ID,
        contract_address=CONTRACT_ADDRESS,
        operator_private_key=OPERATOR_KEY,
        batch_size=3,
        # Long enough that the timer never fires inside a test.
        batch_interval_ms=3_600_000,
        max_pending_votes=5,
        shutdown_timeout_seconds=2.0,
    )


@pytest.fixture
def mock_contract() -> AsyncMock:
    """Chain double: every poll active, no prior votes, nonce 0, real signer recovery."""
    client = AsyncMock(spec=PollContractClient)
    client.enabled = True
    client.get_poll.side_effect = lambda poll_id: PollInfo(
        poll_id=poll_id,
        question=f"Poll {poll_id}?",
        yes_votes=0,
        no_votes=0,
        active=True,
        creator=CONTRACT_ADDRESS,
        created_at=1_700_000_000,
    )
    client.has_voted.return_value = False
    client.get_voter_nonce.return_value = 0

    def _recover(poll_id: int, vote: bool, nonce: int, signature: bytes) -> str:
        return recover_vote_signer(TEST_DOMAIN, poll_id, vote, nonce, Web3.to_hex(signature))

    client.recover_signer.side_effect = _recover
    client.submit_votes_batch.side_effect = lambda *args: next_receipt()
    client.is_connected.return_value = True
    client.get_metrics.return_value = {}
    return client


@pytest.fixture
def queue() -> PendingVoteQueue:
    return PendingVoteQueue(capacity=5)


@pytest.fixture
def runtime(relay_config: RelayConfig, mock_contract: AsyncMock) -> RelayRuntime:
    return RelayRuntime(config=relay_config, client=mock_contract)


@pytest.fixture
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture
def client(
    app: FastAPI, runtime: RelayRuntime, monkeypatch: pytest.MonkeyPatch
) -> Iterator[TestClient]:
    monkeypatch.setattr(relay_module._RelayRuntimeSingleton, "_instance", runtime)
    app.dependency_overrides[get_relay_runtime_dep] = lambda: runtime
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_relay_runtime_dep, None)


@pytest.fixture
def intent_factory() -> Callable[..., VoteIntent]:
    return make_intent
