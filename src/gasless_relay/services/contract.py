"""Client for the on-chain GaslessPoll contract.

This module provides the PollContractClient class that handles all
communication between the relay and the voting contract. It includes:

- Read-through queries used by vote validation
- Batch submission signed by the operator account
- Connectivity checks for health reporting
- Request metrics for monitoring
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import ContractLogicError, TimeExhausted

from gasless_relay.core.config import RelayConfig, load_relay_config
from gasless_relay.services.errors import (
    BatchRevertedError,
    ContractNotConfiguredError,
    ContractUnavailableError,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

T = TypeVar("T")

RECEIPT_STATUS_SUCCESS = 1

GASLESS_POLL_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "submitVotes",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_pollIds", "type": "uint256[]"},
            {"name": "_votes", "type": "bool[]"},
            {"name": "_nonces", "type": "uint256[]"},
            {"name": "_signatures", "type": "bytes[]"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "recoverSigner",
        "stateMutability": "view",
        "inputs": [
            {"name": "_pollId", "type": "uint256"},
            {"name": "_vote", "type": "bool"},
            {"name": "_nonce", "type": "uint256"},
            {"name": "_signature", "type": "bytes"},
        ],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "name": "getUserNonce",
        "stateMutability": "view",
        "inputs": [{"name": "_user", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "hasUserVoted",
        "stateMutability": "view",
        "inputs": [
            {"name": "_pollId", "type": "uint256"},
            {"name": "_user", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "getPoll",
        "stateMutability": "view",
        "inputs": [{"name": "_pollId", "type": "uint256"}],
        "outputs": [
            {"name": "question", "type": "string"},
            {"name": "yesVotes", "type": "uint256"},
            {"name": "noVotes", "type": "uint256"},
            {"name": "active", "type": "bool"},
            {"name": "creator", "type": "address"},
            {"name": "createdAt", "type": "uint256"},
        ],
    },
]


@dataclass(frozen=True)
class PollInfo:
    """Poll state as reported by `getPoll`."""

    poll_id: int
    question: str
    yes_votes: int
    no_votes: int
    active: bool
    creator: str
    created_at: int


@dataclass(frozen=True)
class BatchReceipt:
    """Confirmed batch transaction details."""

    tx_hash: str
    block_number: int
    gas_used: int


@dataclass
class ContractMetrics:
    """Metrics collection for contract calls."""

    request_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    call_counts: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    def record(
        self, call: str, response_time: float, success: bool, error_type: str | None = None
    ) -> None:
        """Record a call metric."""
        self.request_count += 1
        self.total_response_time += response_time
        self.call_counts[call] += 1
        if not success:
            self.error_count += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def get_average_response_time(self) -> float:
        """Get average response time."""
        return self.total_response_time / self.request_count if self.request_count > 0 else 0.0


class PollContractClient:
    """Async web3 wrapper around the GaslessPoll contract."""

    def __init__(self, config: RelayConfig | None = None) -> None:
        self.config = config or load_relay_config()
        self._w3: AsyncWeb3 | None = None
        self._contract: AsyncContract | None = None
        self._account: LocalAccount | None = None
        self._client_lock = asyncio.Lock()
        # Operator nonces are sequential; never build two transactions at once.
        self._send_lock = asyncio.Lock()
        self._metrics = ContractMetrics()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def operator_address(self) -> str | None:
        if not self.config.operator_private_key:
            return None
        return str(Account.from_key(self.config.operator_private_key).address)

    async def _ensure_contract(self) -> AsyncContract:
        if not self.config.contract_address:
            raise ContractNotConfiguredError("Contract address is not configured")

        async with self._client_lock:
            if self._contract is None:
                self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.config.rpc_url))
                self._contract = self._w3.eth.contract(
                    address=Web3.to_checksum_address(self.config.contract_address),
                    abi=GASLESS_POLL_ABI,
                )
                if self.config.operator_private_key:
                    self._account = Account.from_key(self.config.operator_private_key)

        return self._contract

    async def _call(self, name: str, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        """Await a chain call, translating transport failures.

        `ContractLogicError` passes through untouched so callers can tell a
        revert apart from an unreachable node.
        """
        start_time = time.time()
        success = False
        error_type: str | None = None
        try:
            result = await asyncio.wait_for(
                awaitable, timeout=timeout or self.config.rpc_timeout_seconds
            )
            success = True
            return result
        except ContractLogicError:
            error_type = "revert"
            raise
        except (asyncio.TimeoutError, TimeExhausted) as exc:
            error_type = "timeout"
            raise ContractUnavailableError(f"{name} timed out") from exc
        except Exception as exc:
            error_type = "network_error"
            raise ContractUnavailableError(f"{name} failed: {exc}") from exc
        finally:
            self._metrics.record(name, time.time() - start_time, success, error_type)

    async def get_poll(self, poll_id: int) -> PollInfo:
        contract = await self._ensure_contract()
        raw = await self._call("getPoll", contract.functions.getPoll(poll_id).call())
        question, yes_votes, no_votes, active, creator, created_at = raw
        return PollInfo(
            poll_id=poll_id,
            question=str(question),
            yes_votes=int(yes_votes),
            no_votes=int(no_votes),
            active=bool(active),
            creator=str(creator),
            created_at=int(created_at),
        )

    async def has_voted(self, poll_id: int, voter: str) -> bool:
        contract = await self._ensure_contract()
        result = await self._call(
            "hasUserVoted",
            contract.functions.hasUserVoted(poll_id, Web3.to_checksum_address(voter)).call(),
        )
        return bool(result)

    async def get_voter_nonce(self, voter: str) -> int:
        contract = await self._ensure_contract()
        result = await self._call(
            "getUserNonce",
            contract.functions.getUserNonce(Web3.to_checksum_address(voter)).call(),
        )
        return int(result)

    async def recover_signer(self, poll_id: int, vote: bool, nonce: int, signature: bytes) -> str:
        contract = await self._ensure_contract()
        result = await self._call(
            "recoverSigner",
            contract.functions.recoverSigner(poll_id, vote, nonce, signature).call(),
        )
        return str(result)

    async def submit_votes_batch(
        self,
        poll_ids: Sequence[int],
        votes: Sequence[bool],
        nonces: Sequence[int],
        signatures: Sequence[bytes],
    ) -> BatchReceipt:
        """Send one `submitVotes` transaction and wait for its receipt.

        Raises:
            BatchRevertedError: The chain rejected the call, either during gas
                estimation or in the mined receipt.
            ContractUnavailableError: The node was unreachable or the receipt
                did not arrive before the confirmation timeout.
        """
        if not self.enabled:
            raise ContractNotConfiguredError("Relayer key or contract address not configured")

        contract = await self._ensure_contract()
        w3, account = self._w3, self._account
        if w3 is None or account is None:
            raise ContractNotConfiguredError("Relayer key or contract address not configured")

        async with self._send_lock:
            try:
                tx_nonce = await self._call(
                    "getTransactionCount",
                    w3.eth.get_transaction_count(account.address, "pending"),
                )
                tx = await self._call(
                    "buildTransaction",
                    contract.functions.submitVotes(
                        list(poll_ids), list(votes), list(nonces), list(signatures)
                    ).build_transaction(
                        {
                            "from": account.address,
                            "nonce": tx_nonce,
                            "chainId": self.config.chain_id,
                        }
                    ),
                )
            except ContractLogicError as exc:
                raise BatchRevertedError(f"Batch rejected during gas estimation: {exc}") from exc

            signed = account.sign_transaction(tx)
            tx_hash = await self._call(
                "sendRawTransaction", w3.eth.send_raw_transaction(signed.raw_transaction)
            )
            tx_hash_hex = Web3.to_hex(tx_hash)
            logger.info("Batch transaction sent: %s", tx_hash_hex)

            confirmation_timeout = self.config.confirmation_timeout_seconds
            receipt = await self._call(
                "waitForReceipt",
                w3.eth.wait_for_transaction_receipt(tx_hash, timeout=confirmation_timeout),
                # Leave headroom over web3's own polling timeout.
                timeout=confirmation_timeout + self.config.rpc_timeout_seconds,
            )

        if receipt["status"] != RECEIPT_STATUS_SUCCESS:
            raise BatchRevertedError(
                f"Batch transaction {tx_hash_hex} reverted", tx_hash=tx_hash_hex
            )

        return BatchReceipt(
            tx_hash=tx_hash_hex,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt["gasUsed"]),
        )

    async def is_connected(self) -> bool:
        """Return True when the contract is configured and the node answers."""
        if not self.enabled:
            return False
        try:
            await self._ensure_contract()
            w3 = self._w3
            if w3 is None:
                return False
            return bool(await self._call("isConnected", w3.is_connected()))
        except ContractUnavailableError as exc:
            logger.debug("Contract connectivity check failed: %s", exc)
            return False

    def get_metrics(self) -> dict[str, Any]:
        """Get contract call metrics."""
        return {
            "request_count": self._metrics.request_count,
            "error_count": self._metrics.error_count,
            "average_response_time": self._metrics.get_average_response_time(),
            "error_counts_by_type": dict(self._metrics.error_counts_by_type),
            "call_counts": dict(self._metrics.call_counts),
        }

    async def close(self) -> None:
        """Clean up underlying provider resources."""

        async with self._client_lock:
            if self._w3 is not None:
                disconnect = getattr(self._w3.provider, "disconnect", None)
                if disconnect is not None:
                    await disconnect()
            self._w3 = None
            self._contract = None
            self._account = None
