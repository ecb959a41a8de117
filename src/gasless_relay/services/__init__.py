"""Relay services: validation, queueing, scheduling and submission."""

from .contract import PollContractClient
from .relay import RelayRuntime, get_relay_runtime
from .scheduler import BatchScheduler
from .submitter import BatchSubmitter
from .validator import VoteValidator
from .vote_queue import PendingVoteQueue

__all__ = [
    "PollContractClient",
    "RelayRuntime",
    "get_relay_runtime",
    "BatchScheduler",
    "BatchSubmitter",
    "VoteValidator",
    "PendingVoteQueue",
]
