"""Domain types for the relay."""

from .intent import BatchJob, VoteIntent

__all__ = ["BatchJob", "VoteIntent"]
