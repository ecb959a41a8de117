"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends

from gasless_relay.services.relay import RelayRuntime, get_relay_runtime


def get_relay_runtime_dep() -> RelayRuntime:
    """Return the shared relay runtime."""
    return get_relay_runtime()


# Type alias for relay runtime dependency
RelayDep = Annotated[RelayRuntime, Depends(get_relay_runtime_dep)]
