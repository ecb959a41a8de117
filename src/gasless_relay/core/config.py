"""Immutable relay configuration.

`Settings` is mutable and environment-driven; the relay runtime works from a
frozen `RelayConfig` snapshot taken once at startup so that batch sizing and
signing domain cannot drift while the process is running.

Example:
    from gasless_relay.core.config import load_relay_config
    config = load_relay_config()
    print(config.batch_size)
"""

from __future__ import annotations

from dataclasses import dataclass

from gasless_relay.core.settings import Settings, settings


@dataclass(frozen=True)
class RelayConfig:
    """Process-wide relay configuration fixed at startup."""

    rpc_url: str
    chain_id: int
    contract_address: str | None
    operator_private_key: str | None
    batch_size: int
    batch_interval_ms: int
    max_pending_votes: int
    domain_name: str = "GaslessPoll"
    domain_version: str = "1"
    signature_recovery: str = "contract"
    rpc_timeout_seconds: float = 10.0
    confirmation_timeout_seconds: float = 120.0
    shutdown_timeout_seconds: float = 30.0
    revalidate_before_submit: bool = True

    @property
    def enabled(self) -> bool:
        """Return True when the relay can both read from and submit to the contract."""
        return bool(self.contract_address and self.operator_private_key)

    @property
    def batch_interval_seconds(self) -> float:
        return self.batch_interval_ms / 1000.0

    def estimated_processing_time_ms(self, queue_position: int) -> int:
        """Estimate how long until the vote at `queue_position` is submitted."""
        if queue_position <= 0:
            return 0
        batches_ahead = -(-queue_position // self.batch_size)
        return batches_ahead * self.batch_interval_ms


def load_relay_config(source: Settings | None = None) -> RelayConfig:
    """Build configuration object from global settings."""

    cfg = source or settings
    return RelayConfig(
        rpc_url=cfg.rpc_url,
        chain_id=cfg.chain_id,
        contract_address=cfg.contract_address,
        operator_private_key=cfg.relayer_private_key,
        batch_size=cfg.batch_size,
        batch_interval_ms=cfg.batch_interval_ms,
        max_pending_votes=cfg.max_pending_votes,
        domain_name=cfg.eip712_domain_name,
        domain_version=cfg.eip712_domain_version,
        signature_recovery=cfg.signature_recovery,
        rpc_timeout_seconds=float(cfg.rpc_timeout_seconds),
        confirmation_timeout_seconds=float(cfg.tx_confirmation_timeout_seconds),
        shutdown_timeout_seconds=float(cfg.shutdown_timeout_seconds),
        revalidate_before_submit=cfg.revalidate_before_submit,
    )
