"""Application settings and configuration.

This module defines all configuration options for the gasless vote relay.
Settings are loaded from environment variables (or a `.env` file) with
defaults suited to a local Hardhat node.
"""

from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Relay settings loaded from environment variables.

    Variable names match the ones the relay has always read, so an existing
    `.env` keeps working.
    """

    # Application metadata
    app_name: str = Field(default="Gasless Poll Relayer", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3001, alias="PORT")

    # Chain connection
    rpc_url: str = Field(default="http://localhost:8545", alias="RPC_URL")
    chain_id: int = Field(default=31337, alias="CHAIN_ID")
    contract_address: str | None = Field(default=None, alias="CONTRACT_ADDRESS")
    relayer_private_key: str | None = Field(default=None, alias="RELAYER_PRIVATE_KEY")
    rpc_timeout_seconds: float = Field(default=10.0, alias="RPC_TIMEOUT_SECONDS")
    tx_confirmation_timeout_seconds: float = Field(
        default=120.0,
        alias="TX_CONFIRMATION_TIMEOUT_SECONDS",
    )

    # EIP-712 signing domain (must match the contract's constructor values)
    eip712_domain_name: str = Field(default="GaslessPoll", alias="EIP712_DOMAIN_NAME")
    eip712_domain_version: str = Field(default="1", alias="EIP712_DOMAIN_VERSION")
    signature_recovery: Literal["contract", "local"] = Field(
        default="contract",
        alias="SIGNATURE_RECOVERY",
    )

    # Batching
    batch_size: int = Field(default=10, ge=1, alias="BATCH_SIZE")
    batch_interval_ms: int = Field(default=10_000, ge=1, alias="BATCH_INTERVAL")
    max_pending_votes: int = Field(default=100, ge=1, alias="MAX_PENDING_VOTES")
    shutdown_timeout_seconds: float = Field(default=30.0, alias="SHUTDOWN_TIMEOUT_SECONDS")
    revalidate_before_submit: bool = Field(default=True, alias="REVALIDATE_BEFORE_SUBMIT")

    # CORS configuration for the voting frontend
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:3000"],
        alias="ALLOWED_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        # ALLOWED_ORIGINS is a comma separated list.
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


settings = Settings()
