"""Configuration containers for the migration pipeline."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .constants import (
    DEFAULT_COMPUTE_LIMIT,
    DEFAULT_CONFIRMATION_TIMEOUT_MS,
    DEFAULT_EVM_GAS_LIMIT,
    DEFAULT_PAYER_STATUS_TTL,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_REQUEST_TIMEOUT,
    FLOW_ACCESS_URLS,
    Network,
    get_network,
)

HASH_ALGORITHMS = ("SHA2_256", "SHA3_256")


@dataclass(frozen=True)
class MigrationConfig:
    """Aggregated configuration used to construct the migration pipeline."""

    network: Network = Network.MAINNET
    access_url: str | None = None
    wallet_api_url: str | None = None
    compute_limit: int = DEFAULT_COMPUTE_LIMIT
    evm_gas_limit: int = DEFAULT_EVM_GAS_LIMIT
    confirmation_timeout_ms: int = DEFAULT_CONFIRMATION_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    payer_status_ttl: int = DEFAULT_PAYER_STATUS_TTL
    hash_algorithm: str = "SHA2_256"

    def __post_init__(self) -> None:
        object.__setattr__(self, "network", get_network(self.network))
        if self.hash_algorithm not in HASH_ALGORITHMS:
            raise ValueError(f"Unsupported hash algorithm: {self.hash_algorithm}")
        if self.poll_interval_ms <= 0 or self.confirmation_timeout_ms <= 0:
            raise ValueError("Confirmation timeout and poll interval must be positive")

    def with_defaulted_urls(self) -> MigrationConfig:
        """Return a copy with the Flow access URL defaulted from the network."""

        access_url = self.access_url or FLOW_ACCESS_URLS[self.network]
        wallet_api_url = self.wallet_api_url.rstrip("/") if self.wallet_api_url else None
        return replace(self, access_url=access_url.rstrip("/"), wallet_api_url=wallet_api_url)
