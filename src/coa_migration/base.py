"""Interfaces for the collaborators the migration pipeline depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .constants import Network
from .types import (
    ExecutionEvent,
    PayerStatus,
    RateLimited,
    Signable,
    SigningRole,
    TransactionConfig,
    TransactionResult,
)

FreeGasCheck = Callable[[], Awaitable[bool]]
SurgePrompt = Callable[[PayerStatus], Awaitable[bool]]


class ChainClient(ABC):
    """Submits batched calls and reports their on-chain progress."""

    @abstractmethod
    async def submit_batch_call(self, config: TransactionConfig) -> str:
        """Sign and submit the transaction described by ``config``; return its id."""

    @abstractmethod
    async def get_transaction_status(self, transaction_id: str) -> TransactionResult:
        pass

    @abstractmethod
    async def get_transaction_events(self, transaction_id: str) -> list[ExecutionEvent]:
        pass


class PayerStatusProvider(ABC):
    """Source of sponsored-gas availability per network."""

    @abstractmethod
    async def get_payer_status(self, network: Network) -> PayerStatus:
        pass


class SigningBackend(ABC):
    """Produces signatures for every transaction role."""

    @abstractmethod
    async def sign_local(self, message: str) -> str:
        """Sign a hex message with the proposer's local key; return a hex signature."""

    @abstractmethod
    async def sign_remote(self, role: SigningRole, signable: Signable) -> str | RateLimited:
        """Request a sponsor signature, or a RateLimited answer under surge pricing."""


def static_free_gas(allowed: bool) -> FreeGasCheck:
    """Build a free-gas check that always answers ``allowed``."""

    async def check() -> bool:
        return allowed

    return check
