"""Polling for Flow transaction finality."""

from __future__ import annotations

import asyncio
import logging

from .base import ChainClient
from .constants import DEFAULT_CONFIRMATION_TIMEOUT_MS, DEFAULT_POLL_INTERVAL_MS
from .exceptions import NetworkError, TransactionTimeout
from .types import TransactionResult, TransactionStatus

logger = logging.getLogger(__name__)


class TransactionConfirmationWaiter:
    """Wait until a submitted transaction is sealed or expired."""

    def __init__(self, chain: ChainClient) -> None:
        self._chain = chain

    async def wait(
        self,
        transaction_id: str,
        timeout_ms: int = DEFAULT_CONFIRMATION_TIMEOUT_MS,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ) -> TransactionResult:
        """Poll ``transaction_id`` until it reaches a terminal status.

        Intermediate statuses are logged, never returned. Transient network
        errors during a poll are logged and polling continues.

        The timeout is only observed at await points. A chain client that
        blocks inside a status call (the synchronous ``requests`` transport
        does) can overrun ``timeout_ms`` by up to its own request timeout.

        Raises:
            TransactionTimeout: If no terminal status is observed within ``timeout_ms``
        """
        if timeout_ms <= 0 or poll_interval_ms <= 0:
            raise ValueError("timeout_ms and poll_interval_ms must be positive")

        logger.debug(
            "Stage CONFIRM [%s]: waiting for seal (timeout_ms=%s, poll_interval_ms=%s)",
            transaction_id,
            timeout_ms,
            poll_interval_ms,
        )

        try:
            result = await asyncio.wait_for(
                self._poll(transaction_id, poll_interval_ms / 1000),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "Stage CONFIRM [%s]: no terminal status within %s ms", transaction_id, timeout_ms
            )
            raise TransactionTimeout(
                f"Transaction {transaction_id} was not sealed within {timeout_ms} ms",
                transaction_id=transaction_id,
                timeout_ms=timeout_ms,
            ) from exc

        logger.info(
            "Stage CONFIRM [%s]: terminal status reached (status=%s, status_code=%s, events=%s)",
            transaction_id,
            result.status.value,
            result.status_code,
            len(result.events),
        )
        return result

    async def _poll(self, transaction_id: str, interval: float) -> TransactionResult:
        attempt = 0
        last_status: TransactionStatus | None = None
        while True:
            attempt += 1
            try:
                result = await self._chain.get_transaction_status(transaction_id)
            except NetworkError as exc:
                logger.debug(
                    "Stage CONFIRM [%s]: status poll error (attempt=%s, status_code=%s): %s",
                    transaction_id,
                    attempt,
                    exc.status_code,
                    exc.message,
                )
            else:
                if result.status.is_terminal:
                    return result
                if result.status is not last_status:
                    logger.debug(
                        "Stage CONFIRM [%s]: status=%s (attempt=%s)",
                        transaction_id,
                        result.status.value,
                        attempt,
                    )
                    last_status = result.status

            await asyncio.sleep(interval)
