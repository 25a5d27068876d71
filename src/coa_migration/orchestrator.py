"""Top-level migration of COA assets through one batched transaction."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .authorization import TransactionAuthorizationResolver
from .base import ChainClient
from .config import MigrationConfig
from .confirmation import TransactionConfirmationWaiter
from .correlation import EventResultCorrelator, classify_error
from .encoding import build_batch
from .exceptions import MigrationError, SurgeRateLimited
from .types import (
    BATCH_CALL_CONTRACT,
    CallBatch,
    MigrationAssetsData,
    MigrationReport,
    PerAssetResult,
    TransactionConfig,
    TransactionResult,
)
from .validation import validate_evm_address

logger = logging.getLogger(__name__)

SubmittedCallback = Callable[[str], Awaitable[None] | None]


@dataclass(frozen=True)
class MigrationSubmission:
    """A submitted batch awaiting its report."""

    transaction_id: str
    batch: CallBatch
    assets: MigrationAssetsData
    config: TransactionConfig


class BatchMigrationOrchestrator:
    """Move every selected asset out of a COA in a single Flow transaction.

    Sub-calls inside the batch succeed or fail independently, so a sealed
    transaction may still carry failed transfers. Those are reported per
    asset and never retried.
    """

    def __init__(
        self,
        chain: ChainClient,
        resolver: TransactionAuthorizationResolver,
        *,
        config: MigrationConfig | None = None,
        waiter: TransactionConfirmationWaiter | None = None,
        correlator: EventResultCorrelator | None = None,
    ) -> None:
        self._chain = chain
        self._resolver = resolver
        self._config = config or MigrationConfig()
        self._waiter = waiter or TransactionConfirmationWaiter(chain)
        self._correlator = correlator or EventResultCorrelator()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def migrate(
        self,
        assets: MigrationAssetsData,
        sender: str,
        receiver: str,
        on_submitted: SubmittedCallback | None = None,
    ) -> MigrationReport:
        """Submit the batch, wait for it to seal and report each asset."""
        submission = await self.submit(assets, sender, receiver)
        if on_submitted is not None:
            outcome = on_submitted(submission.transaction_id)
            if outcome is not None:
                await outcome
        return await self.report(submission)

    async def submit(
        self, assets: MigrationAssetsData, sender: str, receiver: str
    ) -> MigrationSubmission:
        """Validate, encode, authorize and submit the batch.

        Raises:
            InvalidAddress: If the sender, receiver or any asset address is malformed
            InvalidAmount: If any amount is not positive
            AuthorizationFailure: If a signing role cannot be resolved or fails to sign
            UserCancelled: If the user declines to self-pay under surge pricing
        """
        validate_evm_address(sender, field="sender")
        validate_evm_address(receiver, field="receiver")

        logger.info(
            "Stage MIGRATE: start (sender=%s, receiver=%s, assets=%s, network=%s)",
            sender,
            receiver,
            len(assets),
            self._config.network.value,
        )

        batch = build_batch(assets, sender, receiver)

        try:
            tx_config = await self._resolver.resolve(
                BATCH_CALL_CONTRACT,
                batch,
                gas_limit=self._config.compute_limit,
                evm_gas_limit=self._config.evm_gas_limit,
            )
            try:
                transaction_id = await self._chain.submit_batch_call(tx_config)
            except SurgeRateLimited as exc:
                logger.warning(
                    "Stage MIGRATE: sponsored gas rate limited (retry_after=%s)", exc.retry_after
                )
                tx_config = await self._resolver.fallback_to_self_pay(tx_config, exc)
                transaction_id = await self._chain.submit_batch_call(tx_config)
        except MigrationError as exc:
            logger.error(
                "Stage MIGRATE: aborted before submission (error=%s, reason=%s)",
                type(exc).__name__,
                exc.message,
            )
            raise

        logger.info(
            "Stage MIGRATE: submitted (tx=%s, payer=%s, self_paid=%s, entries=%s)",
            transaction_id,
            tx_config.payer.addr,
            tx_config.self_paid,
            len(batch),
        )
        return MigrationSubmission(
            transaction_id=transaction_id, batch=batch, assets=assets, config=tx_config
        )

    async def report(self, submission: MigrationSubmission) -> MigrationReport:
        """Wait for the submitted batch to seal and correlate per-asset outcomes.

        Raises:
            TransactionTimeout: If the transaction does not seal in time
            UnmatchedEventCount: If events cannot be paired with batch entries
        """
        transaction_id = submission.transaction_id
        result = await self._waiter.wait(
            transaction_id,
            self._config.confirmation_timeout_ms,
            self._config.poll_interval_ms,
        )

        if result.failed:
            logger.error(
                "Stage MIGRATE [%s]: transaction failed (status=%s, status_code=%s, error=%s)",
                transaction_id,
                result.status.value,
                result.status_code,
                result.error_message,
            )
            entries = self._fail_all(submission, result)
        else:
            events = list(result.events) or await self._chain.get_transaction_events(
                transaction_id
            )
            entries = self._correlator.correlate(events, submission.batch, submission.assets)

        report = MigrationReport(transaction_id=transaction_id, result=result, assets=tuple(entries))
        logger.info(
            "Stage MIGRATE [%s]: complete (succeeded=%s, failed=%s)",
            transaction_id,
            len(report.succeeded),
            len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _fail_all(submission: MigrationSubmission, result: TransactionResult) -> list[PerAssetResult]:
        message = result.error_message or f"Transaction {result.status.value.lower()}"
        category = classify_error(message)
        return [
            PerAssetResult(
                index=index,
                kind=kind,
                asset=asset,
                target=submission.batch.addresses[index],
                success=False,
                error_code=result.status_code or None,
                error_message=message,
                error_category=category,
            )
            for index, (kind, asset) in enumerate(submission.assets.ordered())
        ]
