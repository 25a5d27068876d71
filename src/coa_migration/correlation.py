"""Pairing of EVM execution events with batch entries."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any

from .exceptions import UnmatchedEventCount
from .types import CallBatch, ExecutionEvent, MigrationAssetsData, PerAssetResult

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Diagnostic buckets for failed sub-calls."""

    EXECUTION_REVERTED = "execution_reverted"
    ARITHMETIC = "arithmetic"
    OUT_OF_GAS = "out_of_gas"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    UNKNOWN = "unknown"


_CATEGORY_MARKERS = (
    ("execution reverted", ErrorCategory.EXECUTION_REVERTED),
    ("arithmetic", ErrorCategory.ARITHMETIC),
    ("out of gas", ErrorCategory.OUT_OF_GAS),
    ("insufficient", ErrorCategory.INSUFFICIENT_FUNDS),
)


def classify_error(message: str | None) -> str:
    """Bucket an EVM error message; the bucket never affects success."""
    text = (message or "").lower()
    for marker, category in _CATEGORY_MARKERS:
        if marker in text:
            return category.value
    return ErrorCategory.UNKNOWN.value


def is_success_code(code: Any) -> bool:
    """Return True only for ``0`` and ``"0"``."""
    if code is None or isinstance(code, bool):
        return False
    if isinstance(code, int):
        return code == 0
    return str(code).strip() == "0"


def _code_as_int(code: Any) -> int | None:
    if code is None:
        return None
    try:
        return int(str(code).strip())
    except ValueError:
        return None


class EventResultCorrelator:
    """Positionally pair execution events with the batch that produced them."""

    def correlate(
        self,
        events: Iterable[ExecutionEvent],
        batch: CallBatch,
        assets: MigrationAssetsData,
    ) -> list[PerAssetResult]:
        """Return one result per batch entry, in batch order.

        Raises:
            UnmatchedEventCount: If the number of EVM execution events differs
                from the number of batch entries
        """
        evm_events = self._evm_events(events)
        ordered_assets = assets.ordered()

        if len(ordered_assets) != len(batch):
            raise UnmatchedEventCount(
                "Batch does not match the asset list",
                expected=len(ordered_assets),
                actual=len(batch),
            )

        if len(evm_events) != len(batch):
            logger.error(
                "Stage CORRELATE: event count mismatch (expected=%s, actual=%s)",
                len(batch),
                len(evm_events),
            )
            raise UnmatchedEventCount(
                f"Expected {len(batch)} EVM execution events, got {len(evm_events)}",
                expected=len(batch),
                actual=len(evm_events),
            )

        results = []
        for index, ((kind, asset), event) in enumerate(zip(ordered_assets, evm_events)):
            success = is_success_code(event.error_code)
            error_message = None if success else event.error_message
            entry = PerAssetResult(
                index=index,
                kind=kind,
                asset=asset,
                target=batch.addresses[index],
                success=success,
                error_code=None if success else _code_as_int(event.error_code),
                error_message=error_message,
                error_category=None if success else classify_error(error_message),
                gas_consumed=event.gas_consumed,
            )
            results.append(entry)

            if success:
                logger.info(
                    "Stage CORRELATE: entry %s succeeded (kind=%s, target=%s, gas=%s)",
                    index,
                    kind.value,
                    entry.target,
                    entry.gas_consumed,
                )
            else:
                logger.warning(
                    "Stage CORRELATE: entry %s failed (kind=%s, target=%s, code=%s, "
                    "category=%s, message=%s)",
                    index,
                    kind.value,
                    entry.target,
                    entry.error_code,
                    entry.error_category,
                    entry.error_message,
                )

        return results

    @staticmethod
    def _evm_events(events: Iterable[ExecutionEvent]) -> Sequence[ExecutionEvent]:
        evm_events = [event for event in events if event.is_evm_execution]
        if all(event.event_index is not None for event in evm_events):
            evm_events.sort(key=lambda event: event.event_index)
        return evm_events


def correlate(
    events: Iterable[ExecutionEvent], batch: CallBatch, assets: MigrationAssetsData
) -> list[PerAssetResult]:
    """Module-level shortcut for :meth:`EventResultCorrelator.correlate`."""
    return EventResultCorrelator().correlate(events, batch, assets)
