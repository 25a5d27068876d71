"""Example: Move every asset out of a COA to an EVM wallet in one batch transaction."""

from __future__ import annotations

import asyncio
import json
import logging
import os

from dotenv import load_dotenv

from coa_migration import (
    ActiveAccount,
    BatchMigrationOrchestrator,
    MigrationAssetsData,
    MigrationConfig,
    MigrationError,
    MigrationReport,
    PayerStatus,
    TransactionAuthorizationResolver,
    static_free_gas,
)
from coa_migration.flow import (
    FlowRestClient,
    FlowSigningBackend,
    HttpPayerStatusProvider,
    LocalKeySigner,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger("migrate_assets")


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


async def _confirm_surge(status: PayerStatus) -> bool:
    answer = input(
        f"Sponsored gas is rate limited (multiplier={status.surge.multiplier}, "
        f"max_fee={status.surge.max_fee}). Pay the fee yourself? [y/N] "
    )
    return answer.strip().lower() in ("y", "yes")


async def _on_submitted(transaction_id: str) -> None:
    logger.info("Submitted migration transaction %s", transaction_id)


def _log_report(report: MigrationReport) -> None:
    logger.info(
        "Migration %s finished: %s succeeded, %s failed",
        report.transaction_id,
        len(report.succeeded),
        len(report.failed),
    )
    for entry in report.failed:
        logger.error(
            "  #%s %s %s failed: code=%s category=%s message=%s",
            entry.index,
            entry.kind.value,
            entry.target,
            entry.error_code,
            entry.error_category,
            entry.error_message,
        )


async def main() -> None:
    flow_address = _require_env("FLOW_ADDRESS")
    private_key = _require_env("FLOW_PRIVATE_KEY")
    wallet_api_url = _require_env("WALLET_API_URL")
    sender = _require_env("COA_ADDRESS")
    receiver = _require_env("EVM_RECEIVER")

    with open(os.getenv("ASSETS_FILE", "assets.json"), encoding="utf-8") as handle:
        assets = MigrationAssetsData.from_dict(json.load(handle))

    config = MigrationConfig(
        network=os.getenv("FLOW_NETWORK", "testnet"),
        wallet_api_url=wallet_api_url,
        hash_algorithm=os.getenv("FLOW_HASH_ALGORITHM", "SHA2_256"),
    ).with_defaulted_urls()

    signer = LocalKeySigner(private_key, config.hash_algorithm)
    resolver = TransactionAuthorizationResolver(
        ActiveAccount(
            address=flow_address,
            key_index=int(os.getenv("FLOW_KEY_INDEX", "0")),
            parent_address=os.getenv("FLOW_PARENT_ADDRESS") or None,
        ),
        config.network,
        HttpPayerStatusProvider(
            wallet_api_url,
            request_timeout=config.request_timeout,
        ),
        FlowSigningBackend(
            signer,
            wallet_api_url,
            config.network,
            request_timeout=config.request_timeout,
        ),
        allow_free_gas=static_free_gas(os.getenv("ALLOW_FREE_GAS", "true").lower() != "false"),
        confirm_surge=_confirm_surge,
    )
    orchestrator = BatchMigrationOrchestrator(FlowRestClient(config), resolver, config=config)

    try:
        report = await orchestrator.migrate(assets, sender, receiver, on_submitted=_on_submitted)
    except MigrationError as exc:
        logger.error("Migration aborted: %s (%s)", exc.message, exc.details)
        raise SystemExit(1) from exc

    _log_report(report)


if __name__ == "__main__":
    asyncio.run(main())
