"""Flow Access REST client implementing :class:`~coa_migration.base.ChainClient`."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Mapping
from typing import Any

import requests

from ..base import ChainClient
from ..config import MigrationConfig
from ..exceptions import NetworkError
from ..types import (
    BATCH_CALL_CONTRACT,
    ExecutionEvent,
    Signable,
    TransactionConfig,
    TransactionResult,
    TransactionStatus,
)
from ..utils import hex_to_byte_array, normalise_flow_address
from .cadence import (
    BATCH_CALL_CONTRACT_SCRIPT,
    batch_call_arguments,
    decode_event_payload,
    resolve_imports,
)
from .encoding import FlowTransaction, ProposalKey
from .http import request_json

logger = logging.getLogger(__name__)

_SCRIPTS = {BATCH_CALL_CONTRACT.name: BATCH_CALL_CONTRACT_SCRIPT}


class FlowRestClient(ChainClient):
    """Build, sign and submit batch transactions through the Flow Access REST API."""

    def __init__(self, config: MigrationConfig, *, session: requests.Session | None = None) -> None:
        self._config = config.with_defaulted_urls()
        self._base_url = str(self._config.access_url)
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # ChainClient
    # ------------------------------------------------------------------
    async def submit_batch_call(self, config: TransactionConfig) -> str:
        script = _SCRIPTS.get(config.kind.name)
        if script is None:
            raise ValueError(f"Unsupported transaction kind: {config.kind.name}")

        reference_block_id = await self.get_sealed_block_id()
        proposer_address = normalise_flow_address(config.proposer.addr)
        sequence_number = await self.get_sequence_number(proposer_address, config.proposer.key_id)

        transaction = FlowTransaction(
            script=resolve_imports(script, self._config.network),
            arguments=batch_call_arguments(config.body, config.evm_gas_limit),
            reference_block_id=reference_block_id,
            gas_limit=config.gas_limit,
            proposal_key=ProposalKey(proposer_address, config.proposer.key_id, sequence_number),
            payer=config.payer.addr,
            authorizers=[account.addr for account in config.authorizations],
        )
        logger.debug(
            "Stage SUBMIT [%s]: transaction built (ref_block=%s, sequence=%s, payer=%s, "
            "authorizers=%s, gas_limit=%s)",
            config.kind.name,
            reference_block_id,
            sequence_number,
            transaction.payer,
            transaction.authorizers,
            config.gas_limit,
        )

        await self.sign_transaction(config, transaction)

        body = request_json(
            self._session,
            "POST",
            f"{self._base_url}/v1/transactions",
            timeout=self._config.request_timeout,
            payload=transaction.to_rest(),
        )
        transaction_id = body.get("id") if isinstance(body, Mapping) else None
        if not isinstance(transaction_id, str) or not transaction_id:
            raise NetworkError(
                "Transaction submission response missing id",
                endpoint=f"{self._base_url}/v1/transactions",
                details={"response": body},
            )

        logger.info("Stage SUBMIT [%s]: transaction sent (tx=%s)", config.kind.name, transaction_id)
        return transaction_id

    async def get_transaction_status(self, transaction_id: str) -> TransactionResult:
        body = request_json(
            self._session,
            "GET",
            f"{self._base_url}/v1/transaction_results/{transaction_id}",
            timeout=self._config.request_timeout,
        )
        if not isinstance(body, Mapping):
            raise NetworkError(
                "Unexpected transaction result format",
                endpoint=f"{self._base_url}/v1/transaction_results/{transaction_id}",
                details={"response": body},
            )
        return parse_transaction_result(body)

    async def get_transaction_events(self, transaction_id: str) -> list[ExecutionEvent]:
        result = await self.get_transaction_status(transaction_id)
        return list(result.events)

    # ------------------------------------------------------------------
    # Transaction assembly
    # ------------------------------------------------------------------
    async def get_sealed_block_id(self) -> str:
        url = f"{self._base_url}/v1/blocks"
        body = request_json(
            self._session,
            "GET",
            url,
            timeout=self._config.request_timeout,
            params={"height": "sealed"},
        )
        try:
            return str(body[0]["header"]["id"])
        except (IndexError, KeyError, TypeError) as exc:
            raise NetworkError(
                "Unexpected block response format", endpoint=url, details={"response": body}
            ) from exc

    async def get_sequence_number(self, address: str, key_index: int) -> int:
        url = f"{self._base_url}/v1/accounts/{normalise_flow_address(address)[2:]}"
        body = request_json(
            self._session,
            "GET",
            url,
            timeout=self._config.request_timeout,
            params={"expand": "keys"},
        )
        keys = body.get("keys") if isinstance(body, Mapping) else None
        for key in keys or []:
            if int(key.get("index", -1)) == key_index:
                return int(key.get("sequence_number", 0))

        raise NetworkError(
            f"Account key {key_index} not found",
            endpoint=url,
            details={"address": address, "key_index": key_index},
        )

    async def sign_transaction(
        self, config: TransactionConfig, transaction: FlowTransaction
    ) -> FlowTransaction:
        """Collect payload signatures from non-payer signers, then the payer's envelope signature."""
        payer = normalise_flow_address(config.payer.addr)
        signed: set[tuple[str, int]] = set()

        for account in (config.proposer, *config.authorizations):
            address = normalise_flow_address(account.addr)
            if address == payer or (address, account.key_id) in signed:
                continue
            signable = Signable(
                message=transaction.payload_message().hex(), voucher=transaction.voucher()
            )
            composite = await account.signing_function(signable)
            transaction.add_payload_signature(
                address, composite.key_id, hex_to_byte_array(composite.signature)
            )
            signed.add((address, account.key_id))
            logger.debug(
                "Stage SIGN [%s]: payload signed (addr=%s, key_id=%s)",
                account.role.value,
                address,
                composite.key_id,
            )

        signable = Signable(message=transaction.envelope_message().hex(), voucher=transaction.voucher())
        composite = await config.payer.signing_function(signable)
        transaction.add_envelope_signature(
            payer, composite.key_id, hex_to_byte_array(composite.signature)
        )
        logger.debug(
            "Stage SIGN [%s]: envelope signed (addr=%s, key_id=%s)",
            config.payer.role.value,
            payer,
            composite.key_id,
        )
        return transaction


def parse_transaction_result(body: Mapping[str, Any]) -> TransactionResult:
    """Convert a ``/v1/transaction_results`` response into a :class:`TransactionResult`."""
    events = tuple(parse_event(raw) for raw in body.get("events") or [] if isinstance(raw, Mapping))
    return TransactionResult(
        status=TransactionStatus.parse(body.get("status")),
        status_code=int(body.get("status_code") or 0),
        error_message=body.get("error_message") or None,
        events=events,
    )


def parse_event(raw: Mapping[str, Any]) -> ExecutionEvent:
    payload = raw.get("payload")
    data: dict[str, Any] = {}
    if isinstance(payload, str) and payload:
        data = decode_event_payload(json.loads(base64.b64decode(payload)))
    elif isinstance(payload, Mapping):
        data = decode_event_payload(payload)

    event_index = raw.get("event_index")
    return ExecutionEvent(
        type=str(raw.get("type", "")),
        data=data,
        event_index=int(event_index) if event_index is not None else None,
    )
