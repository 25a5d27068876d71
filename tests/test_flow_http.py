"""Tests for the HTTP-backed Flow adapters."""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, cast

import pytest
import requests
from eth_keys import keys

from coa_migration.config import MigrationConfig
from coa_migration.exceptions import AuthorizationFailure, NetworkError, ValidationError
from coa_migration.flow.client import FlowRestClient, parse_transaction_result
from coa_migration.flow.payer_status import HttpPayerStatusProvider
from coa_migration.flow.signing import FlowSigningBackend, LocalKeySigner
from coa_migration.types import (
    BATCH_CALL_CONTRACT,
    AuthorizationAccount,
    CallBatch,
    CompositeSignature,
    RateLimited,
    Signable,
    SigningRole,
    TransactionConfig,
    TransactionStatus,
)

PRIVATE_KEY = "0x" + "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ACCESS_URL = "https://rest-testnet.onflow.org"
WALLET_URL = "https://wallet.example"


class DummyResponse:
    def __init__(
        self, status_code: int = 200, body: Any = None, headers: dict[str, str] | None = None
    ) -> None:
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.text = json.dumps(body)

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no body")
        return self._body


class DummySession:
    """Returns canned responses keyed by (method, url) and records every request."""

    def __init__(self, responses: dict[tuple[str, str], DummyResponse | Exception]) -> None:
        self.responses = responses
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> DummyResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self.responses[(method, url)]
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url: str, **kwargs: Any) -> DummyResponse:
        return self.request("POST", url, **kwargs)


# ----------------------------------------------------------------------
# Local signing
# ----------------------------------------------------------------------
class TestLocalKeySigner:
    """Test secp256k1 signing over Flow message digests."""

    def test_signature_recovers_public_key(self):
        signer = LocalKeySigner(PRIVATE_KEY)
        message = "464c4f572d56302e302d7472616e73616374696f6e"

        signature = bytes.fromhex(signer.sign(message))
        digest = hashlib.sha256(bytes.fromhex(message)).digest()
        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:], "big")

        recovered = {
            keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(digest).to_hex()
            for v in (0, 1)
        }
        assert len(signature) == 64
        assert signer.public_key in recovered

    def test_deterministic(self):
        signer = LocalKeySigner(PRIVATE_KEY)
        assert signer.sign("abcd") == signer.sign("abcd")

    def test_hash_algorithm_changes_signature(self):
        sha2 = LocalKeySigner(PRIVATE_KEY, "SHA2_256").sign("abcd")
        sha3 = LocalKeySigner(PRIVATE_KEY, "SHA3_256").sign("abcd")
        assert sha2 != sha3

    def test_rejects_unknown_hash(self):
        with pytest.raises(ValidationError):
            LocalKeySigner(PRIVATE_KEY, "KECCAK")

    def test_rejects_short_key(self):
        with pytest.raises(ValidationError):
            LocalKeySigner("0x1234")


# ----------------------------------------------------------------------
# Remote signing
# ----------------------------------------------------------------------
def _backend(response: DummyResponse | Exception, role: SigningRole = SigningRole.FEE_PAYER):
    path = "/api/signAsFeePayer" if role is SigningRole.FEE_PAYER else "/api/signAsBridgePayer"
    session = DummySession({("POST", f"{WALLET_URL}{path}"): response})
    backend = FlowSigningBackend(
        LocalKeySigner(PRIVATE_KEY), WALLET_URL, "mainnet", session=cast(requests.Session, session)
    )
    return backend, session


@pytest.mark.asyncio
async def test_fee_payer_signature() -> None:
    backend, session = _backend(DummyResponse(200, {"status": 200, "data": {"sig": "abcd"}}))

    signature = await backend.sign_remote(
        SigningRole.FEE_PAYER, Signable(message="ff", voucher={"payer": "0x1"})
    )

    assert signature == "abcd"
    sent = session.requests[0]
    assert sent["json"] == {"transaction": {"payer": "0x1"}, "message": {"envelopeMessage": "ff"}}
    assert sent["headers"] == {"network": "mainnet"}


@pytest.mark.asyncio
async def test_bridge_payer_signs_payload() -> None:
    backend, session = _backend(
        DummyResponse(200, {"data": {"sig": "beef"}}), role=SigningRole.BRIDGE_PAYER
    )

    signature = await backend.sign_remote(SigningRole.BRIDGE_PAYER, Signable(message="ff"))

    assert signature == "beef"
    assert session.requests[0]["json"]["message"] == {"payload": "ff"}


@pytest.mark.asyncio
async def test_http_429_is_rate_limited() -> None:
    backend, _ = _backend(
        DummyResponse(429, {"message": "Too Many Requests"}, headers={"Retry-After": "5"})
    )

    outcome = await backend.sign_remote(SigningRole.FEE_PAYER, Signable(message="ff"))

    assert outcome == RateLimited(
        role=SigningRole.FEE_PAYER, message="Too Many Requests", retry_after=5.0
    )


@pytest.mark.asyncio
async def test_enveloped_429_is_rate_limited() -> None:
    backend, _ = _backend(DummyResponse(200, {"status": 429, "message": "surge"}))

    outcome = await backend.sign_remote(SigningRole.FEE_PAYER, Signable(message="ff"))

    assert isinstance(outcome, RateLimited)
    assert outcome.message == "surge"
    assert outcome.retry_after is None


@pytest.mark.asyncio
async def test_server_error_is_authorization_failure() -> None:
    backend, _ = _backend(DummyResponse(500, {"message": "boom"}))

    with pytest.raises(AuthorizationFailure) as exc_info:
        await backend.sign_remote(SigningRole.FEE_PAYER, Signable(message="ff"))

    assert exc_info.value.role == "fee_payer"


@pytest.mark.asyncio
async def test_missing_signature_is_authorization_failure() -> None:
    backend, _ = _backend(DummyResponse(200, {"data": {}}))

    with pytest.raises(AuthorizationFailure):
        await backend.sign_remote(SigningRole.FEE_PAYER, Signable(message="ff"))


@pytest.mark.asyncio
async def test_connection_error_is_authorization_failure() -> None:
    backend, _ = _backend(requests.ConnectionError("down"))

    with pytest.raises(AuthorizationFailure):
        await backend.sign_remote(SigningRole.FEE_PAYER, Signable(message="ff"))


@pytest.mark.asyncio
async def test_proposer_role_has_no_remote_signer() -> None:
    backend, _ = _backend(DummyResponse(200, {}))

    with pytest.raises(AuthorizationFailure):
        await backend.sign_remote(SigningRole.PROPOSER, Signable(message="ff"))


# ----------------------------------------------------------------------
# Payer status
# ----------------------------------------------------------------------
STATUS_URL = f"{WALLET_URL}/api/v1/payer/status"
STATUS_BODY = {
    "status": 200,
    "data": {
        "surge": {"active": False, "ttlSeconds": 10},
        "feePayer": {"address": "0x319e67f2ef9d937f", "keyIndex": 0, "available": True},
    },
}


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_payer_status_cached_until_ttl() -> None:
    session = DummySession({("GET", STATUS_URL): DummyResponse(200, STATUS_BODY)})
    clock = FakeClock()
    provider = HttpPayerStatusProvider(
        WALLET_URL, session=cast(requests.Session, session), clock=clock
    )

    first = await provider.get_payer_status("testnet")
    clock.now += 9
    second = await provider.get_payer_status("testnet")
    clock.now += 2
    await provider.get_payer_status("testnet")

    assert first is second
    assert first.fee_payer.address == "0x319e67f2ef9d937f"
    assert len(session.requests) == 2
    assert session.requests[0]["headers"] == {"network": "testnet"}


@pytest.mark.asyncio
async def test_payer_status_zero_ttl_is_not_cached() -> None:
    body = {"status": 200, "data": {"surge": {"active": True, "ttlSeconds": 0}}}
    session = DummySession({("GET", STATUS_URL): DummyResponse(200, body)})
    provider = HttpPayerStatusProvider(
        WALLET_URL, session=cast(requests.Session, session), clock=FakeClock()
    )

    await provider.get_payer_status("testnet")
    await provider.get_payer_status("testnet")

    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_payer_status_cache_is_per_network_and_clearable() -> None:
    session = DummySession({("GET", STATUS_URL): DummyResponse(200, STATUS_BODY)})
    provider = HttpPayerStatusProvider(
        WALLET_URL, session=cast(requests.Session, session), clock=FakeClock()
    )

    await provider.get_payer_status("testnet")
    await provider.get_payer_status("mainnet")
    provider.clear_cache("testnet")
    await provider.get_payer_status("testnet")
    await provider.get_payer_status("mainnet")

    assert [r["headers"]["network"] for r in session.requests] == ["testnet", "mainnet", "testnet"]


@pytest.mark.asyncio
async def test_payer_status_http_error() -> None:
    session = DummySession({("GET", STATUS_URL): DummyResponse(503, {"message": "down"})})
    provider = HttpPayerStatusProvider(WALLET_URL, session=cast(requests.Session, session))

    with pytest.raises(NetworkError) as exc_info:
        await provider.get_payer_status("mainnet")

    assert exc_info.value.status_code == 503


# ----------------------------------------------------------------------
# Flow access client
# ----------------------------------------------------------------------
PROPOSER = "01cf0e2f2f715450"
FEE_PAYER = "319e67f2ef9d937f"
BLOCK_ID = "7bc42fe85d32ca513769a74f97f7e1a7bad6c9407f0d934c2aa645ef9cf613c7"


def _account(addr: str, key_id: int, role: SigningRole, seen: list[tuple[str, str]]):
    async def signing_function(signable: Signable) -> CompositeSignature:
        seen.append((role.value, signable.message))
        return CompositeSignature(addr=f"0x{addr}", key_id=key_id, signature="11" * 64)

    return AuthorizationAccount(
        temp_id=f"0x{addr}-{key_id}",
        addr=addr,
        key_id=key_id,
        role=role,
        signing_function=signing_function,
    )


def _client_session() -> DummySession:
    return DummySession(
        {
            ("GET", f"{ACCESS_URL}/v1/blocks"): DummyResponse(200, [{"header": {"id": BLOCK_ID}}]),
            ("GET", f"{ACCESS_URL}/v1/accounts/{PROPOSER}"): DummyResponse(
                200,
                {
                    "keys": [
                        {"index": "0", "sequence_number": "7"},
                        {"index": "1", "sequence_number": "3"},
                    ]
                },
            ),
            ("POST", f"{ACCESS_URL}/v1/transactions"): DummyResponse(200, {"id": "abc123"}),
        }
    )


def _config(payer: AuthorizationAccount, proposer: AuthorizationAccount) -> TransactionConfig:
    batch = CallBatch()
    batch.append("0x" + "22" * 20, "50000000000000000", b"")
    return TransactionConfig(
        kind=BATCH_CALL_CONTRACT,
        body=batch,
        gas_limit=9999,
        evm_gas_limit=30_000_000,
        proposer=proposer,
        authorizations=(proposer,),
        payer=payer,
    )


@pytest.mark.asyncio
async def test_submit_sponsored_transaction() -> None:
    seen: list[tuple[str, str]] = []
    proposer = _account(PROPOSER, 1, SigningRole.PROPOSER, seen)
    payer = _account(FEE_PAYER, 0, SigningRole.FEE_PAYER, seen)
    session = _client_session()
    client = FlowRestClient(
        MigrationConfig(network="testnet"), session=cast(requests.Session, session)
    )

    transaction_id = await client.submit_batch_call(_config(payer, proposer))

    assert transaction_id == "abc123"
    assert [role for role, _ in seen] == ["proposer", "fee_payer"]
    assert all(message.startswith(b"FLOW-V0.0-transaction".hex()) for _, message in seen)

    body = session.requests[-1]["json"]
    assert body["proposal_key"] == {"address": PROPOSER, "key_index": "1", "sequence_number": "3"}
    assert body["payer"] == FEE_PAYER
    assert body["authorizers"] == [PROPOSER]
    assert [sig["address"] for sig in body["payload_signatures"]] == [PROPOSER]
    assert [sig["address"] for sig in body["envelope_signatures"]] == [FEE_PAYER]
    assert "0x8c5303eaa26202d6" in base64.b64decode(body["script"]).decode()
    amounts = json.loads(base64.b64decode(body["arguments"][1]))
    assert amounts["value"][0] == {"type": "UFix64", "value": "0.05000000"}
    assert session.requests[0]["params"] == {"height": "sealed"}


@pytest.mark.asyncio
async def test_submit_self_paid_transaction_signs_envelope_only() -> None:
    seen: list[tuple[str, str]] = []
    proposer = _account(PROPOSER, 0, SigningRole.PROPOSER, seen)
    session = _client_session()
    client = FlowRestClient(
        MigrationConfig(network="testnet"), session=cast(requests.Session, session)
    )

    await client.submit_batch_call(_config(proposer, proposer))

    body = session.requests[-1]["json"]
    assert len(seen) == 1
    assert body["payload_signatures"] == []
    assert body["envelope_signatures"][0]["address"] == PROPOSER
    assert body["proposal_key"]["sequence_number"] == "7"


@pytest.mark.asyncio
async def test_transaction_status_with_events() -> None:
    payload = {
        "type": "Event",
        "value": {
            "id": "A.8c5303eaa26202d6.EVM.TransactionExecuted",
            "fields": [
                {"name": "errorCode", "value": {"type": "UInt16", "value": "307"}},
                {"name": "errorMessage", "value": {"type": "String", "value": "execution reverted"}},
            ],
        },
    }
    url = f"{ACCESS_URL}/v1/transaction_results/abc123"
    session = DummySession(
        {
            ("GET", url): DummyResponse(
                200,
                {
                    "status": "Sealed",
                    "status_code": 0,
                    "error_message": "",
                    "events": [
                        {
                            "type": "A.8c5303eaa26202d6.EVM.TransactionExecuted",
                            "event_index": "2",
                            "payload": base64.b64encode(json.dumps(payload).encode()).decode(),
                        }
                    ],
                },
            )
        }
    )
    client = FlowRestClient(
        MigrationConfig(network="testnet"), session=cast(requests.Session, session)
    )

    result = await client.get_transaction_status("abc123")
    events = await client.get_transaction_events("abc123")

    assert result.status is TransactionStatus.SEALED
    assert result.error_message is None
    assert events[0].error_code == 307
    assert events[0].error_message == "execution reverted"
    assert events[0].event_index == 2


@pytest.mark.asyncio
async def test_missing_transaction_result_is_network_error() -> None:
    url = f"{ACCESS_URL}/v1/transaction_results/nope"
    session = DummySession({("GET", url): DummyResponse(404, {"message": "not found"})})
    client = FlowRestClient(
        MigrationConfig(network="testnet"), session=cast(requests.Session, session)
    )

    with pytest.raises(NetworkError) as exc_info:
        await client.get_transaction_status("nope")

    assert exc_info.value.status_code == 404


def test_parse_pending_result() -> None:
    result = parse_transaction_result({"status": "Pending", "status_code": 0, "events": []})

    assert result.status is TransactionStatus.PENDING
    assert result.events == ()
