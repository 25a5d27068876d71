from __future__ import annotations

import pytest

from coa_migration.authorization import ResolutionState, TransactionAuthorizationResolver
from coa_migration.base import PayerStatusProvider, SigningBackend, static_free_gas
from coa_migration.constants import Network
from coa_migration.exceptions import AuthorizationFailure, SurgeRateLimited, UserCancelled
from coa_migration.types import (
    BATCH_CALL_CONTRACT,
    ActiveAccount,
    CallBatch,
    PayerInfo,
    PayerStatus,
    RateLimited,
    Signable,
    SigningRole,
    SurgeInfo,
    TransactionKind,
)

ACCOUNT = ActiveAccount(address="0x01cf0e2f2f715450", key_index=0)
FEE_PAYER = PayerInfo(address="0x319e67f2ef9d937f", key_index=1, available=True)
BRIDGE_PAYER = PayerInfo(address="0x4c578d1d6bdfc1a4", key_index=2, available=True)
BRIDGE_KIND = TransactionKind("bridgeTokensToEvmWithPayer")


class DummyPayerStatusProvider(PayerStatusProvider):
    def __init__(self, status: PayerStatus) -> None:
        self.status = status
        self.calls: list[Network] = []

    async def get_payer_status(self, network: Network) -> PayerStatus:
        self.calls.append(network)
        return self.status


class DummySigningBackend(SigningBackend):
    def __init__(self, remote: dict[SigningRole, str | RateLimited] | None = None) -> None:
        self.remote = remote or {}
        self.local_messages: list[str] = []
        self.remote_calls: list[SigningRole] = []

    async def sign_local(self, message: str) -> str:
        self.local_messages.append(message)
        return "aa" * 64

    async def sign_remote(self, role: SigningRole, signable: Signable) -> str | RateLimited:
        self.remote_calls.append(role)
        return self.remote.get(role, "bb" * 64)


class RecordingFreeGas:
    def __init__(self, allowed: bool) -> None:
        self.allowed = allowed
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.allowed


class ScriptedPrompt:
    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.statuses: list[PayerStatus] = []

    async def __call__(self, status: PayerStatus) -> bool:
        self.statuses.append(status)
        return self.answer


def _status(*, surge: bool = False, fee_payer: PayerInfo = FEE_PAYER) -> PayerStatus:
    return PayerStatus(
        surge=SurgeInfo(active=surge, multiplier=3.0 if surge else None),
        fee_payer=fee_payer,
        bridge_payer=BRIDGE_PAYER,
    )


def _resolver(
    status: PayerStatus,
    *,
    backend: DummySigningBackend | None = None,
    free_gas=None,
    prompt=None,
    account: ActiveAccount = ACCOUNT,
) -> TransactionAuthorizationResolver:
    return TransactionAuthorizationResolver(
        account,
        "mainnet",
        DummyPayerStatusProvider(status),
        backend or DummySigningBackend(),
        allow_free_gas=free_gas or static_free_gas(True),
        confirm_surge=prompt or ScriptedPrompt(True),
    )


@pytest.mark.asyncio
async def test_surge_forces_self_pay_without_free_gas_check() -> None:
    free_gas = RecordingFreeGas(True)
    resolver = _resolver(_status(surge=True), free_gas=free_gas)

    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    assert config.payer is config.proposer
    assert config.self_paid
    assert free_gas.calls == 0
    assert resolver.state is ResolutionState.RESOLVED


@pytest.mark.asyncio
async def test_free_gas_disallowed_forces_self_pay() -> None:
    resolver = _resolver(_status(), free_gas=static_free_gas(False))

    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    assert config.payer.role is SigningRole.PROPOSER


@pytest.mark.asyncio
async def test_unavailable_fee_payer_forces_self_pay() -> None:
    resolver = _resolver(_status(fee_payer=PayerInfo(available=False)))

    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    assert config.payer.role is SigningRole.PROPOSER


@pytest.mark.asyncio
async def test_sponsored_fee_payer_selected() -> None:
    resolver = _resolver(_status())

    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch(), gas_limit=100, evm_gas_limit=7)

    assert config.payer.role is SigningRole.FEE_PAYER
    assert config.payer.addr == "319e67f2ef9d937f"
    assert config.payer.key_id == 1
    assert config.payer.temp_id == "0x319e67f2ef9d937f-1"
    assert config.authorizations == (config.proposer,)
    assert (config.gas_limit, config.evm_gas_limit) == (100, 7)


@pytest.mark.asyncio
async def test_proposer_signs_locally() -> None:
    backend = DummySigningBackend()
    resolver = _resolver(_status(), backend=backend)
    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    signature = await config.proposer.signing_function(Signable(message="deadbeef"))

    assert backend.local_messages == ["deadbeef"]
    assert signature.addr == "0x01cf0e2f2f715450"
    assert signature.key_id == 0
    assert signature.signature == "aa" * 64
    assert config.proposer.temp_id == "0x01cf0e2f2f715450-0"


@pytest.mark.asyncio
async def test_child_account_proposes_with_parent() -> None:
    account = ActiveAccount(address="0x0000000000000abc", parent_address="0x01cf0e2f2f715450")
    resolver = _resolver(_status(), account=account)

    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    assert config.proposer.addr == "01cf0e2f2f715450"


@pytest.mark.asyncio
async def test_fee_payer_rate_limit_raises_surge_error() -> None:
    backend = DummySigningBackend(
        {SigningRole.FEE_PAYER: RateLimited(role=SigningRole.FEE_PAYER, retry_after=5.0)}
    )
    resolver = _resolver(_status(), backend=backend)
    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    with pytest.raises(SurgeRateLimited) as exc_info:
        await config.payer.signing_function(Signable(message="00"))

    assert exc_info.value.retry_after == 5.0
    assert exc_info.value.role == SigningRole.FEE_PAYER.value


@pytest.mark.asyncio
async def test_fee_payer_signature_returned() -> None:
    backend = DummySigningBackend()
    resolver = _resolver(_status(), backend=backend)
    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    signature = await config.payer.signing_function(Signable(message="00"))

    assert backend.remote_calls == [SigningRole.FEE_PAYER]
    assert signature.addr == "0x319e67f2ef9d937f"
    assert signature.signature == "bb" * 64


@pytest.mark.asyncio
async def test_surge_prompt_approved_switches_to_self_pay() -> None:
    prompt = ScriptedPrompt(True)
    resolver = _resolver(_status(), prompt=prompt)
    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    fallback = await resolver.fallback_to_self_pay(config, SurgeRateLimited("busy"))

    assert fallback.payer is config.proposer
    assert fallback.self_paid
    assert len(prompt.statuses) == 1
    assert resolver.state is ResolutionState.RESOLVED


@pytest.mark.asyncio
async def test_surge_prompt_declined_cancels() -> None:
    resolver = _resolver(_status(), prompt=ScriptedPrompt(False))
    config = await resolver.resolve(BATCH_CALL_CONTRACT, CallBatch())

    with pytest.raises(UserCancelled):
        await resolver.fallback_to_self_pay(config, SurgeRateLimited("busy"))

    assert resolver.state is ResolutionState.ABORTED


@pytest.mark.asyncio
async def test_bridge_payer_added_for_payer_kinds() -> None:
    resolver = _resolver(_status(surge=True))

    config = await resolver.resolve(BRIDGE_KIND, CallBatch())

    roles = [auth.role for auth in config.authorizations]
    assert roles == [SigningRole.PROPOSER, SigningRole.BRIDGE_PAYER]
    assert config.authorizations[1].addr == "4c578d1d6bdfc1a4"


@pytest.mark.asyncio
async def test_unavailable_bridge_payer_aborts() -> None:
    status = PayerStatus(fee_payer=FEE_PAYER, bridge_payer=PayerInfo(available=False))
    resolver = _resolver(status)

    with pytest.raises(AuthorizationFailure):
        await resolver.resolve(BRIDGE_KIND, CallBatch())

    assert resolver.state is ResolutionState.ABORTED


@pytest.mark.asyncio
async def test_bridge_payer_rate_limit_is_fatal() -> None:
    backend = DummySigningBackend(
        {SigningRole.BRIDGE_PAYER: RateLimited(role=SigningRole.BRIDGE_PAYER)}
    )
    resolver = _resolver(_status(), backend=backend)
    config = await resolver.resolve(BRIDGE_KIND, CallBatch())

    with pytest.raises(AuthorizationFailure) as exc_info:
        await config.authorizations[1].signing_function(Signable(message="00"))

    assert not isinstance(exc_info.value, SurgeRateLimited)
