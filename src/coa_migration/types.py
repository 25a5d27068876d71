"""Type definitions and data models for the COA asset migration pipeline."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .constants import DEFAULT_PAYER_STATUS_TTL, DEFAULT_TOKEN_DECIMALS, EVM_TRANSACTION_EXECUTED


class AssetKind(str, Enum):
    """Token standards handled by the migration batch."""

    ERC20 = "erc20"
    ERC721 = "erc721"
    ERC1155 = "erc1155"


class SigningRole(str, Enum):
    """Roles that sign a Flow transaction."""

    PROPOSER = "proposer"
    BRIDGE_PAYER = "bridge_payer"
    FEE_PAYER = "fee_payer"


class TransactionStatus(str, Enum):
    """Flow transaction execution statuses."""

    UNKNOWN = "Unknown"
    PENDING = "Pending"
    FINALIZED = "Finalized"
    EXECUTED = "Executed"
    SEALED = "Sealed"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionStatus.SEALED, TransactionStatus.EXPIRED)

    @classmethod
    def parse(cls, value: Any) -> TransactionStatus:
        """Parse a status name, falling back to UNKNOWN for unrecognised values."""

        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return cls.UNKNOWN


# ----------------------------------------------------------------------
# Assets
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Erc20Asset:
    """Fungible token holding.

    ``amount`` is scaled by ``10**decimals``; with the default of zero it is
    taken as base units. The zero-address entry is native FLOW, always a
    decimal FLOW amount.
    """

    address: str
    amount: str
    decimals: int = DEFAULT_TOKEN_DECIMALS


@dataclass(frozen=True)
class Erc721Asset:
    address: str
    id: str


@dataclass(frozen=True)
class Erc1155Asset:
    address: str
    id: str
    amount: str


Asset = Erc20Asset | Erc721Asset | Erc1155Asset


@dataclass(frozen=True)
class MigrationAssetsData:
    """Assets selected for migration, grouped by token standard."""

    erc20: tuple[Erc20Asset, ...] = ()
    erc721: tuple[Erc721Asset, ...] = ()
    erc1155: tuple[Erc1155Asset, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "erc20", tuple(self.erc20))
        object.__setattr__(self, "erc721", tuple(self.erc721))
        object.__setattr__(self, "erc1155", tuple(self.erc1155))

    def __len__(self) -> int:
        return len(self.erc20) + len(self.erc721) + len(self.erc1155)

    def ordered(self) -> list[tuple[AssetKind, Asset]]:
        """Return assets in batch order: erc20, then erc721, then erc1155."""

        entries: list[tuple[AssetKind, Asset]] = []
        entries.extend((AssetKind.ERC20, asset) for asset in self.erc20)
        entries.extend((AssetKind.ERC721, asset) for asset in self.erc721)
        entries.extend((AssetKind.ERC1155, asset) for asset in self.erc1155)
        return entries

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MigrationAssetsData:
        """Construct from the wallet's JSON shape ``{"erc20": [...], ...}``."""

        if data is None:
            return cls()

        erc20 = tuple(
            Erc20Asset(
                address=str(entry["address"]),
                amount=str(entry["amount"]),
                decimals=int(entry.get("decimals", DEFAULT_TOKEN_DECIMALS)),
            )
            for entry in _iterable(data.get("erc20"))
        )
        erc721 = tuple(
            Erc721Asset(address=str(entry["address"]), id=str(entry["id"]))
            for entry in _iterable(data.get("erc721"))
        )
        erc1155 = tuple(
            Erc1155Asset(
                address=str(entry["address"]),
                id=str(entry["id"]),
                amount=str(entry["amount"]),
            )
            for entry in _iterable(data.get("erc1155"))
        )
        return cls(erc20=erc20, erc721=erc721, erc1155=erc1155)


@dataclass
class CallBatch:
    """Index-aligned EVM sub-calls executed by one batched transaction."""

    addresses: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)
    datas: list[bytes] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.addresses)

    def append(self, address: str, value: str, data: bytes) -> None:
        self.addresses.append(address)
        self.values.append(value)
        self.datas.append(data)

    def data_arrays(self) -> list[list[int]]:
        """Return calldata as nested integer arrays, the shape Cadence ``[[UInt8]]`` expects."""

        return [list(data) for data in self.datas]


# ----------------------------------------------------------------------
# Payer status
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class SurgeInfo:
    active: bool = False
    multiplier: float | None = None
    max_fee: float | None = None
    ttl_seconds: int = DEFAULT_PAYER_STATUS_TTL


@dataclass(frozen=True)
class PayerInfo:
    address: str | None = None
    key_index: int = 0
    available: bool = True


@dataclass(frozen=True)
class PayerStatus:
    """Sponsored-gas availability for one network."""

    surge: SurgeInfo = SurgeInfo()
    fee_payer: PayerInfo = PayerInfo()
    bridge_payer: PayerInfo = PayerInfo()
    reason: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PayerStatus:
        """Parse the payer status payload, unwrapping ``{"status", "data"}`` envelopes."""

        payload = data.get("data") if isinstance(data.get("data"), Mapping) else data

        surge_raw = payload.get("surge") or {}
        ttl = surge_raw.get("ttlSeconds", surge_raw.get("ttl_seconds"))
        if ttl is None:
            ttl = DEFAULT_PAYER_STATUS_TTL
        surge = SurgeInfo(
            active=bool(surge_raw.get("active", False)),
            multiplier=_optional_float(surge_raw.get("multiplier")),
            max_fee=_optional_float(surge_raw.get("maxFee", surge_raw.get("max_fee"))),
            ttl_seconds=int(ttl),
        )

        return cls(
            surge=surge,
            fee_payer=_payer_info(payload.get("feePayer") or payload.get("fee_payer")),
            bridge_payer=_payer_info(payload.get("bridgePayer") or payload.get("bridge_payer")),
            reason=payload.get("reason"),
        )


# ----------------------------------------------------------------------
# Authorization
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ActiveAccount:
    """The Flow account driving the migration.

    Child accounts propose through their parent, so ``parent_address`` wins
    over ``address`` when set.
    """

    address: str
    key_index: int = 0
    parent_address: str | None = None

    @property
    def proposer_address(self) -> str:
        return self.parent_address or self.address


@dataclass(frozen=True)
class Signable:
    """Message handed to a signing function."""

    message: str
    voucher: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompositeSignature:
    addr: str
    key_id: int
    signature: str


@dataclass(frozen=True)
class RateLimited:
    """Structured rate-limit answer from a remote signing endpoint."""

    role: SigningRole
    message: str = "Too Many Requests"
    retry_after: float | None = None


SigningFunction = Callable[[Signable], Awaitable[CompositeSignature]]


@dataclass(frozen=True)
class AuthorizationAccount:
    temp_id: str
    addr: str
    key_id: int
    role: SigningRole
    signing_function: SigningFunction = field(compare=False, repr=False)


@dataclass(frozen=True)
class TransactionKind:
    """Named Cadence transaction; ``...WithPayer`` kinds need a bridge payer."""

    name: str

    @property
    def requires_bridge_payer(self) -> bool:
        return self.name.endswith("WithPayer")


BATCH_CALL_CONTRACT = TransactionKind("batchCallContract")


@dataclass(frozen=True)
class TransactionConfig:
    """Everything needed to build, sign and submit one transaction."""

    kind: TransactionKind
    body: CallBatch
    gas_limit: int
    evm_gas_limit: int
    proposer: AuthorizationAccount
    authorizations: tuple[AuthorizationAccount, ...]
    payer: AuthorizationAccount

    @property
    def self_paid(self) -> bool:
        return self.payer.role is SigningRole.PROPOSER

    def with_payer(self, payer: AuthorizationAccount) -> TransactionConfig:
        return replace(self, payer=payer)


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class ExecutionEvent:
    type: str
    data: Mapping[str, Any] = field(default_factory=dict)
    event_index: int | None = None

    @property
    def is_evm_execution(self) -> bool:
        return self.type.endswith(EVM_TRANSACTION_EXECUTED)

    @property
    def error_code(self) -> Any:
        return self.data.get("errorCode")

    @property
    def error_message(self) -> str | None:
        message = self.data.get("errorMessage")
        return str(message) if message else None

    @property
    def gas_consumed(self) -> int | None:
        return _optional_int(self.data.get("gasConsumed"))


@dataclass(frozen=True)
class TransactionResult:
    status: TransactionStatus
    status_code: int = 0
    error_message: str | None = None
    events: tuple[ExecutionEvent, ...] = ()

    @property
    def failed(self) -> bool:
        return self.status is TransactionStatus.EXPIRED or self.status_code != 0


@dataclass(frozen=True)
class PerAssetResult:
    index: int
    kind: AssetKind
    asset: Asset
    target: str
    success: bool
    error_code: int | None = None
    error_message: str | None = None
    error_category: str | None = None
    gas_consumed: int | None = None


@dataclass(frozen=True)
class MigrationReport:
    transaction_id: str
    result: TransactionResult
    assets: tuple[PerAssetResult, ...] = ()

    @property
    def succeeded(self) -> list[PerAssetResult]:
        return [entry for entry in self.assets if entry.success]

    @property
    def failed(self) -> list[PerAssetResult]:
        return [entry for entry in self.assets if not entry.success]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.assets) and not self.failed


def _payer_info(raw: Any) -> PayerInfo:
    if not isinstance(raw, Mapping):
        return PayerInfo(available=False)

    return PayerInfo(
        address=raw.get("address"),
        key_index=_optional_int(raw.get("keyIndex", raw.get("key_index"))) or 0,
        available=bool(raw.get("available", raw.get("address") is not None)),
    )


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _iterable(value: Any) -> Iterable:
    if isinstance(value, list | tuple):
        return value

    if value is None:
        return []

    return [value]
