"""Cadence transaction source and JSON-Cadence value codec."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..constants import CONTRACT_ADDRESSES, NATIVE_DECIMALS, UFIX64_DECIMALS, Network, get_network
from ..types import CallBatch
from ..utils import units_to_decimal_string

BATCH_CALL_CONTRACT_SCRIPT = """
import FungibleToken from 0xFungibleToken
import FlowToken from 0xFlowToken
import EVM from 0xEVM

/// Executes one EVM call per entry from the signer's COA. A failed call is
/// recorded in its TransactionExecuted event and does not revert the others.
transaction(evmContractAddressHexes: [String], amounts: [UFix64], datas: [[UInt8]], gasLimit: UInt64) {

    let coa: auth(EVM.Withdraw, EVM.Call) &EVM.CadenceOwnedAccount

    prepare(signer: auth(BorrowValue, SaveValue) &Account) {
        if signer.storage.type(at: /storage/evm) == nil {
            signer.storage.save(<-EVM.createCadenceOwnedAccount(), to: /storage/evm)
        }
        self.coa = signer.storage.borrow<auth(EVM.Withdraw, EVM.Call) &EVM.CadenceOwnedAccount>(from: /storage/evm)
            ?? panic("Could not borrow reference to the signer's bridged account")
    }

    execute {
        for index, evmAddressHex in evmContractAddressHexes {
            let evmAddress = EVM.addressFromString(evmAddressHex)
            if evmAddress.bytes == self.coa.address().bytes {
                continue
            }

            let valueBalance = EVM.Balance(attoflow: 0)
            valueBalance.setFLOW(flow: amounts[index])
            let txResult = self.coa.call(
                to: evmAddress,
                data: datas[index],
                gasLimit: gasLimit,
                value: valueBalance
            )
            assert(
                txResult.status == EVM.Status.failed || txResult.status == EVM.Status.successful,
                message: "evm_error=".concat(txResult.errorMessage)
            )
        }
    }
}
""".strip()

_IMPORT = re.compile(r"(import\s+\w+\s+from\s+)(0x[A-Za-z]\w*)")

_INTEGER_TYPES = frozenset(
    ["Int", "UInt"]
    + [f"{prefix}{bits}" for prefix in ("Int", "UInt") for bits in (8, 16, 32, 64, 128, 256)]
    + [f"Word{bits}" for bits in (8, 16, 32, 64)]
)
_COMPOSITE_TYPES = frozenset({"Struct", "Resource", "Event", "Contract", "Enum"})


def resolve_imports(script: str, network: Network | str) -> str:
    """Replace ``0xContractName`` import placeholders with the network's addresses.

    Raises:
        KeyError: If a placeholder has no address on ``network``
    """
    addresses = CONTRACT_ADDRESSES[get_network(network)]

    def substitute(match: re.Match) -> str:
        return match.group(1) + addresses[match.group(2)]

    return _IMPORT.sub(substitute, script)


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------
def string_array(values: Sequence[str]) -> dict[str, Any]:
    return {"type": "Array", "value": [{"type": "String", "value": str(v)} for v in values]}


def ufix64_array(values: Sequence[str]) -> dict[str, Any]:
    return {"type": "Array", "value": [{"type": "UFix64", "value": v} for v in values]}


def uint8_matrix(rows: Sequence[Sequence[int]]) -> dict[str, Any]:
    return {
        "type": "Array",
        "value": [
            {"type": "Array", "value": [{"type": "UInt8", "value": str(b)} for b in row]}
            for row in rows
        ],
    }


def uint64(value: int) -> dict[str, Any]:
    return {"type": "UInt64", "value": str(int(value))}


def batch_call_arguments(batch: CallBatch, evm_gas_limit: int) -> list[dict[str, Any]]:
    """Build the four ``batchCallContract`` arguments from a call batch.

    Attoflow values become UFix64 strings with eight decimal places.
    """
    amounts = [
        units_to_decimal_string(value, NATIVE_DECIMALS, UFIX64_DECIMALS) for value in batch.values
    ]
    return [
        string_array(batch.addresses),
        ufix64_array(amounts),
        uint8_matrix(batch.data_arrays()),
        uint64(evm_gas_limit),
    ]


# ----------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------
def decode_value(node: Any) -> Any:
    """Convert a JSON-Cadence value into plain Python data.

    Integers become ``int``, composites become ``dict`` of their fields,
    arrays become ``list`` and nil optionals become ``None``. Other scalar
    types (String, Address, UFix64, ...) keep their string form.
    """
    if not isinstance(node, Mapping):
        return node

    kind = node.get("type")
    value = node.get("value")

    if kind == "Optional":
        return decode_value(value) if value is not None else None
    if kind in _INTEGER_TYPES:
        return int(value)
    if kind == "Bool":
        return bool(value)
    if kind == "Array":
        return [decode_value(item) for item in value or []]
    if kind == "Dictionary":
        return {decode_value(item["key"]): decode_value(item["value"]) for item in value or []}
    if kind in _COMPOSITE_TYPES:
        return {field["name"]: decode_value(field["value"]) for field in value.get("fields", [])}
    return value


def decode_event_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return the field mapping of a JSON-Cadence event payload."""
    decoded = decode_value(payload)
    return decoded if isinstance(decoded, dict) else {}
