"""ABI calldata encoding for migration transfers and batch assembly."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_typing import HexStr
from web3 import Web3

from .constants import (
    ERC20_TRANSFER_SIGNATURE,
    ERC721_TRANSFER_SIGNATURE,
    ERC1155_TRANSFER_SIGNATURE,
    NATIVE_DECIMALS,
    UFIX64_DECIMALS,
    ZERO_ADDRESS,
)
from .exceptions import InvalidAddress, ValidationError
from .types import CallBatch, Erc20Asset, MigrationAssetsData
from .utils import bytes_to_hex, hex_to_byte_array, scale_amount
from .validation import validate_evm_address

logger = logging.getLogger(__name__)


def function_selector(signature: str) -> bytes:
    """Return the 4-byte selector for a canonical function signature."""
    return bytes(Web3.keccak(text=signature)[:4])


_ABI_TYPES = {
    ERC20_TRANSFER_SIGNATURE: ["address", "uint256"],
    ERC721_TRANSFER_SIGNATURE: ["address", "address", "uint256"],
    ERC1155_TRANSFER_SIGNATURE: ["address", "address", "uint256", "uint256", "bytes"],
}

_SIGNATURE_BY_SELECTOR = {function_selector(sig): sig for sig in _ABI_TYPES}


def _encode_call(signature: str, args: list[Any]) -> HexStr:
    payload = function_selector(signature) + abi_encode(_ABI_TYPES[signature], args)
    return HexStr(bytes_to_hex(payload))


def _parse_token_id(token_id: str | int, field: str = "id") -> int:
    try:
        if isinstance(token_id, str):
            text = token_id.strip()
            value = int(text, 16) if text[:2].lower() == "0x" else int(text, 10)
        else:
            value = int(token_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "Invalid token id", field=field, value=token_id, details={"error": str(exc)}
        ) from exc

    if value < 0 or value > 2**256 - 1:
        raise ValidationError("Token id out of uint256 range", field=field, value=token_id)

    return value


def encode_erc20_transfer(receiver: str, amount: str | int | Decimal, decimals: int = 0) -> HexStr:
    """Encode ``transfer(receiver, amount)``; ``amount`` is scaled by ``10**decimals``."""
    to = validate_evm_address(receiver, field="receiver")
    units = scale_amount(amount, decimals)
    return _encode_call(ERC20_TRANSFER_SIGNATURE, [to, units])


def encode_erc721_transfer(sender: str, receiver: str, token_id: str | int) -> HexStr:
    """Encode ``safeTransferFrom(sender, receiver, token_id)``."""
    src = validate_evm_address(sender, field="sender")
    to = validate_evm_address(receiver, field="receiver")
    return _encode_call(ERC721_TRANSFER_SIGNATURE, [src, to, _parse_token_id(token_id)])


def encode_erc1155_transfer(
    sender: str,
    receiver: str,
    token_id: str | int,
    amount: str | int,
    data: bytes = b"",
) -> HexStr:
    """Encode ``safeTransferFrom(sender, receiver, token_id, amount, data)``."""
    src = validate_evm_address(sender, field="sender")
    to = validate_evm_address(receiver, field="receiver")
    units = scale_amount(amount, 0)
    return _encode_call(ERC1155_TRANSFER_SIGNATURE, [src, to, _parse_token_id(token_id), units, data])


def decode_calldata(data: bytes | str) -> tuple[str, tuple[Any, ...]]:
    """Decode calldata produced by the ``encode_*`` helpers.

    Returns:
        The function signature and the decoded argument tuple

    Raises:
        ValidationError: If the selector is unknown or the arguments do not decode
    """
    raw = hex_to_byte_array(data) if isinstance(data, str) else bytes(data)
    signature = _SIGNATURE_BY_SELECTOR.get(raw[:4])
    if signature is None:
        raise ValidationError("Unknown calldata selector", field="data", value=bytes_to_hex(raw[:4]))

    try:
        args = abi_decode(_ABI_TYPES[signature], raw[4:])
    except Exception as exc:
        raise ValidationError(
            "Failed to decode calldata",
            field="data",
            value=bytes_to_hex(raw),
            details={"signature": signature, "error": str(exc)},
        ) from exc

    return signature, tuple(args)


def _validate_assets(assets: MigrationAssetsData) -> None:
    for index, asset in enumerate(assets.erc20):
        validate_evm_address(asset.address, field=f"erc20[{index}].address")
        field = f"erc20[{index}].amount"
        if _is_native(asset):
            native_units(asset.amount, field=field)
        else:
            scale_amount(asset.amount, asset.decimals, field=field)

    for index, asset in enumerate(assets.erc721):
        validate_evm_address(asset.address, field=f"erc721[{index}].address")
        _parse_token_id(asset.id, field=f"erc721[{index}].id")

    for index, asset in enumerate(assets.erc1155):
        validate_evm_address(asset.address, field=f"erc1155[{index}].address")
        _parse_token_id(asset.id, field=f"erc1155[{index}].id")
        scale_amount(asset.amount, 0, field=f"erc1155[{index}].amount")


def _is_native(asset: Erc20Asset) -> bool:
    return asset.address.lower() == ZERO_ADDRESS


def native_units(amount: str | int | Decimal, field: str = "amount") -> int:
    """Scale a FLOW amount to attoflow, keeping only the eight decimals UFix64 can carry."""
    units = scale_amount(amount, UFIX64_DECIMALS, field=field)
    return units * 10 ** (NATIVE_DECIMALS - UFIX64_DECIMALS)


def _verify_erc20_calldata(asset: Erc20Asset, receiver: str, calldata: bytes, units: int) -> None:
    signature, (decoded_to, decoded_value) = decode_calldata(calldata)
    if decoded_value != units or decoded_to.lower() != receiver.lower():
        logger.error(
            "ERC20 calldata mismatch (token=%s, expected_units=%s, decoded_units=%s, "
            "expected_to=%s, decoded_to=%s)",
            asset.address,
            units,
            decoded_value,
            receiver,
            decoded_to,
        )
    else:
        logger.debug("Verified %s calldata for token=%s units=%s", signature, asset.address, units)


def build_batch(assets: MigrationAssetsData, sender: str, receiver: str) -> CallBatch:
    """Convert migration assets into index-aligned batch arrays.

    Every asset is validated before anything is encoded, so an invalid entry
    aborts the build without producing a partial batch.

    Raises:
        InvalidAddress: If any asset, the sender or the receiver has a malformed address,
            or the receiver is the sender itself
        InvalidAmount: If any erc20/erc1155 amount is not positive
    """
    validate_evm_address(sender, field="sender")
    validate_evm_address(receiver, field="receiver")
    if sender.lower() == receiver.lower():
        raise InvalidAddress(
            "Receiver must differ from the sending account", field="receiver", value=receiver
        )
    _validate_assets(assets)

    logger.info(
        "Stage BATCH: building batch (erc20=%s, erc721=%s, erc1155=%s, sender=%s, receiver=%s)",
        len(assets.erc20),
        len(assets.erc721),
        len(assets.erc1155),
        sender,
        receiver,
    )

    batch = CallBatch()

    for asset in assets.erc20:
        if _is_native(asset):
            units = native_units(asset.amount)
            batch.append(receiver, str(units), b"")
            logger.info(
                "Stage BATCH: native transfer (amount=%s, value=%s, to=%s)",
                asset.amount,
                units,
                receiver,
            )
            continue

        units = scale_amount(asset.amount, asset.decimals)
        calldata = hex_to_byte_array(encode_erc20_transfer(receiver, units))
        _verify_erc20_calldata(asset, receiver, calldata, units)
        batch.append(asset.address, "0", calldata)
        logger.info(
            "Stage BATCH: erc20 transfer (token=%s, amount=%s, units=%s, calldata=%s)",
            asset.address,
            asset.amount,
            units,
            bytes_to_hex(calldata),
        )

    for asset in assets.erc721:
        calldata = hex_to_byte_array(encode_erc721_transfer(sender, receiver, asset.id))
        batch.append(asset.address, "0", calldata)
        logger.info(
            "Stage BATCH: erc721 transfer (collection=%s, id=%s, calldata=%s)",
            asset.address,
            asset.id,
            bytes_to_hex(calldata),
        )

    for asset in assets.erc1155:
        calldata = hex_to_byte_array(
            encode_erc1155_transfer(sender, receiver, asset.id, asset.amount)
        )
        batch.append(asset.address, "0", calldata)
        logger.info(
            "Stage BATCH: erc1155 transfer (collection=%s, id=%s, amount=%s, calldata=%s)",
            asset.address,
            asset.id,
            asset.amount,
            bytes_to_hex(calldata),
        )

    logger.info("Stage BATCH: batch ready (entries=%s)", len(batch))
    return batch
