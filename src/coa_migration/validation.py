"""EVM address validation."""

from __future__ import annotations

import re
from typing import Any

from eth_typing import ChecksumAddress
from web3 import Web3

from .exceptions import InvalidAddress

_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_evm_address(address: Any) -> bool:
    """Return True for ``0x`` + 40 hex digit addresses.

    All-lowercase and all-uppercase addresses are accepted as-is; mixed-case
    addresses must carry a valid EIP-55 checksum.
    """

    if not isinstance(address, str) or not _EVM_ADDRESS.match(address):
        return False

    body = address[2:]
    if body.lower() == body or body.upper() == body:
        return True

    return Web3.is_checksum_address(address)


def validate_evm_address(address: Any, field: str = "address") -> ChecksumAddress:
    """Validate an EVM address and return its checksummed form."""

    if not is_valid_evm_address(address):
        raise InvalidAddress("Invalid EVM address", field=field, value=address)

    return Web3.to_checksum_address(address)
