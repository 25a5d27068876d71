"""Constants shared across the migration pipeline."""

from enum import Enum

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Native FLOW on EVM is denominated in attoflow
NATIVE_DECIMALS = 18

# Wallet ERC20 amounts are already base units unless decimals are given
DEFAULT_TOKEN_DECIMALS = 0

# Cadence UFix64 carries 8 decimal places
UFIX64_DECIMALS = 8

ERC20_TRANSFER_SIGNATURE = "transfer(address,uint256)"
ERC721_TRANSFER_SIGNATURE = "safeTransferFrom(address,address,uint256)"
ERC1155_TRANSFER_SIGNATURE = "safeTransferFrom(address,address,uint256,uint256,bytes)"

EVM_TRANSACTION_EXECUTED = "EVM.TransactionExecuted"

DEFAULT_COMPUTE_LIMIT = 9999
DEFAULT_EVM_GAS_LIMIT = 30_000_000
DEFAULT_CONFIRMATION_TIMEOUT_MS = 120_000
DEFAULT_POLL_INTERVAL_MS = 3_000
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_PAYER_STATUS_TTL = 30

HTTP_STATUS_TOO_MANY_REQUESTS = 429


class Network(str, Enum):
    """Flow networks supported by the migration pipeline."""

    MAINNET = "mainnet"
    TESTNET = "testnet"


FLOW_ACCESS_URLS = {
    Network.MAINNET: "https://rest-mainnet.onflow.org",
    Network.TESTNET: "https://rest-testnet.onflow.org",
}

# Contract import addresses substituted into Cadence transactions
CONTRACT_ADDRESSES = {
    Network.MAINNET: {
        "0xFungibleToken": "0xf233dcee88fe0abe",
        "0xFlowToken": "0x1654653399040a61",
        "0xEVM": "0xe467b9dd11fa00df",
    },
    Network.TESTNET: {
        "0xFungibleToken": "0x9a0766d93b6608b7",
        "0xFlowToken": "0x7e60df042a9c0868",
        "0xEVM": "0x8c5303eaa26202d6",
    },
}


def get_network(name: str | Network) -> Network:
    """Resolve a network name.

    Raises:
        ValueError: If the network is not supported
    """
    if isinstance(name, Network):
        return name
    try:
        return Network(str(name).lower())
    except ValueError:
        raise ValueError(f"Unknown network: {name}")
