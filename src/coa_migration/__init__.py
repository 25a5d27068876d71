"""COA asset migration - batch transfer of assets out of a Cadence-Owned Account.

This library converts a list of ERC20/ERC721/ERC1155 holdings into a single
batched Flow transaction, resolves who signs and pays for it, waits for the
transaction to seal and reports the outcome of every transfer.
"""

from .authorization import ResolutionState, TransactionAuthorizationResolver
from .base import ChainClient, PayerStatusProvider, SigningBackend, static_free_gas
from .config import MigrationConfig
from .confirmation import TransactionConfirmationWaiter
from .constants import ZERO_ADDRESS, Network
from .correlation import EventResultCorrelator, classify_error, correlate
from .encoding import (
    build_batch,
    decode_calldata,
    encode_erc20_transfer,
    encode_erc721_transfer,
    encode_erc1155_transfer,
)
from .exceptions import (
    AuthorizationFailure,
    InvalidAddress,
    InvalidAmount,
    MigrationError,
    NetworkError,
    SurgeRateLimited,
    TransactionTimeout,
    UnmatchedEventCount,
    UserCancelled,
    ValidationError,
)
from .orchestrator import BatchMigrationOrchestrator, MigrationSubmission
from .types import (
    ActiveAccount,
    AssetKind,
    CallBatch,
    Erc20Asset,
    Erc721Asset,
    Erc1155Asset,
    ExecutionEvent,
    MigrationAssetsData,
    MigrationReport,
    PayerStatus,
    PerAssetResult,
    RateLimited,
    TransactionConfig,
    TransactionResult,
    TransactionStatus,
)
from .utils import hex_to_byte_array
from .validation import is_valid_evm_address, validate_evm_address

__version__ = "0.1.0"

__all__ = [
    # Pipeline components
    "BatchMigrationOrchestrator",
    "MigrationSubmission",
    "TransactionAuthorizationResolver",
    "ResolutionState",
    "TransactionConfirmationWaiter",
    "EventResultCorrelator",
    # Collaborator interfaces
    "ChainClient",
    "PayerStatusProvider",
    "SigningBackend",
    "static_free_gas",
    # Configuration
    "MigrationConfig",
    "Network",
    "ZERO_ADDRESS",
    # Types
    "ActiveAccount",
    "AssetKind",
    "CallBatch",
    "Erc20Asset",
    "Erc721Asset",
    "Erc1155Asset",
    "ExecutionEvent",
    "MigrationAssetsData",
    "MigrationReport",
    "PayerStatus",
    "PerAssetResult",
    "RateLimited",
    "TransactionConfig",
    "TransactionResult",
    "TransactionStatus",
    # Exceptions
    "MigrationError",
    "ValidationError",
    "InvalidAddress",
    "InvalidAmount",
    "NetworkError",
    "AuthorizationFailure",
    "SurgeRateLimited",
    "UserCancelled",
    "TransactionTimeout",
    "UnmatchedEventCount",
    # Encoding and validation
    "build_batch",
    "decode_calldata",
    "encode_erc20_transfer",
    "encode_erc721_transfer",
    "encode_erc1155_transfer",
    "hex_to_byte_array",
    "is_valid_evm_address",
    "validate_evm_address",
    "classify_error",
    "correlate",
]
