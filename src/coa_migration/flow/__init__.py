"""Flow network adapters for the migration pipeline."""

from .client import FlowRestClient
from .payer_status import HttpPayerStatusProvider
from .signing import FlowSigningBackend, LocalKeySigner

__all__ = [
    "FlowRestClient",
    "FlowSigningBackend",
    "HttpPayerStatusProvider",
    "LocalKeySigner",
]
