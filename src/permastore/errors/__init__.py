"""
permastore exception hierarchy.

All errors derive from PermastoreError and carry a stable ``code``.
"""

from permastore.errors.base import PermastoreError
from permastore.errors.storage import (
    CircuitBreakerOpenError,
    ContentNotFoundError,
    CostCalculationFailedError,
    CostQueryFailedError,
    EmptyFileError,
    FileTooLargeError,
    FundingError,
    FundingRejectedError,
    FundingTimeoutError,
    GatewayNotReadyError,
    GatewayRequestError,
    InsufficientSourceFundsError,
    InvalidStateTransitionError,
    InvalidTagError,
    NoGatewayAvailableError,
    RetrievalFailedError,
    StorageError,
    TransactionInfoFailedError,
    UnsupportedFileTypeError,
    UploadCancelledError,
    WriteFailedError,
)

__all__ = [
    "PermastoreError",
    "StorageError",
    # Preconditions
    "UnsupportedFileTypeError",
    "FileTooLargeError",
    "EmptyFileError",
    "InvalidTagError",
    # Cost
    "CostQueryFailedError",
    "CostCalculationFailedError",
    # Funding
    "FundingError",
    "InsufficientSourceFundsError",
    "FundingTimeoutError",
    "FundingRejectedError",
    # Gateway
    "NoGatewayAvailableError",
    "GatewayNotReadyError",
    "GatewayRequestError",
    "WriteFailedError",
    "UploadCancelledError",
    "CircuitBreakerOpenError",
    # Read path
    "RetrievalFailedError",
    "ContentNotFoundError",
    "TransactionInfoFailedError",
    # Lifecycle
    "InvalidStateTransitionError",
]
