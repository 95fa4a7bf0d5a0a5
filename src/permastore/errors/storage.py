"""
Storage pipeline exceptions.

Raised by the cost, funding, write, read and verification steps of the
permanent-storage pipeline. Each class pins a stable ``code`` so HTTP
clients can render tailored guidance without parsing prose.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from permastore.errors.base import PermastoreError


class StorageError(PermastoreError):
    """
    Base exception for storage operations.

    Example:
        >>> raise StorageError("Failed to reach gateway", node_url="https://node1.irys.xyz")
    """

    default_code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        node_url: Optional[str] = None,
        locator: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        suggested_action: Optional[str] = None,
    ) -> None:
        details = details or {}
        if node_url:
            details["node_url"] = node_url
        if locator:
            details["locator"] = locator

        super().__init__(
            message,
            details=details,
            recoverable=recoverable,
            suggested_action=suggested_action,
        )
        self.node_url = node_url
        self.locator = locator


# ============================================================================
# Precondition Errors (no network, no funds touched)
# ============================================================================


class UnsupportedFileTypeError(StorageError):
    """
    Raised when the MIME type is not in the supported allowlist.

    Example:
        >>> raise UnsupportedFileTypeError("application/x-msdownload", ["text/plain"])
    """

    default_code = "UNSUPPORTED_FILE_TYPE"

    def __init__(
        self,
        file_type: str,
        supported_types: Sequence[str],
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["file_type"] = file_type
        details["supported_types"] = sorted(supported_types)

        super().__init__(
            f"File type not supported for vault storage: {file_type}",
            details=details,
        )
        self.file_type = file_type


class FileTooLargeError(StorageError):
    """
    Raised when a file exceeds the ceiling of its security tier.

    Example:
        >>> raise FileTooLargeError(629145600, 104857600, tier="standard")
    """

    default_code = "FILE_TOO_LARGE"

    def __init__(
        self,
        file_size: int,
        max_size: int,
        *,
        tier: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["file_size_bytes"] = file_size
        details["max_size_bytes"] = max_size
        details["excess_bytes"] = file_size - max_size
        if tier:
            details["security_tier"] = tier

        message = f"File size ({file_size} bytes) exceeds limit ({max_size} bytes)"
        if tier:
            message += f" for {tier} security tier"

        super().__init__(message, details=details)
        self.file_size = file_size
        self.max_size = max_size
        self.tier = tier


class EmptyFileError(StorageError):
    """Raised when an upload carries zero bytes."""

    default_code = "EMPTY_FILE"

    def __init__(self, file_name: Optional[str] = None) -> None:
        super().__init__(
            "Cannot store an empty file",
            details={"file_name": file_name} if file_name else None,
        )


class InvalidTagError(StorageError):
    """
    Raised when a custom tag is malformed or collides with a reserved name.

    Example:
        >>> raise InvalidTagError("App-Name", reason="reserved tag name")
    """

    default_code = "INVALID_TAG"

    def __init__(
        self,
        name: str,
        *,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["tag"] = name
        if reason:
            details["reason"] = reason

        message = f"Invalid tag: {name}"
        if reason:
            message += f" ({reason})"

        super().__init__(message, details=details)
        self.name = name
        self.reason = reason


# ============================================================================
# Cost Errors
# ============================================================================


class CostQueryFailedError(StorageError):
    """
    Raised when the price lookup made during an upload fails.

    No funds have been spent, so the whole upload is safe to retry.
    """

    default_code = "COST_QUERY_FAILED"
    default_recoverable = True

    def __init__(
        self,
        message: str = "Failed to query upload price",
        *,
        node_url: Optional[str] = None,
        size_bytes: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if size_bytes is not None:
            details["size_bytes"] = size_bytes

        super().__init__(
            message,
            node_url=node_url,
            details=details,
            suggested_action="Retry the upload",
        )
        self.size_bytes = size_bytes


class CostCalculationFailedError(StorageError):
    """Raised when an explicit cost quote requested by a caller fails."""

    default_code = "COST_CALCULATION_FAILED"
    default_recoverable = True

    def __init__(
        self,
        message: str = "Failed to calculate upload cost",
        *,
        size_bytes: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if size_bytes is not None:
            details["size_bytes"] = size_bytes

        super().__init__(message, details=details)
        self.size_bytes = size_bytes


# ============================================================================
# Funding Errors
# ============================================================================


class FundingError(StorageError):
    """Base class for failures of the gateway funding step."""

    default_code = "FUNDING_ERROR"


class InsufficientSourceFundsError(FundingError):
    """
    Raised when the wallet itself cannot cover the required top-up.

    Example:
        >>> raise InsufficientSourceFundsError(1000, 5000, currency="base-eth")
    """

    default_code = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        available: int,
        required: int,
        *,
        currency: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["available"] = available
        details["required"] = required
        details["deficit"] = required - available
        if currency:
            details["currency"] = currency

        super().__init__(
            f"Not enough funds in wallet to complete the upload: {available} < {required}",
            details=details,
            suggested_action="Add funds to your wallet or reduce file size",
        )
        self.available = available
        self.required = required
        self.currency = currency


class FundingTimeoutError(FundingError):
    """
    Raised when the gateway does not acknowledge a top-up in time.

    The caller may retry once; the top-up may still land later.
    """

    default_code = "FUNDING_TIMEOUT"
    default_recoverable = True

    def __init__(
        self,
        timeout_s: float,
        *,
        funding_tx: Optional[str] = None,
        node_url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["timeout_s"] = timeout_s
        if funding_tx:
            details["funding_tx"] = funding_tx

        super().__init__(
            f"Gateway did not acknowledge funding within {timeout_s}s",
            node_url=node_url,
            details=details,
            suggested_action="Check the gateway balance, then retry once",
        )
        self.timeout_s = timeout_s
        self.funding_tx = funding_tx


class FundingRejectedError(FundingError):
    """Raised when the gateway or chain rejects the funding transaction."""

    default_code = "FUNDING_REJECTED"

    def __init__(
        self,
        message: str = "Funding transaction was rejected",
        *,
        funding_tx: Optional[str] = None,
        node_url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if funding_tx:
            details["funding_tx"] = funding_tx

        super().__init__(message, node_url=node_url, details=details)
        self.funding_tx = funding_tx


# ============================================================================
# Gateway Errors
# ============================================================================


class NoGatewayAvailableError(StorageError):
    """
    Raised when every configured gateway node failed to connect.

    Example:
        >>> raise NoGatewayAvailableError(["https://node1.irys.xyz", "https://node2.irys.xyz"])
    """

    default_code = "NO_GATEWAY_AVAILABLE"

    def __init__(
        self,
        tried: Sequence[str],
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["tried_nodes"] = list(tried)

        super().__init__(
            f"No gateway node available (tried {len(tried)})",
            details=details,
            suggested_action="Check gateway configuration and network connectivity",
        )
        self.tried = list(tried)


class GatewayNotReadyError(StorageError):
    """Raised when the service is used before initialize() succeeded."""

    default_code = "GATEWAY_NOT_READY"

    def __init__(self, message: str = "Storage service not initialized") -> None:
        super().__init__(message, suggested_action="Call initialize() first")


class WriteFailedError(StorageError):
    """
    Raised when the network write fails after funds were committed.

    The pipeline never retries this on its own; ``recoverable`` signals that a
    caller-driven, explicitly flagged retry is possible.
    """

    default_code = "WRITE_FAILED"
    default_recoverable = True

    def __init__(
        self,
        message: str = "Failed to write file to the storage network",
        *,
        node_url: Optional[str] = None,
        size_bytes: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if size_bytes is not None:
            details["size_bytes"] = size_bytes

        super().__init__(
            message,
            node_url=node_url,
            details=details,
            suggested_action=(
                "Funds may already be spent; contact support before retrying "
                "the upload"
            ),
        )
        self.size_bytes = size_bytes


class UploadCancelledError(StorageError):
    """Raised when the caller aborts an upload."""

    default_code = "CANCELLED"
    default_recoverable = True

    def __init__(
        self,
        *,
        funds_spent: bool = False,
        file_id: Optional[str] = None,
        locator: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {"funds_spent": funds_spent}
        if file_id:
            details["file_id"] = file_id

        super().__init__(
            "Upload cancelled by caller",
            locator=locator,
            details=details,
        )
        self.funds_spent = funds_spent
        self.file_id = file_id


# ============================================================================
# Read-path Errors
# ============================================================================


class RetrievalFailedError(StorageError):
    """Raised when downloading stored content fails."""

    default_code = "RETRIEVAL_FAILED"
    default_recoverable = True

    def __init__(
        self,
        message: str = "Failed to retrieve file",
        *,
        locator: Optional[str] = None,
        gateway: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if gateway:
            details["gateway"] = gateway

        super().__init__(message, locator=locator, details=details)
        self.gateway = gateway


class ContentNotFoundError(StorageError):
    """Raised when the network has no content for a locator."""

    default_code = "CONTENT_NOT_FOUND"

    def __init__(
        self,
        locator: str,
        *,
        gateway: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Content not found: {locator}",
            locator=locator,
            details={"gateway": gateway} if gateway else None,
        )
        self.gateway = gateway


class GatewayRequestError(StorageError):
    """Raised when a gateway node answers a request with an error status."""

    default_code = "GATEWAY_REQUEST_FAILED"
    default_recoverable = True

    def __init__(
        self,
        message: str,
        *,
        node_url: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(message, node_url=node_url, details=details)
        self.status_code = status_code


class TransactionInfoFailedError(StorageError):
    """Raised when transaction metadata cannot be fetched or decoded."""

    default_code = "TRANSACTION_INFO_FAILED"
    default_recoverable = True

    def __init__(
        self,
        message: str = "Failed to get transaction info",
        *,
        locator: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, locator=locator, details=details)


class CircuitBreakerOpenError(StorageError):
    """
    Raised when the gateway circuit breaker is open and blocking requests.

    Example:
        >>> raise CircuitBreakerOpenError("Gateway unhealthy")
    """

    default_code = "CIRCUIT_BREAKER_OPEN"
    default_recoverable = True

    def __init__(
        self,
        message: str = "Circuit breaker is open",
        *,
        node_url: Optional[str] = None,
        reset_at: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if reset_at is not None:
            details["reset_at"] = reset_at

        super().__init__(message, node_url=node_url, details=details)
        self.reset_at = reset_at


# ============================================================================
# Lifecycle Errors
# ============================================================================


class InvalidStateTransitionError(StorageError):
    """
    Raised when a file record is asked to move along a forbidden edge.

    Example:
        >>> raise InvalidStateTransitionError("verified", "stored", file_id="f1")
    """

    default_code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        from_status: str,
        to_status: str,
        *,
        file_id: Optional[str] = None,
    ) -> None:
        details: Dict[str, Any] = {"from": from_status, "to": to_status}
        if file_id:
            details["file_id"] = file_id

        super().__init__(
            f"Invalid file status transition: {from_status} -> {to_status}",
            details=details,
        )
        self.from_status = from_status
        self.to_status = to_status
