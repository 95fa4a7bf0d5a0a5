"""
Base exception class for permastore.

Every error raised by the upload / funding / verification pipeline inherits
from PermastoreError, which carries a stable machine-readable code plus the
guidance a caller needs to decide whether to retry.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PermastoreError(Exception):
    """
    Base exception for all permastore errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code (e.g., "FILE_TOO_LARGE").
        details: Dictionary with additional error context.
        recoverable: Whether a caller-driven retry can succeed.
        suggested_action: Optional guidance rendered by UIs.

    Example:
        >>> raise PermastoreError(
        ...     "Upload failed",
        ...     code="WRITE_FAILED",
        ...     recoverable=True,
        ...     details={"size_bytes": 1024}
        ... )
    """

    default_code = "PERMASTORE_ERROR"
    default_recoverable = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
        suggested_action: Optional[str] = None,
    ) -> None:
        """
        Initialize PermastoreError.

        Args:
            message: Human-readable error description.
            code: Machine-readable error code (class default if omitted).
            details: Optional dictionary with additional error context.
            recoverable: Overrides the class default recoverability.
            suggested_action: Optional guidance for the caller.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.recoverable = (
            self.default_recoverable if recoverable is None else recoverable
        )
        self.suggested_action = suggested_action

    def __str__(self) -> str:
        """Return formatted error message."""
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"recoverable={self.recoverable!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to the API error body.

        Returns:
            Dictionary with code, message and optional guidance fields.
        """
        body: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.details:
            body["details"] = self.details
        if self.suggested_action:
            body["suggestedAction"] = self.suggested_action
        return body
