"""
Storage Types

Configuration and value types for the permanent-storage pipeline:
- Gateway, funding and verification configuration
- File record snapshots and verification records
- Upload options and results
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Callable,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Network, Currency and Tier Types
# ============================================================================

IrysCurrency = Literal[
    "arweave",       # Native AR
    "base-eth",      # Base ETH
    "ethereum",      # Ethereum mainnet ETH
    "matic",         # Polygon MATIC
    "arbitrum",      # Arbitrum ETH
]
"""Tokens accepted by the gateway nodes for funding."""

StorageNetwork = Literal["mainnet", "devnet"]
"""Gateway network type."""

SecurityTier = Literal["standard", "enhanced", "maximum"]
"""Security tier requested for an upload; each tier caps the file size."""

GATEWAY_NODES: Dict[str, Tuple[str, ...]] = {
    "mainnet": ("https://node1.irys.xyz", "https://node2.irys.xyz"),
    "devnet": ("https://devnet.irys.xyz",),
}
"""Default gateway nodes per network, in priority order."""

DEFAULT_GATEWAY_URL = "https://arweave.net"
"""Public gateway used for retrieval and permanent URIs."""

MIB = 1024 * 1024

DEFAULT_TIER_LIMITS: Dict[str, int] = {
    "standard": 100 * MIB,
    "enhanced": 500 * MIB,
    "maximum": 1024 * MIB,
}
"""Byte-size ceiling per security tier."""

DEFAULT_SUPPORTED_FILE_TYPES: Tuple[str, ...] = (
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/json",
    "application/xml",
    "application/pdf",
    "application/zip",
    "application/gzip",
    "application/x-tar",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    "audio/mpeg",
    "audio/wav",
    "video/mp4",
    "video/webm",
)
"""MIME types accepted for vault storage."""

Tag = Tuple[str, str]
"""A single (name, value) metadata pair attached to a stored object."""

TagInput = Union[Mapping[str, str], Sequence[Tag]]
"""Caller-supplied custom tags: a mapping or an ordered pair sequence."""

ProgressCallback = Callable[[int], None]
"""Receives upload progress as an integer percentage, 0 to 100."""


# ============================================================================
# Configuration
# ============================================================================

class CircuitBreakerConfig(BaseModel):
    """
    Circuit breaker configuration for gateway health tracking.

    When enabled, tracks node failures and temporarily blocks requests to
    an unhealthy node (retry amplification protection).
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(
        default=True,
        description="Enable circuit breaker",
    )
    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Number of failures before opening circuit",
    )
    reset_timeout_ms: int = Field(
        default=60000,
        ge=1000,
        description="Cooldown period in ms before attempting reset",
    )
    failure_window_ms: int = Field(
        default=300000,
        ge=1000,
        description="Time window in ms for counting failures",
    )
    success_threshold: int = Field(
        default=2,
        ge=1,
        description="Number of successes in half-open to close circuit",
    )


class GatewayConfig(BaseModel):
    """
    Gateway node selection and transport settings.

    Example:
        ```python
        config = GatewayConfig(
            nodes=("https://node1.irys.xyz", "https://node2.irys.xyz"),
            rpc_url=os.environ["PERMASTORE_RPC_URL"],
        )
        ```
    """

    model_config = ConfigDict(frozen=True)

    nodes: Tuple[str, ...] = Field(
        default=GATEWAY_NODES["mainnet"],
        min_length=1,
        description="Gateway node URLs in priority order (primary first)",
    )
    network: StorageNetwork = Field(
        default="mainnet",
        description="Gateway network (mainnet or devnet)",
    )
    currency: IrysCurrency = Field(
        default="base-eth",
        description="Funding currency/token",
    )
    gateway_url: str = Field(
        default=DEFAULT_GATEWAY_URL,
        description="Retrieval gateway; permanent URIs are built from it",
    )
    graphql_url: str = Field(
        default=f"{DEFAULT_GATEWAY_URL}/graphql",
        description="GraphQL endpoint for transaction metadata",
    )
    rpc_url: Optional[str] = Field(
        default=None,
        description="RPC URL of the funding chain (required to fund)",
    )
    timeout: int = Field(
        default=60000,
        ge=1000,
        description="Request timeout in milliseconds",
    )
    max_connect_attempts: int = Field(
        default=4,
        ge=1,
        description="Total node connection attempts across the node list",
    )
    chunk_size: int = Field(
        default=256 * 1024,
        ge=1024,
        description="Streaming chunk size for writes (progress granularity)",
    )
    circuit_breaker: Optional[CircuitBreakerConfig] = Field(
        default=None,
        description="Circuit breaker configuration for gateway health tracking",
    )


class FundingConfig(BaseModel):
    """Gateway top-up behaviour."""

    model_config = ConfigDict(frozen=True)

    timeout_s: float = Field(
        default=120.0,
        gt=0,
        description="How long to wait for the gateway to acknowledge funds",
    )
    poll_interval_s: float = Field(
        default=2.0,
        gt=0,
        description="Interval between gateway balance polls while waiting",
    )
    topup_multiplier: float = Field(
        default=1.0,
        ge=1.0,
        description="Shortfall multiplier; >1 funds ahead to fund less often",
    )


class VerificationConfig(BaseModel):
    """Background verification polling settings."""

    model_config = ConfigDict(frozen=True)

    min_networks: int = Field(
        default=1,
        ge=1,
        description="Confirmations required before a file is VERIFIED",
    )
    max_attempts: int = Field(
        default=6,
        ge=1,
        description="Confirmation attempts per network before giving up",
    )
    base_delay_ms: int = Field(
        default=5000,
        ge=0,
        description="Base delay for exponential backoff between attempts",
    )
    max_delay_ms: int = Field(
        default=300000,
        ge=0,
        description="Cap for the backoff delay",
    )
    max_workers: int = Field(
        default=8,
        ge=1,
        description="Maximum concurrent confirmation queries",
    )


# ============================================================================
# File Lifecycle
# ============================================================================

class FileStatus(str, Enum):
    """Lifecycle states of a stored file."""

    PENDING = "pending"
    STORED = "stored"
    VERIFIED = "verified"
    FAILED = "failed"


class VerificationStatus(str, Enum):
    """Outcome of one confirmation attempt on a verifying network."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class FileSnapshot(BaseModel):
    """
    Immutable view of a file record at one point in its lifecycle.

    Produced by FileRecord on every transition; readers only ever see a
    complete snapshot.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Record id, immutable once created")
    file_name: str = Field(..., alias="fileName")
    file_size: int = Field(..., alias="fileSize", gt=0)
    file_type: str = Field(..., alias="fileType")
    user_id: str = Field(..., alias="userId")
    vault_id: str = Field(..., alias="vaultId")
    encryption_type: str = Field(default="none", alias="encryptionType")
    security_tier: SecurityTier = Field(default="standard", alias="securityTier")
    status: FileStatus = Field(default=FileStatus.PENDING)
    locator: str = Field(
        default="",
        description="Network transaction id; empty until the write succeeds",
    )
    permanent_uri: str = Field(default="", alias="permanentUri")
    verified: bool = Field(default=False)
    verified_networks: Tuple[str, ...] = Field(
        default=(),
        alias="verifiedNetworks",
        description="Networks that confirmed existence, in confirmation order",
    )
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")


class VerificationRecord(BaseModel):
    """One confirmation attempt of a locator on one network (append-only)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file_id: str = Field(..., alias="fileId")
    network: str
    locator: str
    timestamp: datetime
    status: VerificationStatus
    attempt: int = Field(default=1, ge=1)
    block_height: Optional[int] = Field(default=None, alias="blockHeight")


# ============================================================================
# Upload Options and Results
# ============================================================================

@dataclass
class UploadOptions:
    """
    Caller-supplied options for a single upload.

    Attributes:
        encrypt: Record the payload as encrypted (``aes-256-gcm``)
        security_tier: Tier selecting the byte-size ceiling
        cross_chain_verify: Schedule background verification after the write
        min_networks: Confirmations required to reach VERIFIED
        tags: Custom tags, appended after the mandatory ones
        on_progress: Receives write progress as 0-100
        cancel_event: Set by the caller to abort the upload
        timeout: Per network step timeout in seconds (None = config default)
    """

    encrypt: bool = False
    security_tier: SecurityTier = "standard"
    cross_chain_verify: bool = False
    min_networks: Optional[int] = None
    tags: Optional[TagInput] = None
    on_progress: Optional[ProgressCallback] = None
    cancel_event: Optional[asyncio.Event] = None
    timeout: Optional[float] = None


class UploadResult(BaseModel):
    """Result of a successful upload."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    locator: str = Field(..., description="Permanent network transaction id")
    uri: str = Field(..., description="Gateway URI of the stored object")
    file_record: FileSnapshot = Field(..., alias="fileRecord")
    cost: str = Field(default="0", description="Price paid in atomic units")


class LocatorStatus(BaseModel):
    """Existence and confirmation state of a locator on the network."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    found: bool
    confirmed: bool
    block_height: Optional[int] = Field(default=None, alias="blockHeight")
    confirmations: int = Field(default=0, ge=0)


class ConfirmationResult(BaseModel):
    """Answer of a verifying network for one locator."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status: VerificationStatus
    block_height: Optional[int] = Field(default=None, alias="blockHeight")


class TransactionInfo(BaseModel):
    """Decoded network metadata of a stored object."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    owner: str
    size: int = Field(..., ge=0)
    content_type: Optional[str] = Field(default=None, alias="contentType")
    tags: Dict[str, str] = Field(default_factory=dict)
    block_height: Optional[int] = Field(default=None, alias="blockHeight")


class StorageStatus(BaseModel):
    """Availability and pricing snapshot reported by GET /status."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    available: bool
    gateway: str
    network: str
    balance: Optional[str] = None
    cost_per_mb: Optional[str] = Field(default=None, alias="costPerMb")
    avg_upload_time: Optional[float] = Field(default=None, alias="avgUploadTime")


class DownloadResult(BaseModel):
    """Result of downloading content."""

    model_config = ConfigDict(frozen=True)

    data: bytes
    size: int = Field(..., ge=0)
    content_type: Optional[str] = None
    downloaded_at: datetime


@dataclass
class UploadStats:
    """Running counters of a pipeline instance."""

    started: int = 0
    stored: int = 0
    failed: int = 0
    cancelled: int = 0
    upload_seconds: List[float] = field(default_factory=list)

    @property
    def avg_upload_time(self) -> Optional[float]:
        if not self.upload_seconds:
            return None
        return sum(self.upload_seconds) / len(self.upload_seconds)
