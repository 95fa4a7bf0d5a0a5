"""
Storage Module - permanent storage on Arweave through Irys gateway nodes.

Pipeline:
- CostEstimator: price of a write of a given size
- FundingManager: keeps the gateway escrow ahead of writes
- GatewayConnection: node selection, writes and reads
- UploadPipeline: validate, fund, tag, write, record
- VerificationScheduler: background confirmation of stored files

Example:
    ```python
    from permastore.storage import StorageConfig, StorageService, UploadOptions

    service = StorageService(StorageConfig.from_env())
    await service.initialize()

    result = await service.upload(
        data,
        "contract.pdf",
        "application/pdf",
        user_id="user-1",
        vault_id="vault-1",
        options=UploadOptions(security_tier="enhanced", cross_chain_verify=True),
    )
    print(f"Stored at: {result.uri}")
    ```
"""

from __future__ import annotations

# ============================================================================
# Types
# ============================================================================

from permastore.storage.types import (
    DEFAULT_GATEWAY_URL,
    DEFAULT_SUPPORTED_FILE_TYPES,
    DEFAULT_TIER_LIMITS,
    GATEWAY_NODES,
    MIB,
    CircuitBreakerConfig,
    ConfirmationResult,
    DownloadResult,
    FileSnapshot,
    FileStatus,
    FundingConfig,
    GatewayConfig,
    IrysCurrency,
    LocatorStatus,
    ProgressCallback,
    SecurityTier,
    StorageNetwork,
    StorageStatus,
    Tag,
    TagInput,
    TransactionInfo,
    UploadOptions,
    UploadResult,
    UploadStats,
    VerificationConfig,
    VerificationRecord,
    VerificationStatus,
)

# ============================================================================
# Records and Tags
# ============================================================================

from permastore.storage.records import (
    STATUS_TRANSITIONS,
    FileRecord,
    FileRecordStore,
    InMemoryFileRecordStore,
    is_terminal_status,
    is_valid_transition,
)
from permastore.storage.tags import (
    APP_NAME,
    APP_VERSION,
    RESERVED_TAG_NAMES,
    build_tags,
    tags_to_headers,
    validate_custom_tags,
    validate_owner_tags,
)

# ============================================================================
# Pipeline Components
# ============================================================================

from permastore.storage.wallet import Wallet
from permastore.storage.gateway import GatewayConnection
from permastore.storage.cost import CostEstimator
from permastore.storage.cancellation import run_cancellable
from permastore.storage.funding import FundingManager, FundingTicket
from permastore.storage.verification import (
    GatewayVerifyingNetwork,
    VerificationScheduler,
    VerifyingNetwork,
)
from permastore.storage.pipeline import UploadPipeline
from permastore.storage.config import StorageConfig
from permastore.storage.service import StorageService

__all__ = [
    # Types
    "DEFAULT_GATEWAY_URL",
    "DEFAULT_SUPPORTED_FILE_TYPES",
    "DEFAULT_TIER_LIMITS",
    "GATEWAY_NODES",
    "MIB",
    "CircuitBreakerConfig",
    "ConfirmationResult",
    "DownloadResult",
    "FileSnapshot",
    "FileStatus",
    "FundingConfig",
    "GatewayConfig",
    "IrysCurrency",
    "LocatorStatus",
    "ProgressCallback",
    "SecurityTier",
    "StorageNetwork",
    "StorageStatus",
    "Tag",
    "TagInput",
    "TransactionInfo",
    "UploadOptions",
    "UploadResult",
    "UploadStats",
    "VerificationConfig",
    "VerificationRecord",
    "VerificationStatus",
    # Records and tags
    "STATUS_TRANSITIONS",
    "FileRecord",
    "FileRecordStore",
    "InMemoryFileRecordStore",
    "is_terminal_status",
    "is_valid_transition",
    "APP_NAME",
    "APP_VERSION",
    "RESERVED_TAG_NAMES",
    "build_tags",
    "tags_to_headers",
    "validate_custom_tags",
    "validate_owner_tags",
    # Pipeline
    "Wallet",
    "GatewayConnection",
    "CostEstimator",
    "run_cancellable",
    "FundingManager",
    "FundingTicket",
    "GatewayVerifyingNetwork",
    "VerificationScheduler",
    "VerifyingNetwork",
    "UploadPipeline",
    "StorageConfig",
    "StorageService",
]
