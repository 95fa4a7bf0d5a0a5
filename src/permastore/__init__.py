"""
permastore - permanent file storage on Arweave through Irys gateway nodes.

Quick Start:
    >>> from permastore import StorageConfig, StorageService
    >>> import asyncio
    >>>
    >>> async def main():
    ...     service = StorageService(StorageConfig.from_env())
    ...     await service.initialize()
    ...     result = await service.upload(
    ...         b"hello", "hello.txt", "text/plain",
    ...         user_id="user-1", vault_id="vault-1",
    ...     )
    ...     print(f"Stored at: {result.uri}")
    ...     await service.close()
    ...
    >>> asyncio.run(main())

Modules:
- `storage`: Upload pipeline, funding, gateway, records and verification
- `errors`: Exception hierarchy with stable error codes
- `utils`: Logging, retry, circuit breaker and security helpers
- `api`: FastAPI application exposing the service over HTTP
"""

from permastore.version import __version__, __version_info__

# Storage (imported before errors/utils re-exports; the circuit breaker
# depends on storage types)
from permastore.storage import (
    FileRecord,
    FileStatus,
    GatewayConfig,
    GatewayConnection,
    InMemoryFileRecordStore,
    StorageConfig,
    StorageService,
    UploadOptions,
    UploadPipeline,
    UploadResult,
    VerificationScheduler,
    Wallet,
)

# Errors
from permastore.errors import (
    PermastoreError,
    StorageError,
    UploadCancelledError,
)

# Logging
from permastore.utils.logging import configure_logging, get_logger

__all__ = [
    "__version__",
    "__version_info__",
    # Storage
    "FileRecord",
    "FileStatus",
    "GatewayConfig",
    "GatewayConnection",
    "InMemoryFileRecordStore",
    "StorageConfig",
    "StorageService",
    "UploadOptions",
    "UploadPipeline",
    "UploadResult",
    "VerificationScheduler",
    "Wallet",
    # Errors
    "PermastoreError",
    "StorageError",
    "UploadCancelledError",
    # Logging
    "configure_logging",
    "get_logger",
]
