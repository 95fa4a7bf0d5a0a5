"""
Storage Service - explicit composition of the permanent-storage pipeline.

There is no module-level instance: construct a StorageService, call
``initialize()`` once, inject it where needed, and ``close()`` it on
shutdown.

Example:
    ```python
    from permastore.storage import StorageConfig, StorageService

    service = StorageService(StorageConfig.from_env())
    await service.initialize()
    try:
        result = await service.upload(
            data, "report.pdf", "application/pdf", user_id="u1", vault_id="v1",
        )
    finally:
        await service.close()
    ```
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import httpx

from permastore.errors.storage import GatewayNotReadyError, StorageError
from permastore.storage.config import StorageConfig
from permastore.storage.cost import CostEstimator
from permastore.storage.funding import FundingManager
from permastore.storage.gateway import GatewayConnection
from permastore.storage.pipeline import UploadPipeline
from permastore.storage.records import (
    FileRecord,
    FileRecordStore,
    InMemoryFileRecordStore,
)
from permastore.storage.types import (
    DownloadResult,
    StorageStatus,
    TransactionInfo,
    UploadOptions,
    UploadResult,
    VerificationRecord,
)
from permastore.storage.verification import (
    GatewayVerifyingNetwork,
    VerificationScheduler,
    VerifiedCallback,
    VerifyingNetwork,
)
from permastore.storage.wallet import Wallet
from permastore.utils.logging import get_logger, set_level

_logger = get_logger(__name__)


class StorageService:
    """
    Facade over gateway, funding, pipeline and verification.

    Args:
        config: Service configuration (defaults to mainnet settings)
        store: Record persistence (defaults to in-memory)
        networks: Verifying networks; defaults to the storage network itself
        on_verified: Called once per file that reaches VERIFIED
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        *,
        store: Optional[FileRecordStore] = None,
        gateway: Optional[GatewayConnection] = None,
        networks: Optional[Sequence[VerifyingNetwork]] = None,
        on_verified: Optional[VerifiedCallback] = None,
    ) -> None:
        self._config = config or StorageConfig()
        set_level(self._config.log_level)
        self.gateway = gateway or GatewayConnection(self._config.gateway)
        self.store: FileRecordStore = store or InMemoryFileRecordStore()
        self.cost = CostEstimator(self.gateway)
        self.funding = FundingManager(self.gateway, self._config.funding)
        self.scheduler = VerificationScheduler(
            self.store,
            networks if networks is not None else [GatewayVerifyingNetwork(self.gateway)],
            self._config.verification,
            on_verified=on_verified,
        )
        self.pipeline = UploadPipeline(
            self.gateway,
            self.cost,
            self.funding,
            self.store,
            scheduler=self.scheduler,
            tier_limits=self._config.tier_limits,
            supported_file_types=self._config.supported_file_types,
            step_timeout=self._config.step_timeout,
        )

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def is_ready(self) -> bool:
        return self.gateway.is_ready

    async def initialize(
        self,
        wallet: Optional[Wallet] = None,
        *,
        private_key: Optional[str] = None,
    ) -> str:
        """
        Connect to the first healthy gateway node.

        Args:
            wallet: Ready wallet; built from ``private_key`` or the configured
                key otherwise

        Returns:
            Active node URL

        Raises:
            GatewayNotReadyError: No wallet credentials available
            NoGatewayAvailableError: Every node failed
        """
        if wallet is None:
            key = private_key or self._config.wallet_key
            if not key:
                raise GatewayNotReadyError(
                    "No wallet key configured (set PERMASTORE_WALLET_KEY)"
                )
            wallet = Wallet(key, rpc_url=self._config.gateway.rpc_url)

        node = await self.gateway.connect(wallet)
        _logger.info(
            "Storage service initialized",
            extra={"node": node, "network": self.gateway.network},
        )
        return node

    async def close(self) -> None:
        """Finish funded writes, stop verification and release the node."""
        await self.pipeline.drain()
        await self.scheduler.close()
        await self.gateway.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_status(self) -> StorageStatus:
        """
        Availability, balance and price snapshot.

        Never raises: an unreachable gateway reports ``available=False``.
        """
        if not self.gateway.is_ready:
            return StorageStatus(
                available=False,
                gateway=self.gateway.gateway_url,
                network=self.gateway.network,
            )

        try:
            balance = await self.gateway.balance()
            per_mb = await self.cost.cost_per_mb()
        except (StorageError, httpx.HTTPError) as e:
            _logger.warning("Storage status check failed", extra={"error": str(e)})
            return StorageStatus(
                available=False,
                gateway=self.gateway.gateway_url,
                network=self.gateway.network,
            )

        return StorageStatus(
            available=True,
            gateway=self.gateway.gateway_url,
            network=self.gateway.network,
            balance=str(balance),
            cost_per_mb=str(per_mb),
            avg_upload_time=self.pipeline.stats.avg_upload_time,
        )

    async def upload(
        self,
        data: bytes,
        file_name: str,
        file_type: str,
        user_id: str,
        vault_id: str,
        options: Optional[UploadOptions] = None,
    ) -> UploadResult:
        """See ``UploadPipeline.upload``."""
        return await self.pipeline.upload(
            data, file_name, file_type, user_id, vault_id, options
        )

    async def get_file(self, locator: str) -> DownloadResult:
        """Download stored content by locator."""
        return await self.gateway.read(locator)

    async def verify_file(self, locator: str) -> bool:
        """Whether ``locator`` is confirmed on the storage network."""
        status = await self.gateway.status(locator)
        return status.confirmed

    async def get_transaction_info(self, locator: str) -> TransactionInfo:
        return await self.gateway.transaction_info(locator)

    async def calculate_upload_cost(self, size_bytes: int) -> int:
        """
        Quote the price of a write.

        Raises:
            ValueError: If ``size_bytes`` is not positive
            CostCalculationFailedError: Lookup failed
        """
        return await self.cost.quote(size_bytes)

    def get_record(
        self, file_id: str
    ) -> Optional[Tuple[FileRecord, List[VerificationRecord]]]:
        """File record and its verification history, or None if unknown."""
        record = self.store.get(file_id)
        if record is None:
            return None
        return record, self.store.list_verifications(file_id)
