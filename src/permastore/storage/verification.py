"""
Verification Scheduler - background confirmation of stored files.

After a write, each configured verifying network is polled independently
for the locator with bounded exponential backoff. Every attempt is appended
as a VerificationRecord. Once enough distinct networks confirmed, the file
record moves STORED -> VERIFIED exactly once. Running out of attempts leaves
the record STORED; the object is already durably written, so verification
never marks a file FAILED.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import (
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
)

import httpx

from permastore.errors.storage import StorageError
from permastore.storage.gateway import GatewayConnection
from permastore.storage.records import FileRecord, FileRecordStore
from permastore.storage.types import (
    ConfirmationResult,
    FileSnapshot,
    FileStatus,
    VerificationConfig,
    VerificationRecord,
    VerificationStatus,
)
from permastore.utils.logging import get_logger
from permastore.utils.retry import RetryConfig, backoff_delays

_logger = get_logger(__name__)

VerifiedCallback = Callable[[FileSnapshot], None]


class VerifyingNetwork(Protocol):
    """A network that can corroborate that a locator is durably stored."""

    name: str

    async def confirm(self, locator: str) -> ConfirmationResult:
        ...


class GatewayVerifyingNetwork:
    """Confirms locators against the storage network's own block status."""

    def __init__(self, gateway: GatewayConnection, name: str = "arweave") -> None:
        self.name = name
        self._gateway = gateway

    async def confirm(self, locator: str) -> ConfirmationResult:
        status = await self._gateway.status(locator)
        if status.confirmed:
            return ConfirmationResult(
                status=VerificationStatus.CONFIRMED,
                block_height=status.block_height,
            )
        # Not found yet usually means still propagating from the bundler
        return ConfirmationResult(status=VerificationStatus.PENDING)


class VerificationScheduler:
    """
    Fire-and-forget verification of stored files.

    Example:
        ```python
        scheduler = VerificationScheduler(store, [GatewayVerifyingNetwork(gateway)])
        scheduler.schedule(record, min_networks=1)
        ...
        await scheduler.close()
        ```
    """

    def __init__(
        self,
        store: FileRecordStore,
        networks: Sequence[VerifyingNetwork],
        config: Optional[VerificationConfig] = None,
        *,
        on_verified: Optional[VerifiedCallback] = None,
    ) -> None:
        self._store = store
        self._networks: Dict[str, VerifyingNetwork] = {n.name: n for n in networks}
        self._config = config or VerificationConfig()
        self._on_verified = on_verified
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()
        self.verified_count = 0

    @property
    def network_names(self) -> List[str]:
        return list(self._networks)

    @property
    def pending(self) -> int:
        """Number of files still being verified."""
        return len(self._tasks)

    def _worker_slots(self) -> asyncio.Semaphore:
        # Created on first use so it binds to the running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._config.max_workers)
        return self._semaphore

    def _retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self._config.max_attempts,
            base_delay_ms=self._config.base_delay_ms,
            max_delay_ms=self._config.max_delay_ms,
        )

    def schedule(
        self,
        record: FileRecord,
        *,
        min_networks: Optional[int] = None,
    ) -> Optional[asyncio.Task]:
        """
        Enqueue ``record`` for background confirmation.

        Returns immediately. Must be called from a running event loop.

        Returns:
            The background task, or None if the record is not STORED
        """
        if record.status != FileStatus.STORED:
            _logger.warning(
                "Skipping verification of non-stored file",
                extra={"file_id": record.id, "status": record.status.value},
            )
            return None

        required = min_networks or self._config.min_networks
        if required > len(self._networks):
            _logger.warning(
                "Fewer verifying networks configured than required",
                extra={
                    "file_id": record.id,
                    "required": required,
                    "configured": len(self._networks),
                },
            )

        task = asyncio.create_task(self._verify(record, required))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        _logger.info(
            "Verification scheduled",
            extra={
                "file_id": record.id,
                "locator": record.locator,
                "networks": ",".join(self._networks),
                "min_networks": required,
            },
        )
        return task

    async def _verify(self, record: FileRecord, min_networks: int) -> None:
        results = await asyncio.gather(
            *(
                self._verify_on(record, network, min_networks)
                for network in self._networks.values()
            ),
            return_exceptions=True,
        )
        for network, result in zip(self._networks, results):
            if isinstance(result, Exception):
                _logger.error(
                    "Verification task crashed",
                    extra={"file_id": record.id, "network": network, "error": str(result)},
                )

        if record.status != FileStatus.VERIFIED:
            _logger.info(
                "Verification incomplete, file stays stored",
                extra={
                    "file_id": record.id,
                    "confirmed": len(record.verified_networks),
                    "required": min_networks,
                },
            )

    async def _verify_on(
        self,
        record: FileRecord,
        network: VerifyingNetwork,
        min_networks: int,
    ) -> bool:
        locator = record.locator
        delays = backoff_delays(self._retry_config())
        attempt = 0

        while True:
            attempt += 1
            if record.status == FileStatus.FAILED:
                return False

            result = await self._attempt(network, locator)
            self._store.add_verification(
                VerificationRecord(
                    file_id=record.id,
                    network=network.name,
                    locator=locator,
                    timestamp=datetime.now(timezone.utc),
                    status=result.status,
                    attempt=attempt,
                    block_height=result.block_height,
                )
            )

            if result.status == VerificationStatus.CONFIRMED:
                self.record_confirmation(record, network.name, min_networks=min_networks)
                return True

            delay = next(delays, None)
            if delay is None:
                _logger.warning(
                    "Verification attempts exhausted",
                    extra={"file_id": record.id, "network": network.name, "attempts": attempt},
                )
                return False

            await asyncio.sleep(delay)

    async def _attempt(
        self, network: VerifyingNetwork, locator: str
    ) -> ConfirmationResult:
        async with self._worker_slots():
            try:
                return await network.confirm(locator)
            except (httpx.HTTPError, StorageError) as e:
                _logger.warning(
                    "Confirmation query failed",
                    extra={"network": network.name, "locator": locator, "error": str(e)},
                )
                return ConfirmationResult(status=VerificationStatus.FAILED)

    def record_confirmation(
        self,
        record: FileRecord,
        network: str,
        *,
        min_networks: Optional[int] = None,
    ) -> bool:
        """
        Count a confirmation of ``record`` from ``network``.

        Confirmations from networks outside the configured set are ignored,
        and repeated confirmations from a counted network are no-ops.

        Returns:
            True only when this confirmation moved the record to VERIFIED
        """
        if network not in self._networks:
            _logger.debug(
                "Ignoring confirmation from unconfigured network",
                extra={"file_id": record.id, "network": network},
            )
            return False
        if record.status not in (FileStatus.STORED, FileStatus.VERIFIED):
            return False

        transitioned = record.add_verified_network(
            network, min_networks=min_networks or self._config.min_networks
        )
        self._store.save(record)

        if transitioned:
            self.verified_count += 1
            _logger.info(
                "File verified",
                extra={
                    "file_id": record.id,
                    "locator": record.locator,
                    "networks": ",".join(sorted(record.verified_networks)),
                },
            )
            if self._on_verified is not None:
                self._on_verified(record.snapshot)
        return transitioned

    async def wait_idle(self) -> None:
        """Wait until every scheduled verification finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding verifications."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
