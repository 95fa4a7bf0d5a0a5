"""
Upload Pipeline - one file from bytes to a permanent locator.

    validate -> estimate cost -> PENDING record -> fund -> tag -> write
             -> STORED (+ verification scheduling)

Preconditions are checked before any network call. Once a record exists,
every failure marks it FAILED and surfaces a typed StorageError. The write
is never retried here: funding may already be spent, so retrying is the
caller's explicit decision.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Mapping, Optional, Set

from permastore.errors.storage import (
    CostQueryFailedError,
    EmptyFileError,
    FileTooLargeError,
    StorageError,
    UnsupportedFileTypeError,
    UploadCancelledError,
    WriteFailedError,
)
from permastore.storage.cancellation import run_cancellable
from permastore.storage.cost import CostEstimator
from permastore.storage.funding import FundingManager, FundingTicket
from permastore.storage.gateway import GatewayConnection
from permastore.storage.records import FileRecord, FileRecordStore
from permastore.storage.tags import build_tags, validate_custom_tags, validate_owner_tags
from permastore.storage.types import (
    DEFAULT_SUPPORTED_FILE_TYPES,
    DEFAULT_TIER_LIMITS,
    FileStatus,
    Tag,
    UploadOptions,
    UploadResult,
    UploadStats,
)
from permastore.storage.verification import VerificationScheduler
from permastore.utils.logging import LogContext, get_logger

_logger = get_logger(__name__)

ENCRYPTION_ALGORITHM = "aes-256-gcm"
DEFAULT_STEP_TIMEOUT_S = 120.0


class UploadPipeline:
    """
    Orchestrates CostEstimator, FundingManager and GatewayConnection.

    Example:
        ```python
        pipeline = UploadPipeline(gateway, CostEstimator(gateway), FundingManager(gateway), store)
        result = await pipeline.upload(
            data, "notes.txt", "text/plain", user_id="u1", vault_id="v1",
            options=UploadOptions(on_progress=lambda pct: print(pct)),
        )
        print(result.uri)
        ```
    """

    def __init__(
        self,
        gateway: GatewayConnection,
        cost_estimator: CostEstimator,
        funding: FundingManager,
        store: FileRecordStore,
        *,
        scheduler: Optional[VerificationScheduler] = None,
        tier_limits: Optional[Mapping[str, int]] = None,
        supported_file_types: Optional[Iterable[str]] = None,
        step_timeout: float = DEFAULT_STEP_TIMEOUT_S,
    ) -> None:
        self._gateway = gateway
        self._cost = cost_estimator
        self._funding = funding
        self._store = store
        self._scheduler = scheduler
        self._tier_limits: Dict[str, int] = dict(tier_limits or DEFAULT_TIER_LIMITS)
        self._supported_types = frozenset(supported_file_types or DEFAULT_SUPPORTED_FILE_TYPES)
        self._step_timeout = step_timeout
        self._completions: Set[asyncio.Task] = set()
        self.stats = UploadStats()

    @property
    def funding(self) -> FundingManager:
        return self._funding

    @property
    def supported_file_types(self) -> frozenset:
        return self._supported_types

    def size_limit(self, tier: str) -> int:
        try:
            return self._tier_limits[tier]
        except KeyError:
            raise ValueError(f"Unknown security tier: {tier}") from None

    def check_preconditions(
        self,
        size: int,
        file_type: str,
        security_tier: str = "standard",
        file_name: Optional[str] = None,
    ) -> None:
        """
        Validate an upload without touching the network.

        Raises:
            UnsupportedFileTypeError: MIME type not in the allowlist
            EmptyFileError: Zero-byte payload
            FileTooLargeError: Payload above the tier ceiling
        """
        if file_type not in self._supported_types:
            raise UnsupportedFileTypeError(file_type, self._supported_types)
        if size <= 0:
            raise EmptyFileError(file_name)
        limit = self.size_limit(security_tier)
        if size > limit:
            raise FileTooLargeError(size, limit, tier=security_tier)

    async def upload(
        self,
        data: bytes,
        file_name: str,
        file_type: str,
        user_id: str,
        vault_id: str,
        options: Optional[UploadOptions] = None,
    ) -> UploadResult:
        """
        Store one file permanently.

        Args:
            data: File contents
            file_name: Original file name
            file_type: MIME type (must be in the allowlist)
            user_id: Owning user
            vault_id: Owning vault
            options: Upload options (defaults: standard tier, no verification)

        Returns:
            UploadResult with locator, permanent URI and the STORED record

        Raises:
            StorageError: Typed failure; see ``permastore.errors.storage``
        """
        options = options or UploadOptions()
        tier = options.security_tier
        self.check_preconditions(len(data), file_type, tier, file_name)
        validate_owner_tags(user_id, vault_id)
        custom_tags = validate_custom_tags(options.tags)

        timeout = options.timeout or self._step_timeout
        cancel = options.cancel_event
        log = LogContext(_logger, file_name=file_name, size_bytes=len(data), tier=tier)
        self.stats.started += 1

        try:
            price = await run_cancellable(
                self._cost.estimate(len(data)), cancel, timeout=timeout
            )
        except asyncio.TimeoutError as e:
            self.stats.failed += 1
            raise CostQueryFailedError(
                f"Price lookup timed out after {timeout}s",
                node_url=self._gateway.active_node,
                size_bytes=len(data),
            ) from e
        except UploadCancelledError:
            self.stats.cancelled += 1
            raise
        except StorageError:
            self.stats.failed += 1
            raise
        log.info("Upload cost estimated", extra={"price": price})

        record = FileRecord.create(
            file_name=file_name,
            file_size=len(data),
            file_type=file_type,
            user_id=user_id,
            vault_id=vault_id,
            encryption_type=ENCRYPTION_ALGORITHM if options.encrypt else "none",
            security_tier=tier,
        )
        self._store.save(record)
        log = log.bind(file_id=record.id)

        try:
            ticket = await self._funding.ensure_funded(
                price, cancel_event=cancel, timeout=options.timeout
            )
        except UploadCancelledError as e:
            self._fail(record, e.code, log, count=False)
            self.stats.cancelled += 1
            raise
        except StorageError as e:
            self._fail(record, e.code, log)
            raise

        tags = build_tags(
            content_type=file_type,
            vault_id=vault_id,
            user_id=user_id,
            security_tier=tier,
            encryption_type=record.snapshot.encryption_type,
            custom_tags=custom_tags,
        )

        completion = self._write_and_finalize(
            record, data, tags, options, ticket, price, timeout, log
        )

        if ticket.funded:
            # Funds are spent: finish the write even if the caller goes away
            task = asyncio.ensure_future(completion)
            self._completions.add(task)
            task.add_done_callback(self._completions.discard)
            result = await asyncio.shield(task)
            if cancel is not None and cancel.is_set():
                self.stats.cancelled += 1
                raise UploadCancelledError(
                    funds_spent=True, file_id=record.id, locator=result.locator
                )
            return result

        # The write may be cancelled before its body ever runs
        try:
            return await run_cancellable(completion, cancel)
        except UploadCancelledError as e:
            self._fail(record, e.code, log, count=False)
            self.stats.cancelled += 1
            raise
        finally:
            self._funding.release(ticket)

    async def _write_and_finalize(
        self,
        record: FileRecord,
        data: bytes,
        tags: List[Tag],
        options: UploadOptions,
        ticket: FundingTicket,
        price: int,
        timeout: float,
        log: LogContext,
    ) -> UploadResult:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            log.info("Write started", extra={"node": self._gateway.active_node})
            locator = await asyncio.wait_for(
                self._gateway.write(data, tags, options.on_progress),
                timeout,
            )
        except asyncio.TimeoutError as e:
            error = WriteFailedError(
                f"Write timed out after {timeout}s",
                node_url=self._gateway.active_node,
                size_bytes=len(data),
            )
            self._fail(record, error.code, log)
            raise error from e
        except asyncio.CancelledError:
            self._fail(record, UploadCancelledError.default_code, log, count=False)
            raise
        except StorageError as e:
            self._fail(record, e.code, log)
            raise
        finally:
            self._funding.release(ticket)

        uri = self._gateway.permanent_uri(locator)
        snapshot = record.mark_stored(locator, uri)
        self._store.save(record)
        self.stats.stored += 1
        self.stats.upload_seconds.append(loop.time() - started)
        log.info("File stored", extra={"locator": locator, "uri": uri})

        if options.cross_chain_verify and self._scheduler is not None:
            self._scheduler.schedule(record, min_networks=options.min_networks)

        return UploadResult(
            locator=locator,
            uri=uri,
            file_record=snapshot,
            cost=str(price),
        )

    def _fail(
        self, record: FileRecord, code: str, log: LogContext, *, count: bool = True
    ) -> None:
        # Already settled by the write step
        if record.status is not FileStatus.PENDING:
            return
        record.mark_failed(code)
        self._store.save(record)
        if count:
            self.stats.failed += 1
        log.warning("Upload failed", extra={"error_code": code})

    async def drain(self) -> None:
        """Wait for funded writes whose callers already went away."""
        while self._completions:
            await asyncio.gather(*list(self._completions), return_exceptions=True)
