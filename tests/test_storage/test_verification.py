"""
Tests for VerificationScheduler.

Tests cover:
- Fire-and-forget scheduling
- VERIFIED exactly once with min_networks
- Retry with backoff and exhaustion leaving STORED
- Append-only verification records
- Ignoring unconfigured networks
"""

import asyncio

import httpx
import pytest

from permastore.storage.records import FileRecord
from permastore.storage.types import (
    ConfirmationResult,
    FileStatus,
    VerificationConfig,
    VerificationStatus,
)
from permastore.storage.verification import (
    GatewayVerifyingNetwork,
    VerificationScheduler,
)

from .conftest import LOCATOR

CONFIRMED = VerificationStatus.CONFIRMED
PENDING = VerificationStatus.PENDING


def stored_record(store) -> FileRecord:
    record = FileRecord.create(
        file_name="notes.txt",
        file_size=10,
        file_type="text/plain",
        user_id="user-1",
        vault_id="vault-1",
    )
    record.mark_stored(LOCATOR, f"https://gateway.test/{LOCATOR}")
    store.save(record)
    return record


class TestScheduling:
    """Scheduling semantics."""

    @pytest.mark.asyncio
    async def test_schedule_returns_immediately(
        self, store, make_network, fast_verification_config
    ) -> None:
        network = make_network("arweave")
        scheduler = VerificationScheduler(store, [network], fast_verification_config)
        record = stored_record(store)

        task = scheduler.schedule(record)

        assert task is not None
        assert network.calls == 0
        assert scheduler.pending == 1
        await scheduler.wait_idle()
        assert scheduler.pending == 0
        assert record.status == FileStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_pending_record_not_scheduled(
        self, store, make_network, fast_verification_config
    ) -> None:
        scheduler = VerificationScheduler(
            store, [make_network("arweave")], fast_verification_config
        )
        record = FileRecord.create(
            file_name="a.txt", file_size=1, file_type="text/plain",
            user_id="u", vault_id="v",
        )

        assert scheduler.schedule(record) is None

    @pytest.mark.asyncio
    async def test_close_cancels_outstanding(self, store, make_network) -> None:
        slow = VerificationConfig(max_attempts=10, base_delay_ms=60000, max_delay_ms=60000)
        scheduler = VerificationScheduler(store, [make_network("arweave", PENDING)], slow)
        record = stored_record(store)

        scheduler.schedule(record)
        await asyncio.sleep(0.01)
        await scheduler.close()

        assert scheduler.pending == 0
        assert record.status == FileStatus.STORED


    @pytest.mark.asyncio
    async def test_worker_pool_bounds_concurrent_queries(self, store) -> None:
        class CountingNetwork:
            name = "arweave"

            def __init__(self) -> None:
                self.in_flight = 0
                self.peak = 0

            async def confirm(self, locator: str) -> ConfirmationResult:
                self.in_flight += 1
                self.peak = max(self.peak, self.in_flight)
                await asyncio.sleep(0.01)
                self.in_flight -= 1
                return ConfirmationResult(status=CONFIRMED, block_height=1)

        network = CountingNetwork()
        config = VerificationConfig(
            max_attempts=1, base_delay_ms=0, max_delay_ms=0, max_workers=1
        )
        scheduler = VerificationScheduler(store, [network], config)
        records = [stored_record(store) for _ in range(3)]

        for record in records:
            scheduler.schedule(record)
        await scheduler.wait_idle()

        assert network.peak == 1
        assert all(r.status == FileStatus.VERIFIED for r in records)


class TestConfirmation:
    """Transition to VERIFIED."""

    @pytest.mark.asyncio
    async def test_min_networks_two(
        self, store, make_network, fast_verification_config
    ) -> None:
        verified = []
        scheduler = VerificationScheduler(
            store,
            [make_network("arweave", PENDING, CONFIRMED), make_network("ethereum")],
            fast_verification_config,
            on_verified=verified.append,
        )
        record = stored_record(store)

        scheduler.schedule(record, min_networks=2)
        await scheduler.wait_idle()

        assert record.status == FileStatus.VERIFIED
        assert record.verified_networks == {"arweave", "ethereum"}
        assert scheduler.verified_count == 1
        assert [s.id for s in verified] == [record.id]

    @pytest.mark.asyncio
    async def test_one_network_short_stays_stored(
        self, store, make_network, fast_verification_config
    ) -> None:
        scheduler = VerificationScheduler(
            store,
            [make_network("arweave"), make_network("ethereum", PENDING)],
            fast_verification_config,
        )
        record = stored_record(store)

        scheduler.schedule(record, min_networks=2)
        await scheduler.wait_idle()

        assert record.status == FileStatus.STORED
        assert record.verified is True
        assert record.verified_networks == {"arweave"}

    @pytest.mark.asyncio
    async def test_repeat_confirmation_is_noop(
        self, store, make_network, fast_verification_config
    ) -> None:
        scheduler = VerificationScheduler(
            store, [make_network("arweave")], fast_verification_config
        )
        record = stored_record(store)

        assert scheduler.record_confirmation(record, "arweave") is True
        assert scheduler.record_confirmation(record, "arweave") is False
        assert scheduler.verified_count == 1

    @pytest.mark.asyncio
    async def test_unconfigured_network_ignored(
        self, store, make_network, fast_verification_config
    ) -> None:
        scheduler = VerificationScheduler(
            store, [make_network("arweave")], fast_verification_config
        )
        record = stored_record(store)

        assert scheduler.record_confirmation(record, "solana") is False
        assert record.status == FileStatus.STORED
        assert record.verified_networks == frozenset()

    @pytest.mark.asyncio
    async def test_failed_record_not_verified(
        self, store, make_network, fast_verification_config
    ) -> None:
        scheduler = VerificationScheduler(
            store, [make_network("arweave")], fast_verification_config
        )
        record = stored_record(store)
        record.mark_failed("MANUAL")

        assert scheduler.record_confirmation(record, "arweave") is False
        assert record.status == FileStatus.FAILED


class TestRetries:
    """Backoff, exhaustion and attempt records."""

    @pytest.mark.asyncio
    async def test_exhaustion_leaves_stored(
        self, store, make_network, fast_verification_config
    ) -> None:
        network = make_network("arweave", PENDING)
        scheduler = VerificationScheduler(store, [network], fast_verification_config)
        record = stored_record(store)

        scheduler.schedule(record)
        await scheduler.wait_idle()

        assert network.calls == fast_verification_config.max_attempts
        assert record.status == FileStatus.STORED
        assert record.verified is False

    @pytest.mark.asyncio
    async def test_every_attempt_recorded(
        self, store, make_network, fast_verification_config
    ) -> None:
        scheduler = VerificationScheduler(
            store,
            [make_network("arweave", PENDING, PENDING, CONFIRMED)],
            fast_verification_config,
        )
        record = stored_record(store)

        scheduler.schedule(record)
        await scheduler.wait_idle()
        history = store.list_verifications(record.id)

        assert [v.status for v in history] == [PENDING, PENDING, CONFIRMED]
        assert [v.attempt for v in history] == [1, 2, 3]
        assert all(v.network == "arweave" and v.locator == LOCATOR for v in history)
        assert history[-1].block_height is not None

    @pytest.mark.asyncio
    async def test_query_errors_recorded_as_failed_and_retried(
        self, store, fast_verification_config
    ) -> None:
        class FlakyNetwork:
            name = "arweave"

            def __init__(self) -> None:
                self.calls = 0

            async def confirm(self, locator: str) -> ConfirmationResult:
                self.calls += 1
                if self.calls == 1:
                    raise httpx.ConnectError("connection refused")
                return ConfirmationResult(status=CONFIRMED, block_height=7)

        network = FlakyNetwork()
        scheduler = VerificationScheduler(store, [network], fast_verification_config)
        record = stored_record(store)

        scheduler.schedule(record)
        await scheduler.wait_idle()
        history = store.list_verifications(record.id)

        assert [v.status for v in history] == [VerificationStatus.FAILED, CONFIRMED]
        assert record.status == FileStatus.VERIFIED


class TestGatewayVerifyingNetwork:
    @pytest.mark.asyncio
    async def test_confirmed_locator(self, fake_gateway) -> None:
        fake_gateway.objects[LOCATOR] = (b"data", [])
        fake_gateway.confirmed[LOCATOR] = 1234
        network = GatewayVerifyingNetwork(fake_gateway)

        result = await network.confirm(LOCATOR)

        assert network.name == "arweave"
        assert result.status == CONFIRMED
        assert result.block_height == 1234

    @pytest.mark.asyncio
    async def test_unconfirmed_locator_is_pending(self, fake_gateway) -> None:
        network = GatewayVerifyingNetwork(fake_gateway)

        result = await network.confirm(LOCATOR)

        assert result.status == PENDING
        assert result.block_height is None
