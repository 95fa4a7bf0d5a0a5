"""
Shared fixtures for permastore tests.

``FakeGateway`` stands in for GatewayConnection in pipeline, funding and
API tests: it keeps an escrow balance, debits it on every write, stores
written objects for read-back and counts every call.
"""

import asyncio
import base64
import hashlib
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from permastore.errors.storage import ContentNotFoundError, WriteFailedError
from permastore.storage.config import StorageConfig
from permastore.storage.cost import CostEstimator
from permastore.storage.funding import FundingManager
from permastore.storage.pipeline import UploadPipeline
from permastore.storage.records import InMemoryFileRecordStore
from permastore.storage.service import StorageService
from permastore.storage.types import (
    CircuitBreakerConfig,
    ConfirmationResult,
    DownloadResult,
    FundingConfig,
    LocatorStatus,
    Tag,
    TransactionInfo,
    VerificationConfig,
    VerificationStatus,
)
from permastore.storage.verification import VerificationScheduler
from permastore.utils.logging import ROOT_LOGGER_NAME


# =============================================================================
# Test Constants
# =============================================================================

TEST_NODE = "https://node1.test"
TEST_GATEWAY = "https://gateway.test"


def make_locator(data: bytes, salt: int) -> str:
    digest = hashlib.sha256(data + salt.to_bytes(4, "big")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


# =============================================================================
# Fakes
# =============================================================================


class FakeGateway:
    """In-memory gateway with an escrow balance and call counters."""

    def __init__(self, balance: int = 1_000_000, price_per_byte: int = 1) -> None:
        self.balance_value = balance
        self.price_per_byte = price_per_byte
        self.active_node: Optional[str] = TEST_NODE
        self.gateway_url = TEST_GATEWAY
        self.network = "devnet"
        self.currency = "base-eth"
        self.is_ready = True

        self.calls: Counter = Counter()
        self.fund_amounts: List[int] = []
        self.objects: Dict[str, Tuple[bytes, List[Tag]]] = {}
        self.confirmed: Dict[str, int] = {}
        self.overdrafts = 0

        self.price_error: Optional[Exception] = None
        self.fund_error: Optional[Exception] = None
        self.fund_delay = 0.0
        self.write_error: Optional[Exception] = None
        self.write_delay = 0.0
        self.before_write: Optional[Callable[[], None]] = None

    async def connect(self, wallet) -> str:
        self.calls["connect"] += 1
        self.is_ready = True
        return self.active_node

    async def close(self) -> None:
        self.calls["close"] += 1
        self.is_ready = False

    async def price(self, size_bytes: int) -> int:
        self.calls["price"] += 1
        await asyncio.sleep(0)
        if self.price_error is not None:
            raise self.price_error
        return size_bytes * self.price_per_byte

    async def balance(self) -> int:
        self.calls["balance"] += 1
        await asyncio.sleep(0)
        return self.balance_value

    async def fund(
        self, amount: int, *, on_sent: Optional[Callable[[str], None]] = None
    ) -> str:
        self.calls["fund"] += 1
        self.fund_amounts.append(amount)
        await asyncio.sleep(0)
        if self.fund_error is not None:
            raise self.fund_error
        tx_hash = "0x" + f"{len(self.fund_amounts):064x}"
        if on_sent is not None:
            on_sent(tx_hash)
        # Receipt wait
        await asyncio.sleep(self.fund_delay)
        self.balance_value += amount
        return tx_hash

    async def write(
        self,
        data: bytes,
        tags: Sequence[Tag],
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> str:
        self.calls["write"] += 1
        if self.before_write is not None:
            self.before_write()
        if on_progress is not None:
            on_progress(0)
        await asyncio.sleep(self.write_delay)
        if self.write_error is not None:
            raise self.write_error

        cost = len(data) * self.price_per_byte
        if cost > self.balance_value:
            self.overdrafts += 1
            raise WriteFailedError(
                "Insufficient gateway balance", node_url=self.active_node
            )
        self.balance_value -= cost

        if on_progress is not None:
            on_progress(50)
            on_progress(100)
        locator = make_locator(data, self.calls["write"])
        self.objects[locator] = (data, list(tags))
        return locator

    def permanent_uri(self, locator: str) -> str:
        return f"{self.gateway_url}/{locator}"

    async def read(self, locator: str) -> DownloadResult:
        self.calls["read"] += 1
        if locator not in self.objects:
            raise ContentNotFoundError(locator, gateway=self.gateway_url)
        data, _ = self.objects[locator]
        return DownloadResult(
            data=data,
            size=len(data),
            content_type="application/octet-stream",
            downloaded_at=datetime.now(timezone.utc),
        )

    async def status(self, locator: str) -> LocatorStatus:
        self.calls["status"] += 1
        if locator not in self.objects:
            return LocatorStatus(found=False, confirmed=False)
        height = self.confirmed.get(locator)
        return LocatorStatus(
            found=True,
            confirmed=height is not None,
            block_height=height,
            confirmations=1 if height is not None else 0,
        )

    async def transaction_info(self, locator: str) -> TransactionInfo:
        if locator not in self.objects:
            raise ContentNotFoundError(locator, gateway=self.gateway_url)
        data, tags = self.objects[locator]
        tag_map = dict(tags)
        return TransactionInfo(
            id=locator,
            owner="0xowner",
            size=len(data),
            content_type=tag_map.get("Content-Type"),
            tags=tag_map,
            block_height=self.confirmed.get(locator),
        )


class FakeNetwork:
    """Verifying network answering from a scripted list of statuses."""

    def __init__(self, name: str, answers: Sequence[VerificationStatus]) -> None:
        self.name = name
        self.answers = list(answers)
        self.calls = 0

    async def confirm(self, locator: str) -> ConfirmationResult:
        self.calls += 1
        await asyncio.sleep(0)
        index = min(self.calls - 1, len(self.answers) - 1)
        status = self.answers[index]
        return ConfirmationResult(
            status=status,
            block_height=1000 + self.calls if status == VerificationStatus.CONFIRMED else None,
        )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Services and apps set the permastore logger level; undo it per test."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, disabled = list(root.handlers), root.level, root.disabled
    yield
    root.handlers = handlers
    root.setLevel(level)
    root.disabled = disabled


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Gateway with ample escrow balance."""
    return FakeGateway()


@pytest.fixture
def store() -> InMemoryFileRecordStore:
    return InMemoryFileRecordStore()


@pytest.fixture
def fast_funding_config() -> FundingConfig:
    return FundingConfig(timeout_s=1.0, poll_interval_s=0.01)


@pytest.fixture
def fast_verification_config() -> VerificationConfig:
    """Verification with zero backoff so tests do not sleep."""
    return VerificationConfig(
        min_networks=1,
        max_attempts=3,
        base_delay_ms=0,
        max_delay_ms=0,
        max_workers=4,
    )


@pytest.fixture
def circuit_breaker_config() -> CircuitBreakerConfig:
    return CircuitBreakerConfig(
        enabled=True,
        failure_threshold=3,
        reset_timeout_ms=1000,
        failure_window_ms=5000,
        success_threshold=2,
    )


@pytest.fixture
def make_pipeline(fake_gateway, store, fast_funding_config):
    """Factory building an UploadPipeline around the fake gateway."""

    def factory(
        *,
        scheduler: Optional[VerificationScheduler] = None,
        tier_limits: Optional[Dict[str, int]] = None,
    ) -> UploadPipeline:
        return UploadPipeline(
            fake_gateway,
            CostEstimator(fake_gateway),
            FundingManager(fake_gateway, fast_funding_config),
            store,
            scheduler=scheduler,
            tier_limits=tier_limits,
            step_timeout=5.0,
        )

    return factory


@pytest.fixture
def make_network():
    """Factory for scripted verifying networks."""

    def factory(name: str, *answers: VerificationStatus) -> FakeNetwork:
        return FakeNetwork(name, answers or (VerificationStatus.CONFIRMED,))

    return factory


@pytest.fixture
def storage_config(fast_funding_config, fast_verification_config) -> StorageConfig:
    return StorageConfig(
        funding=fast_funding_config,
        verification=fast_verification_config,
        step_timeout=5.0,
    )


@pytest.fixture
def service(storage_config, fake_gateway, store) -> StorageService:
    """Service wired to the fake gateway, verified by one scripted network."""
    return StorageService(
        storage_config,
        gateway=fake_gateway,
        store=store,
        networks=[FakeNetwork("arweave", (VerificationStatus.CONFIRMED,))],
    )
