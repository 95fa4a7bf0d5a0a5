"""
Tests for storage type definitions and Pydantic validation.

Tests cover:
- GatewayConfig, FundingConfig and VerificationConfig validation
- FileSnapshot and UploadResult camelCase serialization
- Invalid data rejection
"""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from permastore.storage.types import (
    DEFAULT_GATEWAY_URL,
    GATEWAY_NODES,
    CircuitBreakerConfig,
    FileSnapshot,
    FileStatus,
    FundingConfig,
    GatewayConfig,
    UploadResult,
    VerificationConfig,
)

from .conftest import LOCATOR

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def snapshot(**overrides) -> FileSnapshot:
    fields = dict(
        id="rec-1",
        file_name="report.pdf",
        file_size=10,
        file_type="application/pdf",
        user_id="user-1",
        vault_id="vault-1",
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return FileSnapshot(**fields)


# =============================================================================
# Configuration Tests
# =============================================================================


class TestGatewayConfig:
    def test_default_values(self) -> None:
        config = GatewayConfig()

        assert config.nodes == GATEWAY_NODES["mainnet"]
        assert config.network == "mainnet"
        assert config.currency == "base-eth"
        assert config.gateway_url == DEFAULT_GATEWAY_URL
        assert config.rpc_url is None
        assert config.circuit_breaker is None

    @pytest.mark.parametrize("currency", ["arweave", "base-eth", "ethereum", "matic", "arbitrum"])
    def test_valid_currencies(self, currency: str) -> None:
        assert GatewayConfig(currency=currency).currency == currency

    def test_invalid_currency(self) -> None:
        with pytest.raises(ValidationError):
            GatewayConfig(currency="dogecoin")

    def test_empty_node_list_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GatewayConfig(nodes=())

    def test_timeout_floor(self) -> None:
        with pytest.raises(ValidationError):
            GatewayConfig(timeout=10)

    def test_frozen(self) -> None:
        config = GatewayConfig()

        with pytest.raises(ValidationError):
            config.network = "devnet"


class TestOtherConfigs:
    def test_funding_multiplier_at_least_one(self) -> None:
        with pytest.raises(ValidationError):
            FundingConfig(topup_multiplier=0.5)

    def test_verification_requires_one_network(self) -> None:
        with pytest.raises(ValidationError):
            VerificationConfig(min_networks=0)

    def test_circuit_breaker_defaults(self) -> None:
        config = CircuitBreakerConfig()

        assert config.enabled is True
        assert config.failure_threshold == 5
        assert config.success_threshold == 2


# =============================================================================
# Record and Result Tests
# =============================================================================


class TestFileSnapshot:
    def test_defaults(self) -> None:
        snap = snapshot()

        assert snap.status == FileStatus.PENDING
        assert snap.locator == ""
        assert snap.encryption_type == "none"
        assert snap.security_tier == "standard"
        assert snap.verified_networks == ()

    def test_zero_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            snapshot(file_size=0)

    def test_populate_by_alias(self) -> None:
        snap = FileSnapshot.model_validate(
            {
                "id": "rec-2",
                "fileName": "a.txt",
                "fileSize": 3,
                "fileType": "text/plain",
                "userId": "u",
                "vaultId": "v",
                "createdAt": NOW.isoformat(),
                "updatedAt": NOW.isoformat(),
            }
        )

        assert snap.file_name == "a.txt"
        assert snap.vault_id == "v"


class TestUploadResult:
    def test_camel_case_json(self) -> None:
        stored = snapshot(
            status=FileStatus.STORED,
            locator=LOCATOR,
            permanent_uri=f"https://arweave.net/{LOCATOR}",
        )
        result = UploadResult(
            locator=LOCATOR,
            uri=stored.permanent_uri,
            file_record=stored,
            cost="1200",
        )

        data = json.loads(result.model_dump_json(by_alias=True))

        assert data["locator"] == LOCATOR
        assert data["cost"] == "1200"
        record = data["fileRecord"]
        assert record["status"] == "stored"
        assert record["permanentUri"] == f"https://arweave.net/{LOCATOR}"
        assert record["fileName"] == "report.pdf"
        assert record["verifiedNetworks"] == []
