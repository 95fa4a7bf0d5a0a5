"""
Tests for StorageConfig.from_env.
"""

import pytest

from permastore.storage.config import StorageConfig
from permastore.storage.types import (
    DEFAULT_SUPPORTED_FILE_TYPES,
    DEFAULT_TIER_LIMITS,
    GATEWAY_NODES,
)


class TestDefaults:
    def test_empty_environment(self) -> None:
        config = StorageConfig.from_env({})

        assert config.gateway.network == "mainnet"
        assert config.gateway.nodes == GATEWAY_NODES["mainnet"]
        assert config.tier_limits == DEFAULT_TIER_LIMITS
        assert config.supported_file_types == DEFAULT_SUPPORTED_FILE_TYPES
        assert config.wallet_key is None
        assert config.log_level == "INFO"

    def test_wallet_key_not_in_repr(self) -> None:
        config = StorageConfig.from_env({"PERMASTORE_WALLET_KEY": "0xsecret"})

        assert config.wallet_key == "0xsecret"
        assert "0xsecret" not in repr(config)


class TestOverrides:
    def test_gateway_settings(self) -> None:
        config = StorageConfig.from_env(
            {
                "PERMASTORE_NETWORK": "devnet",
                "PERMASTORE_GATEWAY_URL": "https://gw.example/",
                "PERMASTORE_RPC_URL": "https://rpc.example",
                "PERMASTORE_TIMEOUT_MS": "15000",
            }
        )

        assert config.gateway.network == "devnet"
        assert config.gateway.nodes == GATEWAY_NODES["devnet"]
        assert config.gateway.gateway_url == "https://gw.example/"
        assert config.gateway.graphql_url == "https://gw.example/graphql"
        assert config.gateway.rpc_url == "https://rpc.example"
        assert config.gateway.timeout == 15000

    def test_explicit_nodes_win(self) -> None:
        config = StorageConfig.from_env(
            {
                "PERMASTORE_NETWORK": "devnet",
                "PERMASTORE_NODES": "https://a.test, https://b.test,",
            }
        )

        assert config.gateway.nodes == ("https://a.test", "https://b.test")

    def test_pipeline_settings(self) -> None:
        config = StorageConfig.from_env(
            {
                "PERMASTORE_TIER_LIMITS": "standard=1000",
                "PERMASTORE_FILE_TYPES": "text/plain,image/png",
                "PERMASTORE_STEP_TIMEOUT_S": "30",
                "PERMASTORE_FUNDING_MULTIPLIER": "1.25",
                "PERMASTORE_MIN_NETWORKS": "2",
                "PERMASTORE_VERIFY_ATTEMPTS": "9",
            }
        )

        assert config.tier_limits["standard"] == 1000
        assert config.tier_limits["enhanced"] == DEFAULT_TIER_LIMITS["enhanced"]
        assert config.supported_file_types == ("text/plain", "image/png")
        assert config.step_timeout == 30.0
        assert config.funding.topup_multiplier == 1.25
        assert config.verification.min_networks == 2
        assert config.verification.max_attempts == 9

    def test_log_level(self) -> None:
        config = StorageConfig.from_env({"PERMASTORE_LOG_LEVEL": "debug"})

        assert config.log_level == "debug"

    def test_blank_values_ignored(self) -> None:
        config = StorageConfig.from_env({"PERMASTORE_CURRENCY": "  "})

        assert config.gateway.currency == "base-eth"

    def test_key_file(self, tmp_path) -> None:
        key_file = tmp_path / "wallet.key"
        key_file.write_text("0xfromfile\n")

        config = StorageConfig.from_env({"PERMASTORE_WALLET_KEY_FILE": str(key_file)})

        assert config.wallet_key == "0xfromfile"


class TestInvalid:
    @pytest.mark.parametrize("value", ["standard", "premium=10", "standard=abc"])
    def test_bad_tier_limits(self, value: str) -> None:
        with pytest.raises(ValueError):
            StorageConfig.from_env({"PERMASTORE_TIER_LIMITS": value})

    def test_unknown_network_rejected(self) -> None:
        with pytest.raises(ValueError):
            StorageConfig.from_env({"PERMASTORE_NETWORK": "testnet"})

    def test_unknown_log_level_rejected(self) -> None:
        with pytest.raises(ValueError):
            StorageConfig.from_env({"PERMASTORE_LOG_LEVEL": "chatty"})
