"""
Service configuration.

All settings have defaults suitable for mainnet; ``StorageConfig.from_env()``
overrides them from ``PERMASTORE_*`` environment variables (a ``.env`` file
in the working directory is loaded first).

Environment Variables:
    PERMASTORE_NETWORK: mainnet | devnet (selects the default node list)
    PERMASTORE_NODES: Comma-separated gateway node URLs, primary first
    PERMASTORE_GATEWAY_URL: Retrieval gateway base URL
    PERMASTORE_GRAPHQL_URL: GraphQL endpoint for transaction metadata
    PERMASTORE_CURRENCY: Funding currency (default: base-eth)
    PERMASTORE_RPC_URL: RPC URL of the funding chain
    PERMASTORE_WALLET_KEY: Wallet private key
    PERMASTORE_WALLET_KEY_FILE: File holding the private key (if no key set)
    PERMASTORE_TIMEOUT_MS: Gateway request timeout
    PERMASTORE_STEP_TIMEOUT_S: Per network step timeout of an upload
    PERMASTORE_TIER_LIMITS: e.g. ``standard=104857600,enhanced=524288000``
    PERMASTORE_FILE_TYPES: Comma-separated MIME allowlist
    PERMASTORE_FUNDING_TIMEOUT_S: Wait for funding acknowledgement
    PERMASTORE_FUNDING_MULTIPLIER: Top-up multiplier (>= 1.0)
    PERMASTORE_MIN_NETWORKS: Confirmations required for VERIFIED
    PERMASTORE_VERIFY_ATTEMPTS: Confirmation attempts per network
    PERMASTORE_VERIFY_BASE_DELAY_MS: Backoff base delay
    PERMASTORE_VERIFY_MAX_DELAY_MS: Backoff cap
    PERMASTORE_LOG_LEVEL: Log level for the permastore logger
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from permastore.storage.types import (
    DEFAULT_SUPPORTED_FILE_TYPES,
    DEFAULT_TIER_LIMITS,
    GATEWAY_NODES,
    FundingConfig,
    GatewayConfig,
    VerificationConfig,
)

ENV_PREFIX = "PERMASTORE_"


class StorageConfig(BaseModel):
    """Complete configuration of a StorageService."""

    model_config = ConfigDict(frozen=True)

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    funding: FundingConfig = Field(default_factory=FundingConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    tier_limits: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_TIER_LIMITS))
    supported_file_types: Tuple[str, ...] = Field(default=DEFAULT_SUPPORTED_FILE_TYPES)
    step_timeout: float = Field(
        default=120.0,
        gt=0,
        description="Per network step timeout of an upload in seconds",
    )
    wallet_key: Optional[str] = Field(
        default=None,
        repr=False,
        description="Wallet private key (never logged)",
    )
    log_level: str = Field(
        default="INFO",
        pattern=r"(?i)^(debug|info|warning|error|critical)$",
        description="Level of the permastore logger, applied by StorageService",
    )

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        *,
        dotenv_path: Optional[str] = None,
    ) -> "StorageConfig":
        """
        Build configuration from environment variables.

        Args:
            env: Mapping to read instead of ``os.environ`` (no .env loading)
            dotenv_path: Explicit .env file to load

        Raises:
            ValueError: If a variable cannot be parsed
        """
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return None
            return value.strip()

        gateway: Dict[str, Any] = {}
        network = get("NETWORK")
        if network:
            gateway["network"] = network
            gateway["nodes"] = GATEWAY_NODES.get(network, GATEWAY_NODES["mainnet"])
        nodes = get("NODES")
        if nodes:
            gateway["nodes"] = _split(nodes)
        for key, name in (
            ("gateway_url", "GATEWAY_URL"),
            ("graphql_url", "GRAPHQL_URL"),
            ("currency", "CURRENCY"),
            ("rpc_url", "RPC_URL"),
        ):
            value = get(name)
            if value:
                gateway[key] = value
        if get("GATEWAY_URL") and not get("GRAPHQL_URL"):
            gateway["graphql_url"] = gateway["gateway_url"].rstrip("/") + "/graphql"
        timeout_ms = get("TIMEOUT_MS")
        if timeout_ms:
            gateway["timeout"] = int(timeout_ms)

        funding: Dict[str, Any] = {}
        if get("FUNDING_TIMEOUT_S"):
            funding["timeout_s"] = float(get("FUNDING_TIMEOUT_S"))
        if get("FUNDING_MULTIPLIER"):
            funding["topup_multiplier"] = float(get("FUNDING_MULTIPLIER"))

        verification: Dict[str, Any] = {}
        for key, name in (
            ("min_networks", "MIN_NETWORKS"),
            ("max_attempts", "VERIFY_ATTEMPTS"),
            ("base_delay_ms", "VERIFY_BASE_DELAY_MS"),
            ("max_delay_ms", "VERIFY_MAX_DELAY_MS"),
        ):
            value = get(name)
            if value:
                verification[key] = int(value)

        fields: Dict[str, Any] = {
            "gateway": GatewayConfig(**gateway),
            "funding": FundingConfig(**funding),
            "verification": VerificationConfig(**verification),
        }

        tier_limits = get("TIER_LIMITS")
        if tier_limits:
            limits = dict(DEFAULT_TIER_LIMITS)
            limits.update(_parse_tier_limits(tier_limits))
            fields["tier_limits"] = limits
        file_types = get("FILE_TYPES")
        if file_types:
            fields["supported_file_types"] = _split(file_types)
        if get("STEP_TIMEOUT_S"):
            fields["step_timeout"] = float(get("STEP_TIMEOUT_S"))
        if get("LOG_LEVEL"):
            fields["log_level"] = get("LOG_LEVEL")

        key = get("WALLET_KEY")
        key_file = get("WALLET_KEY_FILE")
        if key is None and key_file:
            key = Path(key_file).expanduser().read_text().strip()
        fields["wallet_key"] = key

        return cls(**fields)


def _split(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _parse_tier_limits(value: str) -> Dict[str, int]:
    limits: Dict[str, int] = {}
    for item in _split(value):
        tier, sep, size = item.partition("=")
        if not sep or tier.strip() not in DEFAULT_TIER_LIMITS:
            raise ValueError(f"Invalid tier limit entry: {item!r}")
        limits[tier.strip()] = int(size)
    return limits
