"""
Fixtures for storage module tests that talk to a mocked httpx transport.
"""

from dataclasses import replace
from typing import Any, Callable, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from permastore.storage.gateway import GatewayConnection
from permastore.storage.types import CircuitBreakerConfig, GatewayConfig
from permastore.storage.wallet import Wallet


# =============================================================================
# Test Constants
# =============================================================================

TEST_PRIVATE_KEY = "0x" + "1" * 64
NODE_1 = "https://node1.test"
NODE_2 = "https://node2.test"
GATEWAY = "https://gateway.test"
LOCATOR = "bNbA3TEQVL60xlgCcqdz4ZPHFZ711cZ3hmkpGttDt_U"


# =============================================================================
# httpx Mock Helpers
# =============================================================================


def create_mock_response(
    status_code: int = 200,
    json_data: Any = None,
    text: str = "",
    content: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
) -> MagicMock:
    """Create a mock httpx Response."""
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.text = text
    response.content = content
    response.headers = headers or {}
    if json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.side_effect = ValueError("No JSON body")
    return response


class MockAsyncContextManager:
    """Mock async context manager for httpx.AsyncClient."""

    def __init__(self, mock_client: AsyncMock):
        self.mock_client = mock_client

    async def __aenter__(self):
        return self.mock_client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


def create_mock_httpx_client(
    get: Optional[Callable] = None,
    post: Optional[Callable] = None,
) -> MagicMock:
    """
    Create a mock httpx.AsyncClient class.

    ``get`` / ``post`` are AsyncMocks, or async side effects receiving the
    request arguments.
    """
    mock_http = AsyncMock()
    if get is not None:
        mock_http.get = get if isinstance(get, AsyncMock) else AsyncMock(side_effect=get)
    if post is not None:
        mock_http.post = post if isinstance(post, AsyncMock) else AsyncMock(side_effect=post)

    def factory(*args, **kwargs):
        return MockAsyncContextManager(mock_http)

    mock_client_class = MagicMock(side_effect=factory)
    mock_client_class.http = mock_http
    return mock_client_class


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def wallet() -> Wallet:
    return Wallet(TEST_PRIVATE_KEY)


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """Two nodes, fast timeouts, lenient circuit breaker."""
    return GatewayConfig(
        nodes=(NODE_1, NODE_2),
        network="devnet",
        gateway_url=GATEWAY,
        graphql_url=f"{GATEWAY}/graphql",
        timeout=5000,
        max_connect_attempts=4,
        chunk_size=1024,
        circuit_breaker=CircuitBreakerConfig(failure_threshold=50),
    )


@pytest.fixture
def connected_gateway(gateway_config: GatewayConfig, wallet: Wallet) -> GatewayConnection:
    """Gateway already bound to NODE_1, without a network handshake."""
    gateway = GatewayConnection(gateway_config)
    gateway._active_node = NODE_1
    gateway._wallet = wallet
    # No backoff sleeps between retried reads
    gateway._retry_config = replace(gateway._retry_config, base_delay_ms=0)
    return gateway
