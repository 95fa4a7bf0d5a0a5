"""
Gateway Connection - the only component that talks to the storage network.

Owns node selection (primary + fallback nodes), the wallet used to sign
writes, and the low-level price / balance / fund / write / read / status
calls against Irys gateway nodes and the Arweave retrieval gateway.

An upload that starts on a node finishes on that node or fails: the active
node only changes on an explicit ``connect()``, and ``connect()`` waits until
no write is in flight.
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

import httpx

from permastore.errors.storage import (
    CircuitBreakerOpenError,
    ContentNotFoundError,
    FundingRejectedError,
    GatewayNotReadyError,
    GatewayRequestError,
    NoGatewayAvailableError,
    RetrievalFailedError,
    TransactionInfoFailedError,
    WriteFailedError,
)
from permastore.storage.tags import tags_to_headers
from permastore.storage.types import (
    CircuitBreakerConfig,
    DownloadResult,
    GatewayConfig,
    LocatorStatus,
    ProgressCallback,
    Tag,
    TransactionInfo,
)
from permastore.storage.wallet import Wallet
from permastore.utils.circuit_breaker import CircuitBreaker
from permastore.utils.logging import get_logger
from permastore.utils.retry import RetryConfig, retry_async
from permastore.utils.security import sanitize_for_logging

_logger = get_logger(__name__)

TRANSACTION_QUERY = """
query($id: ID!) {
    transaction(id: $id) {
        id
        owner { address }
        data { size type }
        tags { name value }
        block { height }
    }
}
"""


class GatewayConnection:
    """
    Connection to a funding-gated gateway node.

    Example:
        ```python
        gateway = GatewayConnection(GatewayConfig(
            nodes=("https://node1.irys.xyz", "https://node2.irys.xyz"),
            rpc_url=os.environ["PERMASTORE_RPC_URL"],
        ))
        await gateway.connect(Wallet(os.environ["PERMASTORE_WALLET_KEY"]))

        locator = await gateway.write(b"hello", [("Content-Type", "text/plain")])
        data = await gateway.read(locator)
        ```
    """

    def __init__(self, config: Optional[GatewayConfig] = None) -> None:
        self._config = config or GatewayConfig()
        self._wallet: Optional[Wallet] = None
        self._active_node: Optional[str] = None
        self._circuit_breaker = CircuitBreaker(
            self._config.circuit_breaker or CircuitBreakerConfig(),
            name="gateway",
        )
        self._retry_config = RetryConfig(
            max_attempts=3,
            base_delay_ms=2000,
            retryable_errors=(
                httpx.TransportError,
                GatewayRequestError,
                RetrievalFailedError,
                TransactionInfoFailedError,
            ),
        )
        # Guards the active node against switching while writes are in flight
        self._node_cond = asyncio.Condition()
        self._writes_in_flight = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def nodes(self) -> Sequence[str]:
        """Configured nodes in priority order."""
        return self._config.nodes

    @property
    def active_node(self) -> Optional[str]:
        return self._active_node

    @property
    def gateway_url(self) -> str:
        return self._config.gateway_url.rstrip("/")

    @property
    def currency(self) -> str:
        return self._config.currency

    @property
    def network(self) -> str:
        return self._config.network

    @property
    def is_ready(self) -> bool:
        return self._active_node is not None and self._wallet is not None

    @property
    def wallet(self) -> Wallet:
        if self._wallet is None:
            raise GatewayNotReadyError("Gateway has no wallet; call connect() first")
        return self._wallet

    @property
    def circuit_breaker_state(self) -> str:
        return self._circuit_breaker.state.value

    def permanent_uri(self, locator: str) -> str:
        """Public URI of a stored object."""
        return f"{self.gateway_url}/{locator}"

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self._config.timeout / 1000)

    def _require_node(self) -> str:
        if self._active_node is None:
            raise GatewayNotReadyError("No active gateway node; call connect() first")
        return self._active_node

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, wallet: Wallet) -> str:
        """
        Select the first healthy node, in priority order.

        Nodes are tried iteratively, wrapping around the list, for at most
        ``max_connect_attempts`` attempts in total.

        Args:
            wallet: Credentials used for signing and balance lookups

        Returns:
            URL of the node that became active

        Raises:
            NoGatewayAvailableError: If every attempt failed
        """
        async with self._node_cond:
            await self._node_cond.wait_for(lambda: self._writes_in_flight == 0)

            tried: List[str] = []
            nodes = list(self._config.nodes)
            for attempt in range(self._config.max_connect_attempts):
                node = nodes[attempt % len(nodes)]
                tried.append(node)
                try:
                    balance = await self._check_node(node, wallet.address)
                except (httpx.HTTPError, GatewayRequestError) as e:
                    _logger.warning(
                        "Gateway node unavailable, trying next",
                        extra={
                            "node": sanitize_for_logging(node),
                            "attempt": attempt + 1,
                            "error": str(e),
                        },
                    )
                    continue

                self._active_node = node
                self._wallet = wallet
                self._circuit_breaker.reset()
                _logger.info(
                    "Connected to gateway node",
                    extra={
                        "node": sanitize_for_logging(node),
                        "address": wallet.address,
                        "balance": balance,
                    },
                )
                return node

            self._active_node = None
            raise NoGatewayAvailableError(tried)

    async def _check_node(self, node: str, address: str) -> int:
        async with httpx.AsyncClient(timeout=self._timeout()) as client:
            response = await client.get(f"{node}/info")
            if response.status_code != 200:
                raise GatewayRequestError(
                    f"Node info failed: HTTP {response.status_code}",
                    node_url=node,
                    status_code=response.status_code,
                )
        return await self._fetch_balance(node, address)

    async def close(self) -> None:
        """Drop the active node and wallet; in-flight writes finish first."""
        async with self._node_cond:
            await self._node_cond.wait_for(lambda: self._writes_in_flight == 0)
            self._active_node = None
            self._wallet = None

    # ------------------------------------------------------------------
    # Pricing and balance
    # ------------------------------------------------------------------

    async def price(self, size_bytes: int) -> int:
        """
        Price to write ``size_bytes`` in atomic units.

        Raises:
            GatewayRequestError: Node answered with an error status
            httpx.HTTPError: Transport failure after retries
        """
        node = self._require_node()
        url = f"{node}/price/{self.currency}/{size_bytes}"

        async def do_get_price() -> int:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.get(url)

                if response.status_code != 200:
                    raise GatewayRequestError(
                        f"Failed to get price: HTTP {response.status_code}",
                        node_url=node,
                        status_code=response.status_code,
                    )

                # Response body is the bare integer price
                try:
                    return int(response.text.strip())
                except ValueError as e:
                    raise GatewayRequestError(
                        "Malformed price response",
                        node_url=node,
                        status_code=response.status_code,
                    ) from e

        return await self._guarded(do_get_price, "price")

    async def balance(self) -> int:
        """Current funded balance of the wallet on the active node."""
        node = self._require_node()
        address = self.wallet.address
        return await self._guarded(
            lambda: self._fetch_balance(node, address), "balance"
        )

    async def _fetch_balance(self, node: str, address: str) -> int:
        url = f"{node}/account/balance/{self.currency}"
        async with httpx.AsyncClient(timeout=self._timeout()) as client:
            response = await client.get(url, params={"address": address})

            if response.status_code == 404:
                # No account yet = 0
                return 0

            if response.status_code != 200:
                raise GatewayRequestError(
                    f"Failed to get balance: HTTP {response.status_code}",
                    node_url=node,
                    status_code=response.status_code,
                )

            try:
                return int(response.json().get("balance", 0))
            except (ValueError, TypeError, AttributeError) as e:
                raise GatewayRequestError(
                    "Malformed balance response",
                    node_url=node,
                    status_code=response.status_code,
                ) from e

    async def deposit_address(self) -> str:
        """Address the active node accepts funding transfers on."""
        node = self._require_node()

        async def do_get_info() -> str:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.get(f"{node}/info")
                if response.status_code != 200:
                    raise GatewayRequestError(
                        f"Node info failed: HTTP {response.status_code}",
                        node_url=node,
                        status_code=response.status_code,
                    )
                addresses: Dict[str, str] = response.json().get("addresses", {})

            address = addresses.get(self.currency)
            if not address:
                raise FundingRejectedError(
                    f"Node does not accept {self.currency} funding",
                    node_url=node,
                )
            return address

        return await self._guarded(do_get_info, "deposit_address")

    async def fund(
        self,
        amount: int,
        *,
        on_sent: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Top up the active node's escrow with ``amount`` atomic units.

        Sends the on-chain transfer, then registers it with the node. Not
        retried: the transfer is irreversible. ``on_sent`` receives the
        transaction hash once it is broadcast.

        Returns:
            Funding transaction hash

        Raises:
            InsufficientSourceFundsError: Wallet cannot cover the transfer
            FundingRejectedError: Transfer or registration refused
            FundingTimeoutError: Transfer not mined in time
        """
        node = self._require_node()
        wallet = self.wallet
        deposit = await self.deposit_address()
        tx_hash = await wallet.transfer(deposit, amount, on_sent=on_sent)

        url = f"{node}/account/balance/{self.currency}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.post(url, json={"tx_id": tx_hash})
        except httpx.HTTPError as e:
            # Node also discovers the transfer on-chain; balance polling decides
            _logger.warning(
                "Funding registration failed, relying on chain discovery",
                extra={"funding_tx": tx_hash, "error": str(e)},
            )
            return tx_hash

        if 400 <= response.status_code < 500:
            raise FundingRejectedError(
                f"Node rejected funding transaction: HTTP {response.status_code}",
                funding_tx=tx_hash,
                node_url=node,
            )
        if response.status_code >= 500:
            _logger.warning(
                "Funding registration returned server error",
                extra={"funding_tx": tx_hash, "status_code": response.status_code},
            )
        return tx_hash

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(
        self,
        data: bytes,
        tags: Sequence[Tag],
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Write ``data`` with ``tags`` to the active node.

        Progress is pushed as an integer percentage while the body streams;
        100 is only reported once the node accepted the write.

        Returns:
            Locator (network transaction id)

        Raises:
            WriteFailedError: If the node refused the write or the transfer broke
        """
        async with self._node_cond:
            node = self._require_node()
            wallet = self.wallet
            self._writes_in_flight += 1

        try:
            return await self._write_to(node, wallet, data, tags, on_progress)
        finally:
            async with self._node_cond:
                self._writes_in_flight -= 1
                self._node_cond.notify_all()

    async def _write_to(
        self,
        node: str,
        wallet: Wallet,
        data: bytes,
        tags: Sequence[Tag],
        on_progress: Optional[ProgressCallback],
    ) -> str:
        total = len(data)
        reporter = _ProgressReporter(on_progress)
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(total),
            "x-address": wallet.address,
            "x-signature": wallet.sign_payload(data),
        }
        headers.update(tags_to_headers(tags))
        url = f"{node}/tx/{self.currency}"

        async def body() -> AsyncIterator[bytes]:
            chunk_size = self._config.chunk_size
            sent = 0
            reporter.report(0)
            for offset in range(0, total, chunk_size):
                chunk = data[offset:offset + chunk_size]
                yield chunk
                sent += len(chunk)
                # Hold back 100 until the node has answered
                reporter.report(min(99, math.floor(sent * 100 / total)))

        try:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.post(url, content=body(), headers=headers)
        except httpx.HTTPError as e:
            raise WriteFailedError(
                f"Upload transfer failed: {e}",
                node_url=node,
                size_bytes=total,
            ) from e

        if response.status_code not in (200, 201):
            raise WriteFailedError(
                f"Upload failed: HTTP {response.status_code} {response.text[:200]}",
                node_url=node,
                size_bytes=total,
            )

        try:
            locator = str(response.json()["id"])
        except (ValueError, KeyError, TypeError) as e:
            raise WriteFailedError(
                "Upload response did not contain a transaction id",
                node_url=node,
                size_bytes=total,
            ) from e

        reporter.report(100)
        _logger.info(
            "Write accepted",
            extra={"locator": locator, "size_bytes": total, "node": sanitize_for_logging(node)},
        )
        return locator

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def read(self, locator: str) -> DownloadResult:
        """
        Download stored content from the retrieval gateway.

        Raises:
            ContentNotFoundError: Gateway has nothing under this locator
            RetrievalFailedError: Download failed after retries
        """
        url = f"{self.gateway_url}/{locator}"

        async def do_download() -> DownloadResult:
            async with httpx.AsyncClient(
                timeout=self._timeout(),
                follow_redirects=True,
            ) as client:
                response = await client.get(url)

                if response.status_code == 404:
                    raise ContentNotFoundError(locator, gateway=self.gateway_url)

                if response.status_code != 200:
                    raise RetrievalFailedError(
                        f"Download failed: HTTP {response.status_code}",
                        locator=locator,
                        gateway=self.gateway_url,
                    )

                data = response.content
                return DownloadResult(
                    data=data,
                    size=len(data),
                    content_type=response.headers.get("content-type"),
                    downloaded_at=datetime.now(timezone.utc),
                )

        try:
            return await self._guarded(do_download, "read")
        except httpx.HTTPError as e:
            raise RetrievalFailedError(
                f"Download failed: {e}",
                locator=locator,
                gateway=self.gateway_url,
            ) from e

    async def status(self, locator: str) -> LocatorStatus:
        """Existence and confirmation state of ``locator``."""
        url = f"{self.gateway_url}/tx/{locator}/status"

        async def do_status() -> LocatorStatus:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.get(url)

                if response.status_code == 404:
                    return LocatorStatus(found=False, confirmed=False)

                if response.status_code == 202:
                    # Accepted, not yet mined
                    return LocatorStatus(found=True, confirmed=False)

                if response.status_code != 200:
                    raise GatewayRequestError(
                        f"Status query failed: HTTP {response.status_code}",
                        node_url=self.gateway_url,
                        status_code=response.status_code,
                    )

                data = response.json()
                confirmations = int(data.get("number_of_confirmations", 0))
                return LocatorStatus(
                    found=True,
                    confirmed=confirmations > 0,
                    block_height=data.get("block_height"),
                    confirmations=confirmations,
                )

        return await self._guarded(do_status, "status")

    async def transaction_info(self, locator: str) -> TransactionInfo:
        """
        Decoded metadata of a stored object via GraphQL.

        Raises:
            ContentNotFoundError: Unknown locator
            TransactionInfoFailedError: Query failed after retries
        """

        async def do_query() -> TransactionInfo:
            async with httpx.AsyncClient(timeout=self._timeout()) as client:
                response = await client.post(
                    self._config.graphql_url,
                    json={"query": TRANSACTION_QUERY, "variables": {"id": locator}},
                    headers={"Content-Type": "application/json"},
                )

                if response.status_code != 200:
                    raise TransactionInfoFailedError(
                        f"GraphQL query failed: HTTP {response.status_code}",
                        locator=locator,
                    )

                payload = response.json()

            if payload.get("errors"):
                raise TransactionInfoFailedError(
                    "GraphQL query returned errors",
                    locator=locator,
                    details={"errors": payload["errors"]},
                )

            tx = (payload.get("data") or {}).get("transaction")
            if tx is None:
                raise ContentNotFoundError(locator, gateway=self._config.graphql_url)

            tags = {tag["name"]: tag["value"] for tag in tx.get("tags") or []}
            data = tx.get("data") or {}
            block = tx.get("block") or {}
            return TransactionInfo(
                id=tx["id"],
                owner=(tx.get("owner") or {}).get("address", ""),
                size=int(data.get("size") or 0),
                content_type=data.get("type") or tags.get("Content-Type"),
                tags=tags,
                block_height=block.get("height"),
            )

        try:
            return await self._guarded(do_query, "transaction_info")
        except httpx.HTTPError as e:
            raise TransactionInfoFailedError(
                f"GraphQL query failed: {e}", locator=locator
            ) from e

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _guarded(self, fn, operation: str):
        """Run a read-path call through the circuit breaker and retry."""
        try:
            return await self._circuit_breaker.execute(
                lambda: retry_async(fn, self._retry_config, operation=operation)
            )
        except CircuitBreakerOpenError as e:
            raise CircuitBreakerOpenError(
                "Gateway circuit breaker is open",
                node_url=self._active_node or self.gateway_url,
                reset_at=e.reset_at,
            ) from e

    def get_stats(self) -> dict:
        """Connection statistics."""
        return {
            "active_node": self._active_node,
            "nodes": list(self._config.nodes),
            "currency": self.currency,
            "network": self.network,
            "writes_in_flight": self._writes_in_flight,
            "circuit_breaker": self._circuit_breaker.get_stats(),
        }


class _ProgressReporter:
    """Forwards strictly increasing percentages to a caller callback."""

    def __init__(self, callback: Optional[ProgressCallback]) -> None:
        self._callback = callback
        self._last = -1

    def report(self, percent: int) -> None:
        if self._callback is None or percent <= self._last:
            return
        self._last = percent
        try:
            self._callback(percent)
        except Exception as e:
            # A broken progress consumer must not abort a funded write
            _logger.warning("Progress callback raised", extra={"error": str(e)})
