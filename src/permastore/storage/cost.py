"""Cost estimation for writes of a given size."""

from __future__ import annotations

import httpx

from permastore.errors.storage import (
    CircuitBreakerOpenError,
    CostCalculationFailedError,
    CostQueryFailedError,
    GatewayNotReadyError,
    GatewayRequestError,
)
from permastore.storage.gateway import GatewayConnection
from permastore.storage.types import MIB
from permastore.utils.logging import get_logger

_logger = get_logger(__name__)


class CostEstimator:
    """
    Read-only price lookups against the active gateway node.

    ``estimate`` is the upload-path call; ``quote`` serves explicit cost
    requests from callers and reports failures under its own code.
    """

    def __init__(self, gateway: GatewayConnection) -> None:
        self._gateway = gateway

    async def estimate(self, size_bytes: int) -> int:
        """
        Price to write ``size_bytes`` in atomic units.

        Raises:
            ValueError: If ``size_bytes`` is not positive
            CostQueryFailedError: Network, timeout or gateway failure
        """
        if size_bytes <= 0:
            raise ValueError(f"size_bytes must be positive, got {size_bytes}")

        try:
            price = await self._gateway.price(size_bytes)
        except GatewayNotReadyError:
            raise
        except (httpx.HTTPError, GatewayRequestError, CircuitBreakerOpenError) as e:
            raise CostQueryFailedError(
                f"Failed to query upload price: {e}",
                node_url=self._gateway.active_node,
                size_bytes=size_bytes,
            ) from e

        _logger.debug(
            "Upload price", extra={"size_bytes": size_bytes, "price": price}
        )
        return price

    async def quote(self, size_bytes: int) -> int:
        """
        Caller-facing quote.

        Raises:
            CostCalculationFailedError: On any lookup failure
        """
        try:
            return await self.estimate(size_bytes)
        except CostQueryFailedError as e:
            raise CostCalculationFailedError(
                e.message, size_bytes=size_bytes
            ) from e

    async def cost_per_mb(self) -> int:
        return await self.estimate(MIB)
