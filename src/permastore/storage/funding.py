"""
Funding Manager - keeps the gateway escrow ahead of planned writes.

Funding moves value irreversibly from the wallet to the gateway, so:
- all balance checks and top-ups for one wallet run under a single lock;
- the price of every admitted write stays reserved until that write ends,
  so two concurrent uploads can never both count the same balance;
- a top-up is attempted at most once per ``ensure_funded`` call.
"""

from __future__ import annotations

import asyncio
import itertools
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

import httpx

from permastore.errors.storage import (
    FundingTimeoutError,
    GatewayRequestError,
    UploadCancelledError,
)
from permastore.storage.cancellation import run_cancellable
from permastore.storage.gateway import GatewayConnection
from permastore.storage.types import FundingConfig
from permastore.utils.logging import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class FundingTicket:
    """Reservation of ``amount`` for one write."""

    token: int
    amount: int
    funding_tx: Optional[str] = None

    @property
    def funded(self) -> bool:
        """Whether this reservation required a top-up."""
        return self.funding_tx is not None


class FundingManager:
    """
    Serialized gateway funding for one wallet.

    Example:
        ```python
        funding = FundingManager(gateway)
        async with funding.reserve(price):
            locator = await gateway.write(data, tags)
        ```
    """

    def __init__(
        self,
        gateway: GatewayConnection,
        config: Optional[FundingConfig] = None,
    ) -> None:
        self._gateway = gateway
        self._config = config or FundingConfig()
        self._lock = asyncio.Lock()
        self._reservations: Dict[int, int] = {}
        self._tokens = itertools.count(1)
        self.funding_count = 0
        self.last_funding_tx: Optional[str] = None

    @property
    def reserved(self) -> int:
        """Total amount held for in-flight writes."""
        return sum(self._reservations.values())

    def topup_amount(self, shortfall: int) -> int:
        """Amount to send for a given shortfall (rounded up)."""
        return int(math.ceil(shortfall * self._config.topup_multiplier))

    async def ensure_funded(
        self,
        price: int,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> FundingTicket:
        """
        Make sure ``price`` is covered and reserve it.

        The reservation must be released with ``release`` once the write
        finished (``reserve`` does this automatically).

        Args:
            price: Amount the upcoming write costs
            cancel_event: Abort before any value is moved if set
            timeout: Seconds for the balance read, and for submitting plus
                acknowledging a top-up

        Raises:
            UploadCancelledError: Cancelled before the top-up was submitted
            InsufficientSourceFundsError: Wallet cannot cover the top-up
            FundingRejectedError: Top-up refused
            FundingTimeoutError: Top-up not submitted or acknowledged in time
        """
        ack_timeout = timeout if timeout is not None else self._config.timeout_s

        async with self._lock:
            try:
                balance = await run_cancellable(
                    self._gateway.balance(), cancel_event, timeout=ack_timeout
                )
            except asyncio.TimeoutError as e:
                raise FundingTimeoutError(
                    ack_timeout, node_url=self._gateway.active_node
                ) from e
            available = balance - self.reserved
            funding_tx: Optional[str] = None

            if available < price:
                if cancel_event is not None and cancel_event.is_set():
                    raise UploadCancelledError(funds_spent=False)

                amount = self.topup_amount(price - available)
                _logger.info(
                    "Funding gateway",
                    extra={
                        "price": price,
                        "balance": balance,
                        "reserved": self.reserved,
                        "amount": amount,
                    },
                )
                self.funding_count += 1
                loop = asyncio.get_running_loop()
                deadline = loop.time() + ack_timeout
                funding_tx = await self._submit(amount, ack_timeout)
                self.last_funding_tx = funding_tx
                await self._await_acknowledged(
                    price, funding_tx, ack_timeout, deadline
                )

            ticket = FundingTicket(
                token=next(self._tokens),
                amount=price,
                funding_tx=funding_tx,
            )
            self._reservations[ticket.token] = price
            return ticket

    def release(self, ticket: FundingTicket) -> None:
        """Drop a reservation once its write completed or failed."""
        self._reservations.pop(ticket.token, None)

    @asynccontextmanager
    async def reserve(
        self,
        price: int,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[FundingTicket]:
        """Context manager form of ``ensure_funded`` + ``release``."""
        ticket = await self.ensure_funded(
            price, cancel_event=cancel_event, timeout=timeout
        )
        try:
            yield ticket
        finally:
            self.release(ticket)

    async def _submit(self, amount: int, timeout: float) -> str:
        """Send the top-up, bounded by ``timeout`` seconds."""
        sent: List[str] = []
        try:
            return await asyncio.wait_for(
                self._gateway.fund(amount, on_sent=sent.append), timeout
            )
        except asyncio.TimeoutError as e:
            # A transfer already broadcast still lands in escrow later
            funding_tx = sent[-1] if sent else None
            self.last_funding_tx = funding_tx or self.last_funding_tx
            _logger.warning(
                "Funding submission timed out",
                extra={"amount": amount, "funding_tx": funding_tx, "timeout_s": timeout},
            )
            raise FundingTimeoutError(
                timeout,
                funding_tx=funding_tx,
                node_url=self._gateway.active_node,
                details={"funds_spent": funding_tx is not None},
            ) from e

    async def _await_acknowledged(
        self,
        price: int,
        funding_tx: str,
        timeout: float,
        deadline: float,
    ) -> None:
        loop = asyncio.get_running_loop()

        while True:
            try:
                balance = await self._gateway.balance()
            except (httpx.HTTPError, GatewayRequestError) as e:
                _logger.warning(
                    "Balance poll failed while awaiting funding",
                    extra={"funding_tx": funding_tx, "error": str(e)},
                )
            else:
                if balance - self.reserved >= price:
                    _logger.info(
                        "Funding acknowledged",
                        extra={"funding_tx": funding_tx, "balance": balance},
                    )
                    return

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise FundingTimeoutError(
                    timeout,
                    funding_tx=funding_tx,
                    node_url=self._gateway.active_node,
                )
            await asyncio.sleep(min(self._config.poll_interval_s, remaining))
