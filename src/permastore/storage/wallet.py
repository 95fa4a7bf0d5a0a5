"""
Wallet credentials for gateway writes and funding.

Holds the signing key, signs upload payloads for the gateway, and sends the
on-chain transfer that tops up a gateway node's escrow.
"""

from __future__ import annotations

import hashlib
from typing import Callable, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from permastore.errors.storage import (
    FundingRejectedError,
    FundingTimeoutError,
    InsufficientSourceFundsError,
)
from permastore.utils.logging import get_logger

_logger = get_logger(__name__)

# Plain value transfer
TRANSFER_GAS_LIMIT = 21000


class Wallet:
    """
    Signing wallet for one funding account.

    Example:
        ```python
        wallet = Wallet(os.environ["PERMASTORE_WALLET_KEY"], rpc_url=os.environ["PERMASTORE_RPC_URL"])
        signature = wallet.sign_payload(b"hello")
        ```
    """

    def __init__(
        self,
        private_key: str,
        *,
        rpc_url: Optional[str] = None,
        web3: Optional[AsyncWeb3] = None,
        receipt_timeout_s: float = 120.0,
    ) -> None:
        self._account = Account.from_key(private_key)
        self._rpc_url = rpc_url
        self._w3 = web3
        self._receipt_timeout_s = receipt_timeout_s

    @property
    def address(self) -> str:
        """Get the wallet address."""
        return self._account.address

    @property
    def w3(self) -> AsyncWeb3:
        if self._w3 is None:
            if not self._rpc_url:
                raise FundingRejectedError(
                    "No RPC URL configured; the wallet cannot send funding transactions"
                )
            self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self._rpc_url))
        return self._w3

    def sign_payload(self, data: bytes) -> str:
        """Sign the sha256 of a payload; returns the hex signature."""
        content_hash = hashlib.sha256(data).hexdigest()
        signed = self._account.sign_message(encode_defunct(text=content_hash))
        return signed.signature.hex()

    async def get_balance(self) -> int:
        """On-chain balance of the wallet in wei."""
        return int(await self.w3.eth.get_balance(self.address))

    async def transfer(
        self,
        to: str,
        amount: int,
        *,
        on_sent: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Send ``amount`` wei to ``to`` and wait for the receipt.

        ``on_sent`` receives the transaction hash as soon as it is broadcast.

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            InsufficientSourceFundsError: Wallet balance cannot cover amount + gas
            FundingRejectedError: Transaction reverted or was refused by the RPC
            FundingTimeoutError: No receipt within the receipt timeout
        """
        w3 = self.w3
        gas_price = int(await w3.eth.gas_price)
        required = amount + gas_price * TRANSFER_GAS_LIMIT
        available = await self.get_balance()
        if available < required:
            raise InsufficientSourceFundsError(available, required)

        tx = {
            "from": self.address,
            "to": w3.to_checksum_address(to),
            "value": amount,
            "gas": TRANSFER_GAS_LIMIT,
            "gasPrice": gas_price,
            "nonce": await w3.eth.get_transaction_count(self.address, "pending"),
            "chainId": await w3.eth.chain_id,
        }
        signed = self._account.sign_transaction(tx)

        try:
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        except ValueError as e:
            raise FundingRejectedError(f"Funding transaction refused: {e}") from e

        tx_hex = w3.to_hex(tx_hash)
        if on_sent is not None:
            on_sent(tx_hex)
        _logger.info(
            "Funding transfer sent",
            extra={"funding_tx": tx_hex, "amount": amount, "to": to},
        )

        try:
            receipt = await w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout_s
            )
        except TimeExhausted as e:
            raise FundingTimeoutError(self._receipt_timeout_s, funding_tx=tx_hex) from e

        if receipt["status"] != 1:
            raise FundingRejectedError(
                f"Funding transaction reverted: {tx_hex}", funding_tx=tx_hex
            )
        return tx_hex
