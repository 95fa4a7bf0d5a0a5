#!/usr/bin/env python3
"""
permastore Status Checker
Check gateway availability, escrow balance and the state of a locator

Usage:
    python test_scripts/status.py [locator]

Environment Variables:
    PERMASTORE_NETWORK: mainnet | devnet (default: mainnet)
    PERMASTORE_WALLET_KEY: Private key of the funding wallet
    PERMASTORE_RPC_URL: RPC URL of the funding chain (for the wallet balance)
"""

import asyncio
import sys

from dotenv import load_dotenv

# Load .env file
load_dotenv()

from permastore import StorageConfig, StorageService, Wallet
from permastore.errors import PermastoreError


def format_eth(amount_wei: int) -> str:
    """Format an amount from wei (18 decimals)."""
    return f"{amount_wei / 1e18:.6f}"


async def main() -> None:
    locator = sys.argv[1] if len(sys.argv) > 1 else None
    config = StorageConfig.from_env()

    print("permastore Status Check\n")
    print("=" * 43)
    print("GATEWAY")
    print("=" * 43 + "\n")

    service = StorageService(config)
    if config.wallet_key:
        wallet = Wallet(config.wallet_key, rpc_url=config.gateway.rpc_url)
        print(f"Wallet:   {wallet.address}")
        try:
            await service.initialize(wallet)
        except PermastoreError as e:
            print(f"Connect failed: {e.code} {e.message}")
    else:
        print("No PERMASTORE_WALLET_KEY set; skipping node connection")

    status = await service.get_status()
    print(f"Network:  {status.network}")
    print(f"Gateway:  {status.gateway}")
    print(f"Node:     {service.gateway.active_node or '-'}")
    print(f"Available: {status.available}")
    if status.balance is not None:
        print(f"Escrow:   {format_eth(int(status.balance))} ({status.balance} wei)")
        print(f"Per MiB:  {status.cost_per_mb} wei")

    if config.wallet_key and config.gateway.rpc_url:
        try:
            print(f"Wallet balance: {format_eth(await wallet.get_balance())}")
        except Exception as e:
            print(f"Wallet balance unavailable: {e}")

    if locator:
        print("\n" + "=" * 43)
        print(f"LOCATOR {locator}")
        print("=" * 43 + "\n")
        try:
            confirmed = await service.verify_file(locator)
            print(f"Confirmed: {confirmed}")
            info = await service.get_transaction_info(locator)
            print(f"Owner:     {info.owner}")
            print(f"Size:      {info.size} bytes")
            print(f"Type:      {info.content_type}")
            print(f"Block:     {info.block_height}")
            for name, value in info.tags.items():
                print(f"  {name}: {value}")
        except PermastoreError as e:
            print(f"Lookup failed: {e.code} {e.message}")

    await service.close()


if __name__ == "__main__":
    asyncio.run(main())
