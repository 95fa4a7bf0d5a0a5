#!/usr/bin/env python3
"""
Example: store a local file permanently

Uploads one file through the full pipeline (cost, funding, tagged write,
verification) and prints the permanent URI.

Run this example:
    PERMASTORE_NETWORK=devnet PERMASTORE_WALLET_KEY=0x... \
        python examples/upload_file.py path/to/report.pdf application/pdf
"""

import asyncio
import sys
from pathlib import Path

from permastore import StorageConfig, StorageService, UploadOptions, configure_logging
from permastore.errors import StorageError


def show_progress(percent: int) -> None:
    print(f"\r[UPLOAD] {percent:3d}%", end="", flush=True)


async def main() -> int:
    if len(sys.argv) < 3:
        print("usage: upload_file.py <path> <mime-type>")
        return 2

    path = Path(sys.argv[1])
    file_type = sys.argv[2]

    config = StorageConfig.from_env()
    configure_logging(level=config.log_level)

    service = StorageService(
        config,
        on_verified=lambda snap: print(f"\n[VERIFY] {snap.id} verified on {snap.verified_networks}"),
    )

    print("=" * 60)
    print("permastore - permanent upload")
    print("=" * 60)

    try:
        node = await service.initialize()
        print(f"[GATEWAY] Connected to {node}")

        cost = await service.calculate_upload_cost(path.stat().st_size)
        print(f"[COST] {cost} atomic units for {path.stat().st_size} bytes")

        result = await service.upload(
            path.read_bytes(),
            path.name,
            file_type,
            user_id="example-user",
            vault_id="example-vault",
            options=UploadOptions(
                cross_chain_verify=True,
                tags={"Source": "examples/upload_file.py"},
                on_progress=show_progress,
            ),
        )
        print(f"\n[STORED] locator={result.locator}")
        print(f"[STORED] uri={result.uri}")

        print("[VERIFY] Waiting for confirmation (Ctrl+C to stop)...")
        await service.scheduler.wait_idle()
        record, attempts = service.get_record(result.file_record.id)
        print(f"[VERIFY] status={record.status.value} after {len(attempts)} attempt(s)")
    except StorageError as e:
        print(f"\n[ERROR] {e.code}: {e.message}")
        if e.suggested_action:
            print(f"        {e.suggested_action}")
        return 1
    finally:
        await service.close()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
