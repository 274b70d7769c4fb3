#!/usr/bin/env python3
"""Publish a worker notification (status change or data arrival) for local testing."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import nats


def render_message(
    *,
    verification_id: str,
    status: str | None = None,
    error: str | None = None,
    data_type: str | None = None,
    data: Any = None,
) -> tuple[str, bytes]:
    if data_type:
        payload = {"verification_id": verification_id, "data_type": data_type, "data": data}
        return "verification.data", json.dumps(payload, ensure_ascii=False).encode("utf-8")

    payload = {"verification_id": verification_id, "status": status}
    if error:
        payload["error"] = error
    return "verification.completed", json.dumps(payload, ensure_ascii=False).encode("utf-8")


async def _publish(url: str, topic: str, payload: bytes) -> None:
    conn = await nats.connect(servers=[url])
    try:
        await conn.publish(topic, payload)
        await conn.flush(timeout=5)
    finally:
        await conn.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Publish a verification notification to NATS.")
    parser.add_argument("--verification-id", required=True)
    kind = parser.add_mutually_exclusive_group(required=True)
    kind.add_argument(
        "--status",
        choices=["IN_PROCESS", "PROCESSING", "COMPLETED", "ERROR", "COMPANY_NOT_FOUND"],
    )
    kind.add_argument("--data-type", help="Data type tag, e.g. BASIC_INFORMATION")
    parser.add_argument("--error", default=None, help="Error text for ERROR notifications")
    parser.add_argument("--data-file", type=Path, default=None, help="JSON file with the data payload")
    parser.add_argument("--nats-url", default="nats://localhost:4222")
    parser.add_argument("--print-only", action="store_true", help="Print topic and payload instead of publishing")
    args = parser.parse_args()

    data: Any = None
    if args.data_type:
        if args.data_file is None:
            print("--data-file is required with --data-type", file=sys.stderr)
            return 2
        data = json.loads(args.data_file.read_text(encoding="utf-8"))

    topic, payload = render_message(
        verification_id=args.verification_id,
        status=args.status,
        error=args.error,
        data_type=args.data_type,
        data=data,
    )
    if args.print_only:
        print(topic)
        print(payload.decode("utf-8"))
        return 0

    asyncio.run(_publish(args.nats_url, topic, payload))
    print(f"published {topic}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
