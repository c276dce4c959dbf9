#!/usr/bin/env python3
"""Live event-list watcher.

Signs in with a registration number, loads the events table once and then
prints every realtime change until interrupted.

Credentials:
- CRESCENT_RRN / CRESCENT_PASSWORD (or --rrn / password prompt)
- CRESCENT_URL / CRESCENT_ANON_KEY for the project
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import os
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pycrescent import CrescentClient, CrescentConfig, CrescentError, EventRow, SessionHolder  # noqa: E402

_LOG = logging.getLogger("watch_events")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch the live events table.")
    parser.add_argument("--rrn", default=os.environ.get("CRESCENT_RRN", ""), help="Registration number.")
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logs.")
    return parser.parse_args()


def _print_rows(rows: tuple[EventRow, ...]) -> None:
    print(f"[watch] {len(rows)} events")
    for row in rows:
        print(f"[watch]   {row.name}  ({row.id})")


async def _run(args: argparse.Namespace) -> int:
    config = CrescentConfig.from_env()
    password = os.environ.get("CRESCENT_PASSWORD") or getpass.getpass("Password: ")

    async with CrescentClient(config) as client:
        async with await SessionHolder.create(client=client, config=config) as holder:
            validated = await holder.log_in(args.rrn, password)
            print(f"[watch] Signed in as {validated.user.email if validated.user else '?'}")

            holder.observe_subscription_status(lambda status: print(f"[watch] subscription: {status}"))
            holder.observe_events(_print_rows)
            _print_rows(await holder.fetch_all())

            if args.duration > 0:
                await asyncio.sleep(args.duration)
            else:
                await asyncio.Event().wait()
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0
    except (CrescentError, ValueError) as exc:
        _LOG.error("Watch failed: %s", exc)
        return 2


if __name__ == "__main__":
    sys.exit(_main())
