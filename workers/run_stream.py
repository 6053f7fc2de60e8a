"""
Run the live candle stream without the HTTP API.

    python -m workers.run_stream --sandbox --account paper
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal

from config.settings import settings
from workers.stream_supervisor import StreamSupervisor


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream live trades into multi-timeframe candles.")
    parser.add_argument("--sandbox", action="store_true", help="use the sandbox feed endpoint")
    parser.add_argument("--account", default=None, help="credential set to use (FEED_API_KEY_<ACCOUNT>)")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> None:
    supervisor = StreamSupervisor(sandbox=True if args.sandbox else None, account=args.account)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await supervisor.start()
        if supervisor.stream is not None:
            await stop.wait()
    finally:
        await supervisor.stop()


def main(argv=None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
