#!/usr/bin/env python3
"""
Basic Usage Example - kiteticker

This script streams live ticks from the Kite ticker. It shows how to:
- Configure logging
- Write a handler overriding only the callbacks it needs
- Record subscriptions before connecting
- Switch a token to full mode once connected

Run: KITE_API_KEY=... KITE_ACCESS_TOKEN=... python examples/basic_usage.py
"""

import json
import os
import sys
import time

from kiteticker import KiteTicker, Mode, TickerHandler
from kiteticker.connection.states import ConnectionState
from kiteticker.logging import configure_logging

NIFTY_50 = 256265
INFY_NSE = 408065


class PrintingHandler(TickerHandler):
    """Prints ticks and lifecycle events."""

    def __init__(self):
        self.ticks = 0

    def on_open(self):
        print("🔌 Connected")

    def on_tick(self, tick):
        self.ticks += 1
        if tick.mode == Mode.FULL:
            print(json.dumps(tick.to_dict(), indent=2))
            return
        print(f"  {tick.instrument_token:>8} {tick.mode.value:<5} {tick.last_price:>12.2f}")

    def on_decode_error(self, error):
        print(f"⚠️  Skipped packet: {error}")

    def on_error(self, error):
        print(f"❌ Connection error: {error}")

    def on_close(self):
        print("🔒 Closed")


def main():
    """Main demonstration function."""
    api_key = os.environ.get("KITE_API_KEY")
    access_token = os.environ.get("KITE_ACCESS_TOKEN")
    if not api_key or not access_token:
        print("Set KITE_API_KEY and KITE_ACCESS_TOKEN to run this example")
        sys.exit(1)

    configure_logging(level="INFO")

    handler = PrintingHandler()
    ticker = KiteTicker(api_key, access_token, handler=handler)

    # Recorded now, sent once the handshake completes
    result = ticker.subscribe([NIFTY_50, INFY_NSE])
    print(f"1. subscribe before connect: {result.status.value}")

    print("2. Connecting...")
    ticker.connect()

    deadline = time.monotonic() + 10
    while not ticker.is_connected and time.monotonic() < deadline:
        time.sleep(0.1)

    if ticker.is_connected:
        print("3. Switching NIFTY 50 to full mode")
        ticker.set_mode(Mode.FULL, [NIFTY_50])
        time.sleep(15)

    if ticker.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
        ticker.close()
    ticker.wait_closed(5)
    print(f"\n📊 Received {handler.ticks} ticks")
    print(f"   Subscriptions: {ticker.subscriptions()}")
    print(f"   Stats: {ticker.get_stats()}")


if __name__ == "__main__":
    main()
