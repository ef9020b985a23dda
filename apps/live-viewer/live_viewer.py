#!/usr/bin/env python3
"""
Live Viewer - Terminal display for the Caption Relay

Connects to the relay's /events stream and prints captions as they arrive:
final lines scroll up, the in-progress line is rewritten in place.

Usage:
  python live_viewer.py                                   # http://localhost:3000/events
  python live_viewer.py --url http://relay:3000/events
  python live_viewer.py --max-retries 5 --retry-delay 2
"""

import os
import sys

# Add project root to path for the relay package
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import argparse
import asyncio
import logging
import shutil
from typing import TextIO

from relay.client import ClientReconciler, ConnectionStatus, ReconnectPolicy, SSEViewer
from relay.utils import setup_logging

logger = logging.getLogger(__name__)


class TerminalDisplay:
    """Renders reconciler output: one line per final, one rewritable partial line."""

    def __init__(self, reconciler: ClientReconciler, out: TextIO = sys.stdout):
        self.reconciler = reconciler
        self.out = out
        self._printed = 0
        self._partial_shown = False

    def render(self) -> None:
        new = self.reconciler.final_count - self._printed
        if new > 0:
            self._clear_partial()
            for line in self.reconciler.lines[-new:]:
                self.out.write(line + "\n")
        self._printed = self.reconciler.final_count

        partial = self.reconciler.partial
        if partial:
            width = shutil.get_terminal_size((80, 20)).columns - 1
            text = partial if len(partial) <= width else "…" + partial[-(width - 1) :]
            self.out.write("\r\033[K" + text)
            self._partial_shown = True
        elif self._partial_shown:
            self._clear_partial()
        self.out.flush()

    def status(self, status: ConnectionStatus) -> None:
        messages = {
            ConnectionStatus.CONNECTING: "Connecting…",
            ConnectionStatus.CONNECTED: "Listening…",
            ConnectionStatus.RECONNECTING: "Connection lost. Trying to reconnect…",
            ConnectionStatus.FAILED: "Could not reach the relay.",
            ConnectionStatus.STOPPED: "Stopped.",
        }
        self._clear_partial()
        print(f"[{messages[status]}]", file=sys.stderr, flush=True)

    def _clear_partial(self) -> None:
        if self._partial_shown:
            self.out.write("\r\033[K")
            self._partial_shown = False


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Live Viewer for the Caption Relay")
    parser.add_argument("--url", default="http://localhost:3000/events", help="Relay SSE endpoint")
    parser.add_argument(
        "--max-retries", type=int, default=None, help="Reconnect attempts before giving up (default: forever)"
    )
    parser.add_argument("--retry-delay", type=float, default=1.0, help="Initial reconnect delay in seconds")
    parser.add_argument("--max-delay", type=float, default=30.0, help="Maximum reconnect delay in seconds")
    parser.add_argument(
        "--idle-timeout",
        type=float,
        default=60.0,
        help="Reconnect when nothing (not even a keepalive) arrives for this long",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.debug else "WARNING")

    reconciler = ClientReconciler()
    display = TerminalDisplay(reconciler)
    reconciler.on_change = display.render

    viewer = SSEViewer(
        url=args.url,
        reconciler=reconciler,
        policy=ReconnectPolicy(
            max_retries=args.max_retries,
            initial_delay=args.retry_delay,
            max_delay=args.max_delay,
        ),
        idle_timeout=args.idle_timeout,
        on_status=display.status,
    )

    try:
        asyncio.run(viewer.run())
    except KeyboardInterrupt:
        viewer.stop()

    if viewer.status == ConnectionStatus.FAILED:
        sys.exit(1)


if __name__ == "__main__":
    main()
