# src/bucket_mirror/signals.py
"""
Translation of SIGINT/SIGTERM into a shutdown event.

The coordinator waits on this event alongside its admission slots, so a
signal ends admission at once; objects already being copied are allowed to
finish and the run reports itself as interrupted.
"""

import asyncio
import logging
import os
import signal
from typing import Any, Dict, List, Tuple

logger: logging.Logger = logging.getLogger(__name__)

HANDLED_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)

FORCED_EXIT_CODE: int = 130


class GracefulShutdown:
    """
    An async context manager that turns the first shutdown signal into an event.

    Handlers run on the event loop. A second signal exits the process
    immediately with `FORCED_EXIT_CODE`. The handlers that were in place
    before entry are restored on exit.
    """

    def __init__(self) -> None:
        self._event: asyncio.Event = asyncio.Event()
        self._installed: List[signal.Signals] = []
        self._previous: Dict[signal.Signals, Any] = {}

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._event.is_set():
            logger.critical(f"Received {sig.name} again. Exiting now.")
            os._exit(FORCED_EXIT_CODE)
        logger.warning(
            f"Received {sig.name}. No new objects will be started; waiting for "
            "in-flight copies to finish (signal again to force exit)."
        )
        self._event.set()

    async def __aenter__(self) -> asyncio.Event:
        """
        Install the signal handlers on the running loop.

        Returns:
            asyncio.Event: Set when the first handled signal arrives.
        """
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            previous: Any = signal.getsignal(sig)
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Not the main thread, or a loop without signal support.
                logger.warning(f"Could not set handler for {sig.name}: {e}")
                continue
            self._previous[sig] = previous
            self._installed.append(sig)
        return self._event

    async def __aexit__(self, *args: Any) -> None:
        """Remove the loop handlers and put back the previous ones."""
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
            if self._previous[sig] is not None:
                signal.signal(sig, self._previous[sig])
        self._installed.clear()
        self._previous.clear()
