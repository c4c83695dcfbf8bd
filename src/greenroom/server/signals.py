"""SIGTERM/SIGINT handling for `greenroom serve`."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from greenroom.server.lifecycle import ServerLifecycle

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)

# add/remove_signal_handler raise these outside the main thread, on a
# closed loop, or on platforms without loop signal support
_UNSUPPORTED = (ValueError, RuntimeError, NotImplementedError)


def setup_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    lifecycle: ServerLifecycle,
    shutdown_event: asyncio.Event,
) -> None:
    """Make SIGTERM and SIGINT mark the lifecycle as shutting down and
    wake whoever waits on shutdown_event."""

    def on_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, draining jobs before exit", sig.name)
        lifecycle.initiate_shutdown()
        shutdown_event.set()

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, on_signal, sig)
        except _UNSUPPORTED as e:
            logger.warning("Failed to register handler for %s: %s", sig.name, e)


def remove_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except _UNSUPPORTED:
            logger.debug("No %s handler to remove", sig.name)
