"""Cooperative cancellation for long-running scan and fetch operations."""
from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    """A thread-safe, one-way cancellation flag.

    Usage::

        token = CancellationToken()
        orchestrator.run(cancel=token)

        # From another thread or a signal handler:
        token.cancel()

    Workers check :attr:`cancelled` between units of work; a unit that is
    already running is always allowed to finish.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation.  Safe to call more than once."""
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()
