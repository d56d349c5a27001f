"""Waiting on the network with an injectable sleep and a cancellation token."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

from bsvpush_core.errors import NetworkError, PollCancelled, PollTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL = 1.0


def poll_until(
    check: Callable[[], T],
    *,
    description: str,
    interval: float = DEFAULT_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    cancel: threading.Event | None = None,
    max_attempts: int | None = None,
) -> T:
    """Call *check* until it returns something truthy and return that value.

    A NetworkError raised by *check* counts as a miss. Unbounded unless
    *max_attempts* is given; set *cancel* to stop waiting from another thread.
    """
    attempts = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise PollCancelled(description)
        attempts += 1
        try:
            result = check()
        except NetworkError as e:
            logger.warning("Retrying %s: %s", description, e)
            result = None
        if result:
            if attempts > 1:
                logger.debug("%s after %d attempts", description, attempts)
            return result
        if max_attempts is not None and attempts >= max_attempts:
            raise PollTimeout(description, attempts)
        if attempts == 1:
            logger.info("Waiting for %s", description)
        sleep(interval)
