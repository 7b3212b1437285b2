"""
Long-running operation poller.

Drives an operation handle from start to completion:

    STARTED -> POLLING -> DONE | FAILED | CANCELLED

Progress text is pushed to a caller-supplied callback at every step. The
cancellation event is checked at each poll iteration and also wakes the
interval sleep early.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from nodeforge.config import NodeforgeConfig
from nodeforge.errors import ExternalCallError, RunCancelledError

logger = logging.getLogger(__name__)

H = TypeVar("H")

ProgressCallback = Callable[[str], None]


class PollState(str, Enum):
    STARTED = "STARTED"
    POLLING = "POLLING"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


def _default_is_done(handle: Any) -> bool:
    return bool(getattr(handle, "done", False))


class OperationPoller(Generic[H]):
    """
    Poll an asynchronous operation handle until it reports completion.

    Args:
        check_status: Async callable returning a refreshed handle.
        is_done: Predicate reading the handle's completion flag.
        interval: Seconds between status checks.
        timeout: Optional overall limit in seconds; None waits indefinitely.
        label: Artifact name used in progress messages.
    """

    def __init__(
        self,
        check_status: Callable[[H], Awaitable[H]],
        *,
        is_done: Callable[[H], bool] = _default_is_done,
        interval: float | None = None,
        timeout: float | None = None,
        label: str = "video",
    ):
        self.check_status = check_status
        self.is_done = is_done
        self.interval = NodeforgeConfig.VIDEO_POLL_INTERVAL if interval is None else interval
        self.timeout = timeout
        self.label = label
        self.state = PollState.STARTED
        self.polls = 0

    def _emit(self, on_progress: ProgressCallback | None, message: str) -> None:
        if on_progress is not None:
            on_progress(message)

    def _check_cancelled(self, cancel: asyncio.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            self.state = PollState.CANCELLED
            raise RunCancelledError(f"{self.label.capitalize()} polling cancelled")

    async def _sleep(self, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await asyncio.sleep(self.interval)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def run(
        self,
        start: Callable[[], Awaitable[H]],
        *,
        on_progress: ProgressCallback | None = None,
        cancel: asyncio.Event | None = None,
    ) -> H:
        """Start the operation and poll it to completion; returns the final handle."""
        label = self.label
        self.state = PollState.STARTED
        self._check_cancelled(cancel)
        self._emit(on_progress, f"Starting {label} generation...")

        try:
            handle = await start()
            self._emit(
                on_progress,
                f"{label.capitalize()} processing has started. This may take a few minutes...",
            )

            self.state = PollState.POLLING
            started_at = time.monotonic()
            while not self.is_done(handle):
                self._check_cancelled(cancel)
                if self.timeout is not None and time.monotonic() - started_at >= self.timeout:
                    raise ExternalCallError(
                        f"{label.capitalize()} generation timed out after {self.timeout:.0f}s"
                    )
                await self._sleep(cancel)
                self._check_cancelled(cancel)
                self.polls += 1
                self._emit(on_progress, f"Checking {label} status...")
                handle = await self.check_status(handle)
                logger.debug("Poll %d for %s operation: done=%s", self.polls, label, self.is_done(handle))
        except RunCancelledError:
            self.state = PollState.CANCELLED
            raise
        except Exception:
            self.state = PollState.FAILED
            raise

        self.state = PollState.DONE
        self._emit(on_progress, f"{label.capitalize()} processing complete. Fetching {label}...")
        return handle
