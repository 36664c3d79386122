"""Cooperative cancellation and deadline propagation for research runs."""

from __future__ import annotations

import asyncio
import time


class RunCancelledError(RuntimeError):
    """Raised at a suspension point once a run has been cancelled or timed out."""

    def __init__(self, message: str = "Research run cancelled", code: str = "RUN_CANCELLED") -> None:
        super().__init__(message)
        self.code = code


class CancellationToken:
    """Shared kill switch threaded through adapters, the limiter and the executor."""

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._event = asyncio.Event()
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        self._reason: str | None = None

    @classmethod
    def with_timeout(cls, timeout_seconds: float | None) -> CancellationToken:
        return cls(timeout_seconds=timeout_seconds)

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._reason is None:
            self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    @property
    def reason(self) -> str | None:
        return self._reason

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RunCancelledError(f"Research run cancelled: {self._reason}")

    def cap_timeout(self, timeout: float) -> float:
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return max(0.001, min(timeout, remaining))

    async def sleep(self, delay: float) -> None:
        """Sleep for `delay` seconds unless the token fires first."""
        self.raise_if_cancelled()
        if delay <= 0:
            return
        remaining = self.remaining()
        bounded = delay if remaining is None else min(delay, remaining)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=bounded)
        except TimeoutError:
            pass
        self.raise_if_cancelled()
