"""Caller-facing time budget shared by every I/O call of one request."""

from __future__ import annotations

import time
from typing import Optional

from paper_notes.errors import DeadlineExceededError


class Deadline:
    """Absolute deadline expressed against ``time.monotonic``.

    Components ask for ``timeout(cap)`` right before an I/O call and pass the
    result as the transport timeout, so an outstanding request is aborted by
    the socket layer once the budget is spent.
    """

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(self._expires_at - time.monotonic(), 0.0)

    def timeout(self, cap: Optional[float] = None) -> float:
        remaining = self.remaining()
        if remaining <= 0.0:
            raise DeadlineExceededError(f"request exceeded its {self.seconds:.0f}s budget")
        if cap is None:
            return remaining
        return min(cap, remaining)


def io_timeout(deadline: Optional[Deadline], cap: Optional[float]) -> Optional[float]:
    """Return the timeout for the next I/O call, honouring an optional deadline."""

    if deadline is None:
        return cap
    return deadline.timeout(cap)
