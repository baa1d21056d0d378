"""Epoch latch: the reference instant for all reported timestamps."""

from __future__ import annotations

import threading
from typing import Optional


class EpochLatch:
    """One-shot reference time, latched from the first ingested sample.

    The latch is an atomic set-if-unset: concurrent callers all observe the
    same epoch and it is never updated once set. Timestamps reported to the
    peer are relative to it, so the first one is exactly 0.
    """

    def __init__(self) -> None:
        self._epoch_us: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def epoch_us(self) -> Optional[int]:
        return self._epoch_us

    @property
    def is_set(self) -> bool:
        return self._epoch_us is not None

    def latch(self, capture_us: int) -> int:
        """Set the epoch to capture_us unless already set; return the epoch."""
        epoch = self._epoch_us
        if epoch is not None:
            return epoch
        with self._lock:
            if self._epoch_us is None:
                self._epoch_us = int(capture_us)
            return self._epoch_us

    def relative(self, capture_us: int) -> int:
        """Capture time relative to the epoch, latching it on first use.

        The wire field is unsigned: a capture time earlier than the epoch
        (upstream clock stepped backwards) is reported as 0.
        """
        epoch = self.latch(capture_us)
        return max(0, int(capture_us) - epoch)
