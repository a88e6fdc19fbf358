"""Bounded, newest-first ring of power samples."""

import threading
from collections import deque
from typing import Any

from pydantic import ConfigDict, Field

from .entity import Entity
from .sample import PowerSample


class PowerSampleBuffer(Entity):
    """Most-recent-N power samples for one monitored appliance.

    Samples are kept newest-first in arrival order. Once the buffer
    holds ``capacity`` samples, each push evicts the oldest one. There
    is no deduplication and no timestamp repair: insertion order is
    the only ordering.

    Every operation is total and takes an internal lock, so the sensor
    delivery thread and the convergence loop thread may use the same
    buffer concurrently.
    """

    model_config = ConfigDict(frozen=False)

    capacity: int = Field(
        default=5, ge=1, description="Maximum number of retained samples"
    )

    def __init__(self, **data: Any) -> None:
        """Initialize buffer with empty internal storage."""
        super().__init__(**data)
        self._samples: deque[PowerSample] = deque(maxlen=self.capacity)
        self._lock = threading.Lock()

    def push(self, sample: PowerSample) -> None:
        """Prepend a sample, evicting the oldest beyond capacity."""
        with self._lock:
            self._samples.appendleft(sample)

    def clear(self) -> None:
        """Remove all samples."""
        with self._lock:
            self._samples.clear()

    def latest(self) -> PowerSample | None:
        """Get the newest sample, or None if the buffer is empty."""
        with self._lock:
            if not self._samples:
                return None
            return self._samples[0]

    def snapshot(self) -> tuple[PowerSample, ...]:
        """Get all samples, newest first."""
        with self._lock:
            return tuple(self._samples)

    def count(self) -> int:
        """Get number of buffered samples."""
        with self._lock:
            return len(self._samples)

    def is_empty(self) -> bool:
        """Check if buffer is empty."""
        return self.count() == 0

    def is_full(self) -> bool:
        """Check if buffer holds exactly ``capacity`` samples."""
        return self.count() == self.capacity
