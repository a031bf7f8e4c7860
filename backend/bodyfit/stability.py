"""Temporal stability gate for pixel measurements.

Accepted samples go into a fixed-capacity circular buffer. Once the buffer is
full, the population variance of each field is compared against a threshold;
the gate only decides *when* the raw values can be trusted, it never smooths
them.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from bodyfit.measurements import PixelMeasurementSet

logger = logging.getLogger(__name__)


class StabilityWindow:
    """Index-based ring buffer of :class:`PixelMeasurementSet` rows."""

    def __init__(self, capacity: int = 10):
        if capacity <= 0:
            raise ValueError("Window capacity must be positive")
        self.capacity = capacity
        self._data = np.zeros((capacity, len(PixelMeasurementSet.FIELDS)), dtype=np.float64)
        self._head = 0
        self._count = 0

    def __len__(self) -> int:
        return self._count

    @property
    def is_full(self) -> bool:
        return self._count == self.capacity

    def push(self, sample: PixelMeasurementSet) -> None:
        """Append a sample, overwriting the oldest one once full."""
        self._data[self._head] = sample.as_tuple()
        self._head = (self._head + 1) % self.capacity
        self._count = min(self._count + 1, self.capacity)

    def clear(self) -> None:
        self._head = 0
        self._count = 0

    def newest(self) -> Optional[PixelMeasurementSet]:
        if self._count == 0:
            return None
        row = self._data[(self._head - 1) % self.capacity]
        return PixelMeasurementSet(*(float(v) for v in row))

    def samples(self) -> List[PixelMeasurementSet]:
        """Samples ordered oldest to newest."""
        start = (self._head - self._count) % self.capacity
        order = [(start + i) % self.capacity for i in range(self._count)]
        return [PixelMeasurementSet(*(float(v) for v in self._data[i])) for i in order]

    def variances(self) -> Dict[str, float]:
        """Population variance of each field over the stored samples."""
        if self._count == 0:
            return {}
        var = np.var(self._data[:self._count], axis=0)
        return dict(zip(PixelMeasurementSet.FIELDS, (float(v) for v in var)))


@dataclass(frozen=True)
class StabilityReport:
    stable: bool
    count: int
    capacity: int
    variances: Optional[Dict[str, float]] = None

    @property
    def collecting(self) -> bool:
        return self.count < self.capacity

    def to_dict(self) -> Dict:
        return {
            "stable": self.stable,
            "count": self.count,
            "capacity": self.capacity,
            "variances": self.variances,
        }


class StabilityFilter:
    """Convergence gate over the most recent samples."""

    def __init__(self, capacity: int = 10, threshold: float = 5.0):
        self.window = StabilityWindow(capacity)
        self.threshold = threshold

    def push(self, sample: PixelMeasurementSet) -> StabilityReport:
        """Add a sample and report whether the window has converged."""
        self.window.push(sample)
        count = len(self.window)

        if not self.window.is_full:
            logger.debug(f"Collecting measurements: {count}/{self.window.capacity}")
            return StabilityReport(stable=False, count=count, capacity=self.window.capacity)

        variances = self.window.variances()
        stable = all(v < self.threshold for v in variances.values())
        if stable:
            logger.debug(f"Window stable: {variances}")
        return StabilityReport(
            stable=stable,
            count=count,
            capacity=self.window.capacity,
            variances=variances,
        )

    def newest(self) -> Optional[PixelMeasurementSet]:
        return self.window.newest()

    def reset(self) -> None:
        self.window.clear()
