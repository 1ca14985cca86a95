"""Rolling statistics used for power averages, peaks and sparklines."""

from collections import deque

# Recompute the running sum from scratch after this many pushes.
RESUM_INTERVAL = 1000

HISTORY_SIZE = 120


class RollingAverage:
    """
    Moving average over the last ``window`` values.

    Keeps a running sum so ``average()`` is O(1). The sum is rebuilt from the
    buffer every ``RESUM_INTERVAL`` pushes to bound floating-point drift from
    repeated add/subtract.
    """

    def __init__(self, window: int) -> None:
        self._window = max(1, window)
        self._values: deque[float] = deque()
        self._sum = 0.0
        self._pushes = 0

    @property
    def window(self) -> int:
        return self._window

    def __len__(self) -> int:
        return len(self._values)

    def push(self, value: float) -> None:
        """Add a value, evicting the oldest one when the window is full."""
        if len(self._values) == self._window:
            self._sum -= self._values.popleft()
        self._values.append(value)
        self._sum += value
        self._pushes += 1

        if self._pushes >= RESUM_INTERVAL:
            self._sum = sum(self._values)
            self._pushes = 0

    def average(self) -> float:
        """Return the mean of the buffered values, or 0.0 if empty."""
        if not self._values:
            return 0.0
        return self._sum / len(self._values)


class History:
    """Fixed-capacity FIFO of recent values for sparkline rendering."""

    def __init__(self, capacity: int = HISTORY_SIZE) -> None:
        self._values: deque[float] = deque(maxlen=max(1, capacity))

    def __len__(self) -> int:
        return len(self._values)

    def push(self, value: float) -> None:
        self._values.append(value)

    def values(self) -> list[float]:
        """Return buffered values, oldest first."""
        return list(self._values)


class PeakTracker:
    """Running maximum that never decreases."""

    def __init__(self) -> None:
        self._peak = 0.0

    @property
    def peak(self) -> float:
        return self._peak

    def push(self, value: float) -> None:
        if value > self._peak:
            self._peak = value
