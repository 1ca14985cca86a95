"""Session state: sample dedup, rolling power statistics and restart triggers."""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from pmtop.models import (
    DashboardSnapshot,
    DeviceInfo,
    IoStats,
    MemoryStats,
    NormalizedMetrics,
    PowerFigures,
    RawSample,
    SamplingConfig,
    ThermalStatus,
)
from pmtop.normalizer import normalize
from pmtop.stats import History, PeakTracker, RollingAverage
from pmtop.supervisor import new_session_token

logger = logging.getLogger(__name__)

MAX_PERCENT_OF_CEILING = 999.0


class SessionPhase(Enum):
    """Lifecycle phase of a monitoring session."""

    AWAITING_FIRST_SAMPLE = "awaiting"
    STEADY = "steady"


def percent_of_ceiling(watts: float, ceiling: float) -> float:
    """Power as a percentage of ``ceiling``, clamped to [0, 999]."""
    if ceiling <= 0:
        return 0.0
    return min(max(watts / ceiling * 100, 0.0), MAX_PERCENT_OF_CEILING)


class SessionState:
    """
    Rolling state built from accepted powermetrics samples.

    A sample is accepted only if its timestamp is newer than the last accepted
    one, so re-reading an unchanged output file never double-counts. After
    ``restart_after_samples`` accepted samples a new session token is issued
    and ``on_restart`` is called with it; the timestamp guard is cleared so
    the first sample of the new powermetrics run is always accepted.
    """

    def __init__(
        self,
        config: SamplingConfig,
        device: DeviceInfo,
        on_restart: Callable[[str], object] | None = None,
        token_factory: Callable[[], str] = new_session_token,
    ) -> None:
        self.config = config
        self.device = device
        self._on_restart = on_restart
        self._token_factory = token_factory

        self.session_token = token_factory()
        self.phase = SessionPhase.AWAITING_FIRST_SAMPLE
        self.last_timestamp: datetime | None = None
        self.samples_taken = 0
        self.restarts = 0

        self.metrics = NormalizedMetrics()
        self.thermal_pressure = ""

        window = config.averaging_window_samples
        self.cpu_avg = RollingAverage(window)
        self.gpu_avg = RollingAverage(window)
        self.package_avg = RollingAverage(window)
        self.cpu_peak = PeakTracker()
        self.gpu_peak = PeakTracker()
        self.package_peak = PeakTracker()
        self.power_history = History()

        self.cpu_power = 0.0
        self.gpu_power = 0.0
        self.package_power = 0.0
        self.ane_power = 0.0
        self.ane_percent = 0

    @property
    def restart_due(self) -> bool:
        limit = self.config.restart_after_samples
        return limit > 0 and self.samples_taken >= limit

    def ingest(self, sample: RawSample) -> bool:
        """
        Integrate ``sample`` if it is newer than the last accepted one.

        Returns True when the sample was accepted.
        """
        if self.last_timestamp is not None and sample.timestamp <= self.last_timestamp:
            return False

        self.last_timestamp = sample.timestamp
        self.thermal_pressure = sample.thermal_pressure
        self.metrics = normalize(sample)
        self._update_power()
        self.samples_taken += 1

        if self.phase is SessionPhase.AWAITING_FIRST_SAMPLE:
            logger.info("First sample received at %s", sample.timestamp)
            self.phase = SessionPhase.STEADY

        if self.restart_due:
            self.rotate()
        return True

    def rotate(self) -> str:
        """Start a new powermetrics session and return its token."""
        token = self._token_factory()
        logger.info("Rotating session after %d samples", self.samples_taken)
        if self._on_restart is not None:
            self._on_restart(token)
        self.session_token = token
        self.samples_taken = 0
        self.last_timestamp = None
        self.restarts += 1
        return token

    def _update_power(self) -> None:
        interval = max(self.config.interval_seconds, 1)
        metrics = self.metrics
        self.cpu_power = metrics.cpu_watts / interval
        self.gpu_power = metrics.gpu_watts / interval
        self.package_power = metrics.package_watts / interval
        self.ane_power = metrics.ane_watts / interval

        ane_ceiling = max(self.device.ane_power_ceiling_watts, 1.0)
        self.ane_percent = int(min(max(round(self.ane_power / ane_ceiling * 100), 0), 100))

        self.cpu_peak.push(self.cpu_power)
        self.gpu_peak.push(self.gpu_power)
        self.package_peak.push(self.package_power)
        self.cpu_avg.push(self.cpu_power)
        self.gpu_avg.push(self.gpu_power)
        self.package_avg.push(self.package_power)
        self.power_history.push(self.cpu_power + self.gpu_power)

    def thermal_throttle(self, thermal: ThermalStatus | None) -> bool:
        """Throttle flag from the IOKit level, or the sample's pressure label."""
        if thermal is not None:
            return thermal.is_throttled
        return self.thermal_pressure.strip() != "Nominal"

    def snapshot(
        self,
        memory: MemoryStats | None = None,
        io: IoStats | None = None,
        thermal: ThermalStatus | None = None,
    ) -> DashboardSnapshot:
        """Assemble the presentation snapshot for the dashboard."""
        device = self.device
        package_ceiling = device.cpu_power_ceiling_watts + device.gpu_power_ceiling_watts
        return DashboardSnapshot(
            device=device,
            metrics=self.metrics,
            memory=memory or MemoryStats(),
            io=io or IoStats(),
            thermal_pressure=self.thermal_pressure,
            thermal_throttle=self.thermal_throttle(thermal),
            show_per_core=self.config.show_per_core,
            palette=self.config.palette,
            ane_percent=self.ane_percent,
            ane_watts=self.ane_power,
            cpu_power=PowerFigures(
                current=self.cpu_power,
                average=self.cpu_avg.average(),
                peak=self.cpu_peak.peak,
                percent_of_ceiling=percent_of_ceiling(
                    self.cpu_power, device.cpu_power_ceiling_watts
                ),
            ),
            gpu_power=PowerFigures(
                current=self.gpu_power,
                average=self.gpu_avg.average(),
                peak=self.gpu_peak.peak,
                percent_of_ceiling=percent_of_ceiling(
                    self.gpu_power, device.gpu_power_ceiling_watts
                ),
            ),
            package_power=PowerFigures(
                current=self.package_power,
                average=self.package_avg.average(),
                peak=self.package_peak.peak,
                percent_of_ceiling=percent_of_ceiling(self.package_power, package_ceiling),
            ),
            power_history=self.power_history.values(),
        )
