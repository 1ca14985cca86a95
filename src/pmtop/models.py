"""Data models for pmtop."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(slots=True, frozen=True)
class SamplingConfig:
    """Immutable sampling and display settings parsed from the command line."""

    interval_seconds: int = 1
    averaging_window_seconds: int = 30
    show_per_core: bool = False
    restart_after_samples: int = 0  # 0 = never restart
    palette: int = 2

    @property
    def interval_ms(self) -> int:
        """Sampling interval handed to powermetrics."""
        return self.interval_seconds * 1000

    @property
    def averaging_window_samples(self) -> int:
        """Number of samples covered by the rolling averages."""
        interval = max(self.interval_seconds, 1)
        return max(1, self.averaging_window_seconds // interval)


@dataclass(slots=True, frozen=True)
class RawCore:
    """Per-core counters as reported by powermetrics."""

    core_id: int
    frequency_hz: float
    idle_ratio: float


@dataclass(slots=True, frozen=True)
class RawCluster:
    """Per-cluster counters as reported by powermetrics."""

    name: str
    frequency_hz: float
    idle_ratio: float
    cores: tuple[RawCore, ...] = ()


@dataclass(slots=True, frozen=True)
class RawGpu:
    """GPU counters as reported by powermetrics."""

    frequency_hz: float
    idle_ratio: float


@dataclass(slots=True, frozen=True)
class RawSample:
    """One decoded powermetrics record."""

    timestamp: datetime
    thermal_pressure: str
    clusters: tuple[RawCluster, ...]
    gpu: RawGpu
    cpu_energy_mj: float = 0.0
    gpu_energy_mj: float = 0.0
    ane_energy_mj: float = 0.0
    combined_energy_mj: float = 0.0


@dataclass(slots=True, frozen=True)
class CoreMetric:
    """Display-ready metrics for one CPU core."""

    core_id: int
    active_pct: int
    freq_mhz: int


@dataclass(slots=True, frozen=True)
class NormalizedMetrics:
    """
    Display-ready metrics derived from one raw sample.

    The ``*_watts`` fields hold the energy spent over one sampling interval in
    joules; divide by the interval length in seconds to get power.
    """

    e_cluster_active_pct: int = 0
    e_cluster_freq_mhz: int = 0
    p_cluster_active_pct: int = 0
    p_cluster_freq_mhz: int = 0
    e_cores: tuple[CoreMetric, ...] = ()
    p_cores: tuple[CoreMetric, ...] = ()
    gpu_active_pct: int = 0
    gpu_freq_mhz: int = 0
    cpu_watts: float = 0.0
    gpu_watts: float = 0.0
    ane_watts: float = 0.0
    package_watts: float = 0.0


@dataclass(slots=True, frozen=True)
class DeviceInfo:
    """Static description of the machine being monitored."""

    name: str = "Apple Silicon"
    efficiency_core_count: int = 0
    performance_core_count: int = 0
    gpu_core_count: int = 0
    cpu_power_ceiling_watts: float = 20.0
    gpu_power_ceiling_watts: float = 20.0
    ane_power_ceiling_watts: float = 8.0  # ~8W typical max for ANE


@dataclass(slots=True, frozen=True)
class MemoryStats:
    """System memory usage in GiB."""

    total_gb: float = 0.0
    used_gb: float = 0.0
    used_percent: int = 0  # 0-100
    swap_total_gb: float = 0.0
    swap_used_gb: float = 0.0

    @property
    def has_swap(self) -> bool:
        return self.swap_total_gb >= 0.1


@dataclass(slots=True, frozen=True)
class IoStats:
    """Network and disk throughput in MiB/s."""

    net_in_mbps: float = 0.0
    net_out_mbps: float = 0.0
    disk_read_mbps: float = 0.0
    disk_write_mbps: float = 0.0


class ThermalLevel(Enum):
    """Thermal warning levels reported by the power management subsystem."""

    NORMAL = "Nominal"
    DANGER = "Danger"
    CRISIS = "Crisis"
    UNKNOWN = "Unknown"


_THERMAL_CODES = {
    0: ThermalLevel.NORMAL,
    5: ThermalLevel.DANGER,
    100: ThermalLevel.DANGER,
    10: ThermalLevel.CRISIS,
    110: ThermalLevel.CRISIS,
}


@dataclass(slots=True, frozen=True)
class ThermalStatus:
    """A thermal warning level together with the raw code it came from."""

    level: ThermalLevel
    code: int

    @classmethod
    def from_code(cls, code: int) -> "ThermalStatus":
        return cls(level=_THERMAL_CODES.get(code, ThermalLevel.UNKNOWN), code=code)

    @property
    def is_throttled(self) -> bool:
        return self.level is not ThermalLevel.NORMAL

    def __str__(self) -> str:
        if self.level is ThermalLevel.UNKNOWN:
            return f"Unknown({self.code})"
        return self.level.value


@dataclass(slots=True, frozen=True)
class PowerFigures:
    """Current, average and peak power for one component, in watts."""

    current: float = 0.0
    average: float = 0.0
    peak: float = 0.0
    percent_of_ceiling: float = 0.0


@dataclass(slots=True, frozen=True)
class DashboardSnapshot:
    """Everything the dashboard needs to draw one frame."""

    device: DeviceInfo
    metrics: NormalizedMetrics
    memory: MemoryStats
    io: IoStats
    thermal_pressure: str
    thermal_throttle: bool
    show_per_core: bool
    palette: int
    ane_percent: int
    ane_watts: float
    cpu_power: PowerFigures
    gpu_power: PowerFigures
    package_power: PowerFigures
    power_history: list[float] = field(default_factory=list)
