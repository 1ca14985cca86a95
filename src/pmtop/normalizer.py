"""Conversion of raw powermetrics samples into display-ready metrics."""

import math
from collections.abc import Sequence

from pmtop.models import CoreMetric, NormalizedMetrics, RawCluster, RawSample

# Frequencies at or above this are reported in Hz, below it in MHz.
HZ_THRESHOLD = 100_000


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def active_percent(idle_ratio: float) -> int:
    """
    Convert an idle ratio to an active percentage in [0, 100].

    powermetrics usually reports ratios in [0, 1], but some counters come
    through already scaled to 0-100; those are divided down first.
    """
    if not math.isfinite(idle_ratio):
        return 0
    ratio = idle_ratio / 100 if idle_ratio > 1 else idle_ratio
    ratio = min(max(ratio, 0.0), 1.0)
    return _round_half_up((1 - ratio) * 100)


def normalize_frequency(value: float) -> int:
    """Return a frequency in MHz, converting from Hz when it looks like Hz."""
    if not math.isfinite(value) or value <= 0:
        return 0
    if value >= HZ_THRESHOLD:
        return _round_half_up(value / 1_000_000)
    return _round_half_up(value)


def _cluster_class(name: str) -> str | None:
    initial = name[:1].upper()
    return initial if initial in ("E", "P") else None


def _cluster_stats(
    clusters: Sequence[tuple[str, int, int]], prefix: str
) -> tuple[int | None, int | None]:
    """
    Cluster-level active% and frequency for one class.

    Each value is None when the clusters do not supply a nonzero figure, so
    the caller can fall back to per-core data for that value alone.
    """
    primary_name = f"{prefix}-Cluster"
    for name, active, freq in clusters:
        if name == primary_name:
            return (active or None, freq or None)

    matching = [(active, freq) for name, active, freq in clusters if name.startswith(prefix)]
    if not matching:
        return None, None

    active_sum = sum(active for active, _ in matching)
    freq_max = max(freq for _, freq in matching)
    return (active_sum // len(matching) or None, freq_max or None)


def _core_average(cores: Sequence[CoreMetric]) -> int:
    if not cores:
        return 0
    return sum(core.active_pct for core in cores) // len(cores)


def _core_max_freq(cores: Sequence[CoreMetric]) -> int:
    return max((core.freq_mhz for core in cores), default=0)


def aggregate_cluster(
    clusters: Sequence[tuple[str, int, int]],
    cores: Sequence[CoreMetric],
    prefix: str,
) -> tuple[int, int]:
    """
    Aggregate active% and MHz for the E or P class.

    Priority: the ``"{prefix}-Cluster"`` rollup, then all clusters of the
    class, then the class's cores. Active% and frequency fall back
    independently of each other.
    """
    cluster_active, cluster_freq = _cluster_stats(clusters, prefix)
    active = cluster_active if cluster_active is not None else _core_average(cores)
    freq = cluster_freq if cluster_freq is not None else _core_max_freq(cores)
    return active, freq


def _core_metrics(cluster: RawCluster) -> list[CoreMetric]:
    return [
        CoreMetric(
            core_id=core.core_id,
            active_pct=active_percent(core.idle_ratio),
            freq_mhz=normalize_frequency(core.frequency_hz),
        )
        for core in cluster.cores
    ]


def normalize(sample: RawSample) -> NormalizedMetrics:
    """Convert one raw sample into ``NormalizedMetrics``."""
    e_clusters: list[tuple[str, int, int]] = []
    p_clusters: list[tuple[str, int, int]] = []
    e_cores: list[CoreMetric] = []
    p_cores: list[CoreMetric] = []

    for cluster in sample.clusters:
        kind = _cluster_class(cluster.name)
        # Classification ignores case; rollup lookup matches the raw name
        summary = (
            cluster.name,
            active_percent(cluster.idle_ratio),
            normalize_frequency(cluster.frequency_hz),
        )
        if kind == "E":
            e_clusters.append(summary)
            e_cores.extend(_core_metrics(cluster))
        else:
            if kind == "P":
                p_clusters.append(summary)
            p_cores.extend(_core_metrics(cluster))

    e_active, e_freq = aggregate_cluster(e_clusters, e_cores, "E")
    p_active, p_freq = aggregate_cluster(p_clusters, p_cores, "P")

    return NormalizedMetrics(
        e_cluster_active_pct=e_active,
        e_cluster_freq_mhz=e_freq,
        p_cluster_active_pct=p_active,
        p_cluster_freq_mhz=p_freq,
        e_cores=tuple(e_cores),
        p_cores=tuple(p_cores),
        gpu_active_pct=active_percent(sample.gpu.idle_ratio),
        gpu_freq_mhz=normalize_frequency(sample.gpu.frequency_hz),
        cpu_watts=sample.cpu_energy_mj / 1000,
        gpu_watts=sample.gpu_energy_mj / 1000,
        ane_watts=sample.ane_energy_mj / 1000,
        package_watts=sample.combined_energy_mj / 1000,
    )
