"""
Platform queries for memory, I/O, thermal state and device identity.

Every query here is best-effort: failures are logged at debug level and a
zeroed or default value is returned so the dashboard keeps running.
"""

import ctypes
import ctypes.util
import logging
import subprocess
import sys
import time
from collections.abc import Callable

import psutil

from pmtop.models import DeviceInfo, IoStats, MemoryStats, ThermalStatus

logger = logging.getLogger(__name__)

GIB = 1024**3
MIB = 1024**2

# I/O rates computed over shorter windows are mostly noise.
MIN_IO_SAMPLE_INTERVAL = 0.5

SUBPROCESS_TIMEOUT = 10.0

# Power ceilings (CPU W, GPU W) by chip name suffix.
POWER_CEILINGS = {
    "Pro": (40.0, 40.0),
    "Max": (90.0, 90.0),
    "Ultra": (140.0, 140.0),
}
DEFAULT_POWER_CEILING = (20.0, 20.0)


def read_memory_stats() -> MemoryStats:
    """Return RAM and swap usage, or zeroed stats if psutil fails."""
    try:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
    except (OSError, RuntimeError, psutil.Error) as exc:
        logger.debug("Memory query failed: %s", exc)
        return MemoryStats()

    total = mem.total
    used = max(total - mem.available, 0)
    used_percent = int(min(max(used / total * 100, 0.0), 100.0)) if total > 0 else 0

    return MemoryStats(
        total_gb=total / GIB,
        used_gb=used / GIB,
        used_percent=used_percent,
        swap_total_gb=swap.total / GIB,
        swap_used_gb=swap.used / GIB,
    )


def _rate(current: int, previous: int, elapsed: float) -> float:
    if current <= previous or elapsed <= 0:
        return 0.0
    return (current - previous) / elapsed / MIB


def _network_totals() -> tuple[int, int] | None:
    try:
        counters = psutil.net_io_counters(pernic=True)
    except (OSError, RuntimeError, psutil.Error) as exc:
        logger.debug("Network counter query failed: %s", exc)
        return None
    total_in = 0
    total_out = 0
    for name, nic in counters.items():
        if name.startswith("lo"):
            continue
        total_in += nic.bytes_recv
        total_out += nic.bytes_sent
    return total_in, total_out


def _disk_totals() -> tuple[int, int] | None:
    try:
        counters = psutil.disk_io_counters()
    except (OSError, RuntimeError, psutil.Error) as exc:
        logger.debug("Disk counter query failed: %s", exc)
        return None
    if counters is None:
        return None
    return counters.read_bytes, counters.write_bytes


class IoSampler:
    """
    Network and disk throughput computed from counter deltas.

    Calls closer together than ``min_interval`` return the previous result.
    The first call only primes the counters and reports zeros.
    """

    def __init__(
        self,
        min_interval: float = MIN_IO_SAMPLE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        network_reader: Callable[[], tuple[int, int] | None] = _network_totals,
        disk_reader: Callable[[], tuple[int, int] | None] = _disk_totals,
    ) -> None:
        self._min_interval = min_interval
        self._clock = clock
        self._network_reader = network_reader
        self._disk_reader = disk_reader
        self._last_time: float | None = None
        self._last_net: tuple[int, int] | None = None
        self._last_disk: tuple[int, int] | None = None
        self._current = IoStats()

    def sample(self) -> IoStats:
        now = self._clock()
        if self._last_time is not None and now - self._last_time < self._min_interval:
            return self._current

        net = self._network_reader()
        disk = self._disk_reader()

        if self._last_time is None:
            self._last_time = now
            self._last_net = net
            self._last_disk = disk
            return self._current

        elapsed = max(now - self._last_time, 0.001)
        net_in, net_out = self._current.net_in_mbps, self._current.net_out_mbps
        disk_read, disk_write = self._current.disk_read_mbps, self._current.disk_write_mbps

        if net is not None:
            if self._last_net is not None:
                net_in = _rate(net[0], self._last_net[0], elapsed)
                net_out = _rate(net[1], self._last_net[1], elapsed)
            self._last_net = net

        if disk is not None:
            if self._last_disk is not None:
                disk_read = _rate(disk[0], self._last_disk[0], elapsed)
                disk_write = _rate(disk[1], self._last_disk[1], elapsed)
            self._last_disk = disk

        self._last_time = now
        self._current = IoStats(
            net_in_mbps=net_in,
            net_out_mbps=net_out,
            disk_read_mbps=disk_read,
            disk_write_mbps=disk_write,
        )
        return self._current


_iokit: ctypes.CDLL | None = None


def _load_iokit() -> ctypes.CDLL | None:
    global _iokit
    if _iokit is None and sys.platform == "darwin":
        path = ctypes.util.find_library("IOKit")
        if path:
            # Only cache the library once its signature is configured
            iokit = ctypes.CDLL(path)
            iokit.IOPMGetThermalWarningLevel.argtypes = [ctypes.POINTER(ctypes.c_uint32)]
            iokit.IOPMGetThermalWarningLevel.restype = ctypes.c_int32
            _iokit = iokit
    return _iokit


def read_thermal_level() -> ThermalStatus | None:
    """Thermal warning level from IOKit, or None when unavailable."""
    try:
        iokit = _load_iokit()
    except (OSError, AttributeError) as exc:
        logger.debug("IOKit unavailable: %s", exc)
        return None
    if iokit is None:
        return None

    level = ctypes.c_uint32(0)
    try:
        status = iokit.IOPMGetThermalWarningLevel(ctypes.byref(level))
    except (OSError, AttributeError, ctypes.ArgumentError) as exc:
        logger.debug("Thermal level query failed: %s", exc)
        return None
    if status != 0:
        return None
    return ThermalStatus.from_code(level.value)


def _run(args: list[str]) -> str | None:
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=SUBPROCESS_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("%s failed: %s", args[0], exc)
        return None
    if result.returncode != 0:
        return None
    return result.stdout


def read_sysctl(key: str) -> str | None:
    output = _run(["/usr/sbin/sysctl", "-n", key])
    if output is None:
        return None
    value = output.strip()
    return value or None


def parse_gpu_core_count(profiler_output: str) -> int | None:
    """Extract "Total Number of Cores" from ``system_profiler`` output."""
    for line in profiler_output.splitlines():
        line = line.strip()
        if line.startswith("Total Number of Cores:"):
            try:
                return int(line.split(":", 1)[1].strip())
            except ValueError:
                continue
    return None


def power_ceilings(chip_name: str) -> tuple[float, float]:
    """Rough CPU and GPU power ceilings for a chip, keyed on its name suffix."""
    name = chip_name.strip()
    for suffix, ceilings in POWER_CEILINGS.items():
        if name.endswith(suffix):
            return ceilings
    return DEFAULT_POWER_CEILING


def _int_or_zero(value: str | None) -> int:
    try:
        return int(value) if value is not None else 0
    except ValueError:
        return 0


def detect_device_info() -> DeviceInfo:
    """Identify the chip, its core counts and its power ceilings."""
    name = (read_sysctl("machdep.cpu.brand_string") or "Apple Silicon").strip()
    profiler = _run(["/usr/sbin/system_profiler", "-detailLevel", "basic", "SPDisplaysDataType"])
    gpu_cores = parse_gpu_core_count(profiler) if profiler else None
    cpu_ceiling, gpu_ceiling = power_ceilings(name)

    return DeviceInfo(
        name=name,
        efficiency_core_count=_int_or_zero(read_sysctl("hw.perflevel1.logicalcpu")),
        performance_core_count=_int_or_zero(read_sysctl("hw.perflevel0.logicalcpu")),
        gpu_core_count=gpu_cores or 0,
        cpu_power_ceiling_watts=cpu_ceiling,
        gpu_power_ceiling_watts=gpu_ceiling,
    )
