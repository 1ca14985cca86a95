"""Telemetry monitoring engine for pmtop."""

import logging
import time
from collections.abc import Callable
from pathlib import Path

from pmtop.errors import ArtifactReadError, FirstSampleTimeout
from pmtop.extractor import FrameExtractor
from pmtop.models import (
    DashboardSnapshot,
    DeviceInfo,
    IoStats,
    MemoryStats,
    SamplingConfig,
    ThermalStatus,
)
from pmtop.probes import IoSampler, read_memory_stats, read_thermal_level
from pmtop.session import SessionState
from pmtop.supervisor import DEFAULT_ARTIFACT_DIR, PowermetricsSupervisor, cleanup_artifacts

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
FIRST_SAMPLE_TIMEOUT = 30.0
WAIT_LOG_INTERVAL = 5.0


class TelemetryMonitor:
    """
    Drives powermetrics sampling from a single control thread.

    Owns the supervisor, the frame extractor and the session state. Call
    ``start()`` once, then ``tick()`` on a fixed cadence; ``snapshot()``
    returns what the dashboard should draw. Use as a context manager so the
    powermetrics process is always stopped.
    """

    def __init__(
        self,
        config: SamplingConfig,
        device: DeviceInfo,
        artifact_dir: str | Path = DEFAULT_ARTIFACT_DIR,
        supervisor: PowermetricsSupervisor | None = None,
        extractor: FrameExtractor | None = None,
        memory_reader: Callable[[], MemoryStats] = read_memory_stats,
        io_sampler: IoSampler | None = None,
        thermal_reader: Callable[[], ThermalStatus | None] = read_thermal_level,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._artifact_dir = Path(artifact_dir)
        self._supervisor = supervisor or PowermetricsSupervisor(
            config.interval_ms, artifact_dir=self._artifact_dir
        )
        self._extractor = extractor or FrameExtractor(self._artifact_dir)
        self._memory_reader = memory_reader
        self._io_sampler = io_sampler or IoSampler()
        self._thermal_reader = thermal_reader
        self._clock = clock
        self._sleep = sleep

        self.session = SessionState(config, device, on_restart=self._supervisor.restart)
        self.memory = MemoryStats()
        self.io = IoStats()
        self.thermal: ThermalStatus | None = None

    @property
    def config(self) -> SamplingConfig:
        return self._config

    @property
    def supervisor(self) -> PowermetricsSupervisor:
        return self._supervisor

    def start(
        self,
        timeout: float = FIRST_SAMPLE_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        """
        Start powermetrics and block until the first sample arrives.

        Raises:
            SamplerStartError: powermetrics could not be spawned.
            FirstSampleTimeout: No sample arrived within ``timeout`` seconds.
        """
        cleanup_artifacts(self._artifact_dir)
        self._supervisor.start(self.session.session_token)

        started = self._clock()
        next_log = started + WAIT_LOG_INTERVAL
        while not self.tick():
            now = self._clock()
            if now - started >= timeout:
                raise FirstSampleTimeout(
                    f"Timeout waiting for powermetrics data ({timeout:.0f}s)"
                )
            if now >= next_log:
                logger.info("Still waiting for powermetrics data... (%.0f seconds)", now - started)
                next_log += WAIT_LOG_INTERVAL
            self._sleep(poll_interval)

    def tick(self) -> bool:
        """
        Poll the output file once.

        Returns True when a new sample was accepted and the dashboard should
        redraw. Read failures are logged and treated as an empty poll.
        """
        try:
            sample = self._extractor.poll(self.session.session_token)
        except ArtifactReadError as exc:
            logger.warning("%s", exc)
            return False

        if sample is None or not self.session.ingest(sample):
            return False

        self.memory = self._memory_reader()
        self.io = self._io_sampler.sample()
        self.thermal = self._thermal_reader()
        return True

    def snapshot(self) -> DashboardSnapshot:
        return self.session.snapshot(memory=self.memory, io=self.io, thermal=self.thermal)

    def stop(self) -> None:
        """Stop powermetrics and remove its output files."""
        self._supervisor.stop()
        cleanup_artifacts(self._artifact_dir)

    def __enter__(self) -> "TelemetryMonitor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
