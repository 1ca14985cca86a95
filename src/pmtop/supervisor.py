"""Lifecycle management for the powermetrics child process."""

import logging
import subprocess
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from pmtop.errors import SamplerStartError

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACT_DIR = Path("/tmp")
ARTIFACT_PREFIX = "pmtop_powermetrics"

SAMPLERS = "cpu_power,gpu_power,thermal"

# How long to wait for powermetrics to exit after SIGTERM before SIGKILL.
# Restarts run on the UI thread, so a stubborn process stalls redraws this long.
TERMINATE_TIMEOUT = 2.0

CommandBuilder = Callable[[Path, int], Sequence[str]]


def new_session_token() -> str:
    """Return a fresh token naming one run of powermetrics."""
    return str(time.time_ns())


def artifact_path(session_token: str, artifact_dir: str | Path = DEFAULT_ARTIFACT_DIR) -> Path:
    """Output file used by the powermetrics run identified by ``session_token``."""
    return Path(artifact_dir) / f"{ARTIFACT_PREFIX}{session_token}"


def cleanup_artifacts(artifact_dir: str | Path = DEFAULT_ARTIFACT_DIR) -> int:
    """
    Remove output files left behind by earlier runs.

    Returns the number of files removed. Files that cannot be removed are
    skipped.
    """
    removed = 0
    try:
        entries = list(Path(artifact_dir).iterdir())
    except OSError as exc:
        logger.debug("Cannot list %s: %s", artifact_dir, exc)
        return 0

    for entry in entries:
        if not entry.name.startswith(ARTIFACT_PREFIX):
            continue
        try:
            entry.unlink()
            removed += 1
        except OSError as exc:
            logger.debug("Cannot remove %s: %s", entry, exc)
    return removed


def powermetrics_command(output_path: Path, interval_ms: int) -> list[str]:
    """Command line that starts powermetrics writing plist records to ``output_path``."""
    return [
        "sudo",
        "nice",
        "-n",
        "10",
        "powermetrics",
        "--samplers",
        SAMPLERS,
        "-o",
        str(output_path),
        "-f",
        "plist",
        "-i",
        str(interval_ms),
    ]


def terminate_process(process: subprocess.Popen) -> None:
    """
    Stop ``process`` and reap it.

    Sends SIGTERM first so sudo can forward it to powermetrics, then SIGKILL
    if the process is still alive after ``TERMINATE_TIMEOUT``. Never raises.
    """
    try:
        process.terminate()
        process.wait(timeout=TERMINATE_TIMEOUT)
        return
    except subprocess.TimeoutExpired:
        logger.debug("pid %d ignored SIGTERM, killing", process.pid)
    except OSError as exc:
        logger.debug("Failed to terminate pid %d: %s", process.pid, exc)

    try:
        process.kill()
        process.wait()
    except OSError as exc:
        logger.debug("Failed to kill pid %d: %s", process.pid, exc)


class PowermetricsSupervisor:
    """
    Owns the single running powermetrics process.

    Use as a context manager so the child is terminated and reaped on every
    exit path, including exceptions and KeyboardInterrupt.
    """

    def __init__(
        self,
        interval_ms: int,
        artifact_dir: str | Path = DEFAULT_ARTIFACT_DIR,
        command_builder: CommandBuilder = powermetrics_command,
    ) -> None:
        self._interval_ms = interval_ms
        self._artifact_dir = Path(artifact_dir)
        self._command_builder = command_builder
        self._process: subprocess.Popen | None = None
        self._session_token: str | None = None

    @property
    def process(self) -> subprocess.Popen | None:
        return self._process

    @property
    def session_token(self) -> str | None:
        return self._session_token

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self, session_token: str) -> subprocess.Popen:
        """
        Spawn powermetrics writing to the artifact for ``session_token``.

        Any process already owned by this supervisor is stopped first.

        Raises:
            SamplerStartError: The process could not be spawned.
        """
        self.stop()
        cleanup_artifacts(self._artifact_dir)
        path = artifact_path(session_token, self._artifact_dir)
        command = list(self._command_builder(path, self._interval_ms))

        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError as exc:
            raise SamplerStartError(
                f"Failed to start powermetrics: {command[0]!r} was not found. "
                "pmtop requires macOS with powermetrics available."
            ) from exc
        except PermissionError as exc:
            raise SamplerStartError(
                "Failed to start powermetrics due to missing privileges. "
                "Run `sudo pmtop` and try again."
            ) from exc
        except OSError as exc:
            raise SamplerStartError(f"Failed to start powermetrics: {exc}") from exc

        logger.info("Started powermetrics (pid %d) writing to %s", process.pid, path)
        self._process = process
        self._session_token = session_token
        return process

    def restart(self, session_token: str) -> subprocess.Popen:
        """Replace the running process with one writing to a fresh artifact."""
        logger.info("Restarting powermetrics for session %s", session_token)
        return self.start(session_token)

    def stop(self) -> None:
        """Terminate and reap the owned process. Safe to call repeatedly."""
        process, self._process = self._process, None
        if process is None:
            return
        terminate_process(process)
        logger.info("Stopped powermetrics (pid %d)", process.pid)

    def __enter__(self) -> "PowermetricsSupervisor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
