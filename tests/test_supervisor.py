"""Tests for the powermetrics process supervisor."""

import subprocess
import sys
import time
from pathlib import Path

import pytest

from pmtop.errors import SamplerStartError
from pmtop.supervisor import (
    ARTIFACT_PREFIX,
    PowermetricsSupervisor,
    artifact_path,
    cleanup_artifacts,
    new_session_token,
    powermetrics_command,
    terminate_process,
)


def sleeper_command(output_path: Path, interval_ms: int) -> list[str]:
    """Stand-in for powermetrics that just stays alive."""
    return [sys.executable, "-c", "import time; time.sleep(60)"]


def stubborn_command(output_path: Path, interval_ms: int) -> list[str]:
    """Stand-in that ignores SIGTERM."""
    return [
        sys.executable,
        "-c",
        "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
        "print('ready', flush=True); time.sleep(60)",
    ]


@pytest.fixture
def supervisor(tmp_path):
    sup = PowermetricsSupervisor(1000, artifact_dir=tmp_path, command_builder=sleeper_command)
    yield sup
    sup.stop()


def test_powermetrics_command():
    """Test the powermetrics invocation uses plist output and the interval in ms."""
    command = powermetrics_command(Path("/tmp/pmtop_powermetrics42"), 2000)

    assert command[:5] == ["sudo", "nice", "-n", "10", "powermetrics"]
    assert command[command.index("--samplers") + 1] == "cpu_power,gpu_power,thermal"
    assert command[command.index("-o") + 1] == "/tmp/pmtop_powermetrics42"
    assert command[command.index("-f") + 1] == "plist"
    assert command[command.index("-i") + 1] == "2000"


def test_artifact_path_is_unique_per_token(tmp_path):
    """Test each session token gets its own output file."""
    first = artifact_path("1", tmp_path)
    second = artifact_path("2", tmp_path)

    assert first != second
    assert first.name.startswith(ARTIFACT_PREFIX)


def test_new_session_token_changes():
    """Test consecutive tokens differ."""
    tokens = {new_session_token() for _ in range(5)}
    assert len(tokens) > 1


def test_cleanup_artifacts(tmp_path):
    """Test only files matching the artifact prefix are removed."""
    artifact_path("1", tmp_path).write_bytes(b"old")
    artifact_path("2", tmp_path).write_bytes(b"older")
    keep = tmp_path / "unrelated.txt"
    keep.write_text("keep me")

    assert cleanup_artifacts(tmp_path) == 2
    assert keep.exists()
    assert not artifact_path("1", tmp_path).exists()


def test_cleanup_missing_directory(tmp_path):
    """Test cleanup of a directory that does not exist is a no-op."""
    assert cleanup_artifacts(tmp_path / "missing") == 0


class TestPowermetricsSupervisor:
    """Tests for PowermetricsSupervisor."""

    def test_start_and_stop(self, supervisor):
        """Test the child runs after start and is reaped after stop."""
        process = supervisor.start("1")
        assert supervisor.is_running
        assert supervisor.session_token == "1"

        supervisor.stop()
        assert not supervisor.is_running
        assert process.returncode is not None

    def test_stop_is_idempotent(self, supervisor):
        """Test stop can be called repeatedly, before and after start."""
        supervisor.stop()
        supervisor.start("1")
        supervisor.stop()
        supervisor.stop()

        assert supervisor.process is None

    def test_restart_replaces_child(self, supervisor):
        """Test restart kills the old child before spawning a new one."""
        old = supervisor.start("1")
        new = supervisor.restart("2")

        assert old.returncode is not None
        assert new is supervisor.process
        assert new.pid != old.pid
        assert supervisor.session_token == "2"

    def test_start_removes_stale_artifacts(self, tmp_path, supervisor):
        """Test files from earlier sessions are removed before spawning."""
        stale = artifact_path("0", tmp_path)
        stale.write_bytes(b"stale")

        supervisor.start("1")

        assert not stale.exists()

    def test_context_manager_stops_on_error(self, tmp_path):
        """Test the child is reaped when the with-block raises."""
        with pytest.raises(RuntimeError):
            with PowermetricsSupervisor(
                1000, artifact_dir=tmp_path, command_builder=sleeper_command
            ) as sup:
                process = sup.start("1")
                raise RuntimeError("boom")

        assert process.returncode is not None
        assert sup.process is None

    def test_child_that_already_exited(self, supervisor):
        """Test stopping a child that died on its own does not raise."""
        process = supervisor.start("1")
        process.kill()
        process.wait()

        supervisor.stop()
        assert supervisor.process is None

    def test_missing_binary(self, tmp_path):
        """Test a missing executable is reported as SamplerStartError."""
        sup = PowermetricsSupervisor(
            1000,
            artifact_dir=tmp_path,
            command_builder=lambda path, interval: ["/nonexistent/powermetrics"],
        )

        with pytest.raises(SamplerStartError):
            sup.start("1")
        assert sup.process is None


def test_terminate_process_escalates_to_kill(monkeypatch):
    """Test a child ignoring SIGTERM is killed after the timeout."""
    monkeypatch.setattr("pmtop.supervisor.TERMINATE_TIMEOUT", 0.2)
    process = subprocess.Popen(
        stubborn_command(Path("unused"), 1000), stdout=subprocess.PIPE, text=True
    )
    try:
        assert process.stdout.readline().strip() == "ready"
        started = time.monotonic()
        terminate_process(process)
        elapsed = time.monotonic() - started

        assert process.returncode is not None
        # The caller is blocked for at most the timeout plus the kill
        assert elapsed < 0.2 + 1.0
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()
        process.stdout.close()
