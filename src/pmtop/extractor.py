"""Extraction of the latest complete sample from the powermetrics output file."""

import logging
import os
import plistlib
from datetime import datetime
from pathlib import Path
from typing import Any
from xml.parsers.expat import ExpatError

from pmtop.errors import ArtifactReadError, RecordDecodeError
from pmtop.models import RawCluster, RawCore, RawGpu, RawSample
from pmtop.supervisor import DEFAULT_ARTIFACT_DIR, artifact_path

logger = logging.getLogger(__name__)

# One sample is a few tens of KiB; 1 MiB from EOF always holds the latest one.
MAX_READ_BYTES = 1024 * 1024

RECORD_SEPARATOR = b"\0"


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    return float(value)


def _raw_core(data: dict[str, Any]) -> RawCore:
    return RawCore(
        core_id=int(data["cpu"]),
        frequency_hz=_number(data["freq_hz"]),
        idle_ratio=_number(data["idle_ratio"]),
    )


def _raw_cluster(data: dict[str, Any]) -> RawCluster:
    name = data["name"]
    if not isinstance(name, str):
        raise TypeError("cluster name must be a string")
    return RawCluster(
        name=name,
        frequency_hz=_number(data["freq_hz"]),
        idle_ratio=_number(data["idle_ratio"]),
        cores=tuple(_raw_core(core) for core in data.get("cpus", [])),
    )


def sample_from_plist(data: dict[str, Any]) -> RawSample:
    """Build a ``RawSample`` from a decoded plist dictionary."""
    timestamp = data["timestamp"]
    if not isinstance(timestamp, datetime):
        raise TypeError("timestamp must be a date")
    processor = data["processor"]
    gpu = data["gpu"]
    return RawSample(
        timestamp=timestamp,
        thermal_pressure=str(data["thermal_pressure"]),
        clusters=tuple(_raw_cluster(cluster) for cluster in processor["clusters"]),
        gpu=RawGpu(
            frequency_hz=_number(gpu["freq_hz"]),
            idle_ratio=_number(gpu["idle_ratio"]),
        ),
        cpu_energy_mj=_number(processor.get("cpu_energy", 0.0)),
        gpu_energy_mj=_number(processor.get("gpu_energy", 0.0)),
        ane_energy_mj=_number(processor.get("ane_energy", 0.0)),
        combined_energy_mj=_number(processor.get("combined_power", 0.0)),
    )


def parse_record(fragment: bytes) -> RawSample:
    """
    Decode one NUL-delimited fragment into a ``RawSample``.

    Raises:
        RecordDecodeError: The fragment is truncated, malformed or missing
            required fields.
    """
    try:
        data = plistlib.loads(fragment)
        if not isinstance(data, dict):
            raise TypeError("top-level plist object must be a dictionary")
        return sample_from_plist(data)
    except (plistlib.InvalidFileException, ExpatError, ValueError,
            TypeError, KeyError, AttributeError) as exc:
        raise RecordDecodeError(str(exc)) from exc


def latest_record(data: bytes) -> RawSample | None:
    """
    Return the most recent fragment of ``data`` that decodes, or None.

    The trailing fragment may still be being written, so fragments are tried
    from the end backwards and the first one that decodes wins.
    """
    fragments = [chunk.strip() for chunk in data.split(RECORD_SEPARATOR)]
    for fragment in reversed(fragments):
        if not fragment:
            continue
        try:
            return parse_record(fragment)
        except RecordDecodeError as exc:
            logger.debug("Skipping undecodable fragment (%d bytes): %s", len(fragment), exc)
    return None


class FrameExtractor:
    """
    Polls the powermetrics output file for the newest complete sample.

    Only the tail of the file is read because powermetrics keeps appending to
    it for as long as it runs. Repeated polls may return the same sample;
    callers dedupe by timestamp.
    """

    def __init__(
        self,
        artifact_dir: str | Path = DEFAULT_ARTIFACT_DIR,
        max_read_bytes: int = MAX_READ_BYTES,
    ) -> None:
        self._artifact_dir = Path(artifact_dir)
        self._max_read_bytes = max_read_bytes

    def path_for(self, session_token: str) -> Path:
        return artifact_path(session_token, self._artifact_dir)

    def read_tail(self, path: Path) -> bytes:
        """
        Read up to ``max_read_bytes`` from the end of ``path``.

        Returns empty bytes when the file does not exist yet.

        Raises:
            ArtifactReadError: The file exists but could not be read.
        """
        try:
            with open(path, "rb") as handle:
                size = os.fstat(handle.fileno()).st_size
                if size == 0:
                    return b""
                handle.seek(max(0, size - self._max_read_bytes))
                return handle.read(self._max_read_bytes)
        except FileNotFoundError:
            return b""
        except OSError as exc:
            raise ArtifactReadError(f"failed to read {path}: {exc}") from exc

    def poll(self, session_token: str) -> RawSample | None:
        """Return the latest complete sample for ``session_token``, if any."""
        data = self.read_tail(self.path_for(session_token))
        if not data:
            return None
        return latest_record(data)
