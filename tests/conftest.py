"""Shared fixtures for pmtop tests."""

import plistlib
from datetime import datetime, timedelta

import pytest

from pmtop.models import RawCluster, RawCore, RawGpu, RawSample

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def _plist_record(offset: int = 0, **overrides) -> dict:
    record = {
        "timestamp": BASE_TIME + timedelta(seconds=offset),
        "thermal_pressure": "Nominal",
        "processor": {
            "clusters": [
                {
                    "name": "E-Cluster",
                    "freq_hz": 1_020_000_000.0,
                    "idle_ratio": 0.75,
                    "cpus": [
                        {"cpu": 0, "freq_hz": 1_020_000_000.0, "idle_ratio": 0.7},
                        {"cpu": 1, "freq_hz": 972_000_000.0, "idle_ratio": 0.8},
                    ],
                },
                {
                    "name": "P-Cluster",
                    "freq_hz": 3_204_000_000.0,
                    "idle_ratio": 0.4,
                    "cpus": [
                        {"cpu": 2, "freq_hz": 3_204_000_000.0, "idle_ratio": 0.3},
                        {"cpu": 3, "freq_hz": 3_000_000_000.0, "idle_ratio": 0.5},
                    ],
                },
            ],
            "cpu_energy": 4200.0,
            "gpu_energy": 1500.0,
            "ane_energy": 0.0,
            "combined_power": 5700.0,
        },
        "gpu": {"freq_hz": 1_296_000_000.0, "idle_ratio": 0.9},
    }
    record.update(overrides)
    return record


@pytest.fixture
def plist_record():
    """Factory for decoded powermetrics plist dictionaries."""
    return _plist_record


@pytest.fixture
def encode_record():
    """Factory for XML plist bytes of a powermetrics record."""

    def encode(offset: int = 0, **overrides) -> bytes:
        return plistlib.dumps(_plist_record(offset, **overrides))

    return encode


@pytest.fixture
def raw_sample():
    """Factory for ``RawSample`` objects with a timestamp offset in seconds."""

    def make(offset: int = 0, cpu_energy_mj: float = 4000.0, gpu_energy_mj: float = 1000.0,
             combined_energy_mj: float = 5000.0, thermal_pressure: str = "Nominal") -> RawSample:
        return RawSample(
            timestamp=BASE_TIME + timedelta(seconds=offset),
            thermal_pressure=thermal_pressure,
            clusters=(
                RawCluster(
                    name="E-Cluster",
                    frequency_hz=1_000_000_000.0,
                    idle_ratio=0.5,
                    cores=(RawCore(core_id=0, frequency_hz=1_000_000_000.0, idle_ratio=0.5),),
                ),
            ),
            gpu=RawGpu(frequency_hz=1_296_000_000.0, idle_ratio=0.9),
            cpu_energy_mj=cpu_energy_mj,
            gpu_energy_mj=gpu_energy_mj,
            combined_energy_mj=combined_energy_mj,
        )

    return make
