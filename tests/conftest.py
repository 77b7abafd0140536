"""Shared fixtures for sysmon tests."""

from pathlib import Path

import pytest

from fakes import FakeSource, make_record
from sysmon.models import CpuCounters, MemoryInfo


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """A fake procfs tree with system-wide files and no processes."""
    (tmp_path / "stat").write_text(
        "cpu  4705 150 1994 136239 234 0 45 0 0 0\n"
        "cpu0 2352 75 997 68119 117 0 22 0 0 0\n"
        "intr 1234\n"
    )
    (tmp_path / "meminfo").write_text(
        "MemTotal:       16303208 kB\n"
        "MemFree:         1234567 kB\n"
        "MemAvailable:    8000000 kB\n"
        "Buffers:          100000 kB\n"
    )
    return tmp_path


@pytest.fixture
def fake_source() -> FakeSource:
    """A fake source with three processes and 1000 kB of memory."""
    return FakeSource(
        cpu=CpuCounters(user=100, idle=900),
        memory=MemoryInfo(total_kb=1000, free_kb=400, available_kb=600),
        processes={
            10: make_record(10, utime=10, rss_kb=100),
            20: make_record(20, utime=20, rss_kb=300),
            30: make_record(30, utime=30, rss_kb=50),
        },
    )
