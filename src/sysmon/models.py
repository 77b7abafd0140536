"""Data models for sysmon."""

from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum


@dataclass(slots=True, frozen=True)
class CpuCounters:
    """Cumulative system-wide CPU tick buckets since boot."""

    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0
    guest: int = 0
    guest_nice: int = 0

    @classmethod
    def zero(cls) -> "CpuCounters":
        """Return the all-zero counters used when the source is unreadable."""
        return cls()

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        """Bucket names in /proc/stat order."""
        return tuple(f.name for f in fields(cls))

    def total(self) -> int:
        """Sum of all buckets."""
        return (
            self.user
            + self.nice
            + self.system
            + self.idle
            + self.iowait
            + self.irq
            + self.softirq
            + self.steal
            + self.guest
            + self.guest_nice
        )

    def idle_all(self) -> int:
        """Ticks spent idle, including waiting on I/O."""
        return self.idle + self.iowait


@dataclass(slots=True, frozen=True)
class MemoryInfo:
    """System memory figures in kilobytes."""

    total_kb: int = 0
    free_kb: int = 0
    available_kb: int = 0

    def used_kb(self, total_kb: int | None = None) -> int:
        """
        Memory in use against a given total.

        Args:
            total_kb: Denominator to measure against. Defaults to this record's total.
        """
        total = self.total_kb if total_kb is None else total_kb
        # MemAvailable is missing on kernels older than 3.14
        available = self.available_kb or self.free_kb
        return max(total - available, 0)


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Raw counters for one process at one instant."""

    pid: int
    user: str
    command: str
    utime: int  # Ticks in user mode
    stime: int  # Ticks in kernel mode
    rss_kb: int
    start_time: int = 0  # Ticks after boot, 0 if unknown

    @property
    def total_time(self) -> int:
        """CPU ticks consumed by the process in both modes."""
        return self.utime + self.stime


@dataclass(slots=True, frozen=True)
class Snapshot:
    """
    Immutable point-in-time capture of system and process counters.

    ``processes`` is a read-only mapping keyed by pid, ordered by pid.
    """

    cpu: CpuCounters
    processes: Mapping[int, ProcessRecord]
    memory: MemoryInfo
    timestamp: float  # time.monotonic() at capture


@dataclass(slots=True, frozen=True)
class ProcessView:
    """A process record with its percentages derived against the previous snapshot."""

    record: ProcessRecord
    cpu_percent: float  # 0.0 - 100.0
    mem_percent: float  # 0.0 - 100.0

    @property
    def pid(self) -> int:
        return self.record.pid

    @property
    def user(self) -> str:
        return self.record.user

    @property
    def command(self) -> str:
        return self.record.command

    @property
    def rss_kb(self) -> int:
        return self.record.rss_kb


@dataclass(slots=True, frozen=True)
class TickResult:
    """Everything one sampling tick produces for the presentation layer."""

    snapshot: Snapshot
    cpu_percent: float
    memory_used_kb: int
    memory_total_kb: int
    processes: tuple[ProcessView, ...]


class SortMode(Enum):
    """Primary sort key for the process table."""

    CPU = "cpu"
    MEM = "mem"

    def toggled(self) -> "SortMode":
        """Return the other sort mode."""
        return SortMode.MEM if self is SortMode.CPU else SortMode.CPU
