"""
Counter sources: raw CPU, memory and per-process counters from the OS.

Every read is stateless and never raises for conditions that are normal on a
live system (a process exiting mid-read, an unreadable file). Callers get
zeros or ``None`` instead.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import psutil

from sysmon.config import Settings
from sysmon.models import CpuCounters, MemoryInfo, ProcessRecord

logger = logging.getLogger(__name__)

# Fields of /proc/<pid>/stat, 1-based as documented in proc(5)
STAT_UTIME = 14
STAT_STIME = 15
STAT_STARTTIME = 22
STAT_RSS = 24


class CounterSource(Protocol):
    """Where snapshots get their raw numbers from."""

    def read_cpu_counters(self) -> CpuCounters: ...

    def read_memory(self) -> MemoryInfo: ...

    def list_pids(self) -> set[int]: ...

    def read_process(self, pid: int) -> ProcessRecord | None: ...


@lru_cache(maxsize=1024)
def resolve_user_name(uid: int) -> str:
    """Map a numeric uid to a login name, falling back to the number itself."""
    try:
        import pwd

        return pwd.getpwuid(uid).pw_name
    except (ImportError, KeyError, OverflowError):
        return str(uid)


def _to_int(token: str) -> int:
    try:
        return max(int(token), 0)
    except ValueError:
        return 0


def _sysconf(name: str, default: int) -> int:
    try:
        value = os.sysconf(name)
    except (AttributeError, ValueError, OSError):
        return default
    return value if value > 0 else default


def clock_ticks() -> int:
    """Kernel clock ticks per second (USER_HZ)."""
    return _sysconf("SC_CLK_TCK", 100)


def page_size_kb() -> int:
    """Size of a memory page in kilobytes."""
    return max(_sysconf("SC_PAGE_SIZE", 4096) // 1024, 1)


def parse_cpu_line(line: str) -> CpuCounters:
    """
    Parse the aggregate ``cpu`` line of /proc/stat.

    Missing or malformed buckets are 0.
    """
    tokens = line.split()[1:]
    count = len(CpuCounters.field_names())
    values = [_to_int(token) for token in tokens[:count]]
    values.extend([0] * (count - len(values)))
    return CpuCounters(*values)


def parse_meminfo(content: str) -> MemoryInfo:
    """Pull MemTotal, MemFree and MemAvailable (kB) out of /proc/meminfo."""
    wanted = {"MemTotal": 0, "MemFree": 0, "MemAvailable": 0}
    for line in content.splitlines():
        label, _, rest = line.partition(":")
        if label in wanted:
            parts = rest.split()
            wanted[label] = _to_int(parts[0]) if parts else 0
    return MemoryInfo(
        total_kb=wanted["MemTotal"],
        free_kb=wanted["MemFree"],
        available_kb=wanted["MemAvailable"],
    )


def parse_stat_fields(content: str) -> list[str]:
    """
    Split /proc/<pid>/stat into the fields that follow the comm field.

    comm is wrapped in parentheses and may itself contain spaces or ')',
    so the split starts after the last ')'. Index 0 of the result is field 3.
    """
    _, sep, rest = content.rpartition(")")
    if not sep:
        return []
    return rest.split()


def _stat_field(fields: list[str], number: int) -> int:
    index = number - 3
    if index < 0 or index >= len(fields):
        return 0
    return _to_int(fields[index])


def parse_command(cmdline: bytes, comm: bytes = b"") -> str:
    """
    Build a display command from a NUL-delimited argv.

    Falls back to the short process name when argv is empty (kernel threads,
    zombies).
    """
    command = cmdline.rstrip(b"\0").replace(b"\0", b" ").decode(errors="replace").strip()
    if command:
        return command
    return comm.decode(errors="replace").strip()


def parse_real_uid(status: str) -> int | None:
    """Return the real uid from the ``Uid:`` line of /proc/<pid>/status."""
    for line in status.splitlines():
        if line.startswith("Uid:"):
            parts = line.split()
            if len(parts) > 1 and parts[1].isdigit():
                return int(parts[1])
            return None
    return None


class ProcfsSource:
    """Counter source reading the Linux /proc filesystem directly."""

    def __init__(self, root: str | Path = "/proc") -> None:
        """
        Initialize the source.

        Args:
            root: Mount point of procfs. Tests point this at a fake tree.
        """
        self._root = Path(root)
        self._page_kb = page_size_kb()

    @property
    def root(self) -> Path:
        return self._root

    def read_cpu_counters(self) -> CpuCounters:
        try:
            with open(self._root / "stat", encoding="utf-8", errors="replace") as f:
                line = f.readline()
        except OSError:
            logger.debug("Cannot read %s/stat", self._root, exc_info=True)
            return CpuCounters.zero()
        return parse_cpu_line(line)

    def read_memory(self) -> MemoryInfo:
        try:
            content = (self._root / "meminfo").read_text(encoding="utf-8", errors="replace")
        except OSError:
            logger.debug("Cannot read %s/meminfo", self._root, exc_info=True)
            return MemoryInfo()
        return parse_meminfo(content)

    def list_pids(self) -> set[int]:
        pids: set[int] = set()
        try:
            with os.scandir(self._root) as entries:
                for entry in entries:
                    if entry.name.isdigit() and entry.is_dir(follow_symlinks=False):
                        pids.add(int(entry.name))
        except OSError:
            logger.debug("Cannot list %s", self._root, exc_info=True)
        return pids

    def read_process(self, pid: int) -> ProcessRecord | None:
        base = self._root / str(pid)
        try:
            try:
                stat = (base / "stat").read_text(encoding="utf-8", errors="replace")
            except PermissionError:
                return None
            cmdline = self._read_optional(base / "cmdline")
            comm = self._read_optional(base / "comm") if not cmdline.strip(b"\0") else b""
            status = self._read_optional(base / "status").decode(errors="replace")
        except (FileNotFoundError, ProcessLookupError):
            # Exited between being listed and being read
            logger.debug("pid %d vanished during read", pid)
            return None

        fields = parse_stat_fields(stat)
        uid = parse_real_uid(status)
        return ProcessRecord(
            pid=pid,
            user=resolve_user_name(uid) if uid is not None else "",
            command=parse_command(cmdline, comm),
            utime=_stat_field(fields, STAT_UTIME),
            stime=_stat_field(fields, STAT_STIME),
            rss_kb=_stat_field(fields, STAT_RSS) * self._page_kb,
            start_time=_stat_field(fields, STAT_STARTTIME),
        )

    @staticmethod
    def _read_optional(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except PermissionError:
            return b""


class PsutilSource:
    """
    Counter source built on psutil, for hosts without a Linux /proc.

    psutil reports times in seconds; they are converted back to clock ticks
    so the delta engine works on the same units as with /proc.
    """

    _PROCESS_ATTRS = ["username", "cmdline", "name", "cpu_times", "memory_info", "create_time"]

    def __init__(self) -> None:
        """Initialize the source."""
        self._hz = clock_ticks()
        self._boot_time = psutil.boot_time()

    def _ticks(self, seconds: float | None) -> int:
        if not seconds or seconds < 0:
            return 0
        return int(round(seconds * self._hz))

    def read_cpu_counters(self) -> CpuCounters:
        try:
            times = psutil.cpu_times()
        except (OSError, psutil.Error):
            logger.debug("psutil.cpu_times() failed", exc_info=True)
            return CpuCounters.zero()
        # Buckets the platform does not report stay 0
        return CpuCounters(*(self._ticks(getattr(times, name, 0.0)) for name in CpuCounters.field_names()))

    def read_memory(self) -> MemoryInfo:
        try:
            mem = psutil.virtual_memory()
        except (OSError, psutil.Error):
            logger.debug("psutil.virtual_memory() failed", exc_info=True)
            return MemoryInfo()
        return MemoryInfo(
            total_kb=mem.total // 1024,
            free_kb=getattr(mem, "free", 0) // 1024,
            available_kb=mem.available // 1024,
        )

    def list_pids(self) -> set[int]:
        try:
            return set(psutil.pids())
        except (OSError, psutil.Error):
            logger.debug("psutil.pids() failed", exc_info=True)
            return set()

    def read_process(self, pid: int) -> ProcessRecord | None:
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                info = proc.as_dict(attrs=self._PROCESS_ATTRS, ad_value=None)
        except (psutil.NoSuchProcess, psutil.ZombieProcess, psutil.AccessDenied):
            # Handle processes that died mid-poll or cannot be opened at all
            return None

        cmdline = info.get("cmdline") or []
        command = " ".join(arg for arg in cmdline if arg) or (info.get("name") or "")

        cpu_times = info.get("cpu_times")
        mem_info = info.get("memory_info")
        create_time = info.get("create_time")

        return ProcessRecord(
            pid=pid,
            user=info.get("username") or "",
            command=command,
            utime=self._ticks(cpu_times.user) if cpu_times else 0,
            stime=self._ticks(cpu_times.system) if cpu_times else 0,
            rss_kb=mem_info.rss // 1024 if mem_info else 0,
            start_time=self._ticks(create_time - self._boot_time) if create_time else 0,
        )


def default_source(settings: Settings | None = None) -> CounterSource:
    """
    Pick the counter source for this host.

    ``auto`` prefers /proc when it is mounted and falls back to psutil.
    """
    settings = settings or Settings()
    if settings.source == "psutil":
        return PsutilSource()
    root = Path(settings.proc_root)
    if settings.source == "procfs" or (root / "stat").is_file():
        return ProcfsSource(root)
    logger.info("No procfs at %s, using psutil", root)
    return PsutilSource()
