"""
Delta engine: utilization percentages from two successive snapshots.

Counters are cumulative since boot, so only their difference over the
sampling interval means anything. Every degenerate input (first tick, counter
reset, zero denominator, counters running backwards) maps to 0 instead of
raising, so the display stays live on partial or stale data.
"""

from sysmon.models import CpuCounters, ProcessRecord, ProcessView, Snapshot


def _clamp_percent(value: float) -> float:
    # NaN fails both comparisons, so test for it explicitly
    if value != value or value <= 0.0:
        return 0.0
    return min(value, 100.0)


def total_diff(prev: CpuCounters | None, cur: CpuCounters) -> int:
    """Ticks elapsed across all buckets, or 0 without a previous sample."""
    if prev is None:
        return 0
    return cur.total() - prev.total()


def system_cpu_percent(prev: CpuCounters | None, cur: CpuCounters) -> float:
    """
    Percentage of the interval the system spent outside idle/iowait.

    Args:
        prev: Counters from the previous tick, or None on the first tick.
        cur: Counters from this tick.
    """
    elapsed = total_diff(prev, cur)
    if elapsed <= 0:
        return 0.0
    idle = cur.idle_all() - prev.idle_all()
    return _clamp_percent(100.0 * (elapsed - idle) / elapsed)


def restarted(prev: ProcessRecord, cur: ProcessRecord) -> bool:
    """True when a pid was reused by a different process between ticks."""
    return bool(prev.start_time and cur.start_time and prev.start_time != cur.start_time)


def process_cpu_percent(prev: ProcessRecord | None, cur: ProcessRecord, elapsed: int) -> float:
    """
    Share of the system-wide tick budget the process used in the interval.

    The denominator is the system tick delta, not the process's own lifetime,
    so per-process figures add up to roughly the system figure.

    Args:
        prev: The same pid in the previous snapshot, if it was there.
        cur: The process now.
        elapsed: System-wide tick delta for the interval.
    """
    if prev is None or elapsed <= 0 or restarted(prev, cur):
        return 0.0
    used = max(0, cur.total_time - prev.total_time)
    return _clamp_percent(100.0 * used / elapsed)


def memory_percent(rss_kb: int, mem_total_kb: int) -> float:
    """Resident memory as a share of total system memory."""
    if mem_total_kb <= 0 or rss_kb <= 0:
        return 0.0
    return _clamp_percent(100.0 * rss_kb / mem_total_kb)


def derive(
    prev: Snapshot | None,
    cur: Snapshot,
    mem_total_kb: int,
) -> tuple[float, tuple[ProcessView, ...]]:
    """
    Compute system CPU percent and one view per process in ``cur``.

    Processes only present in ``prev`` have exited and are dropped.

    Returns:
        (system cpu percent, views in ``cur`` order)
    """
    prev_cpu = prev.cpu if prev is not None else None
    prev_procs = prev.processes if prev is not None else {}
    elapsed = total_diff(prev_cpu, cur.cpu)

    views = tuple(
        ProcessView(
            record=record,
            cpu_percent=process_cpu_percent(prev_procs.get(pid), record, elapsed),
            mem_percent=memory_percent(record.rss_kb, mem_total_kb),
        )
        for pid, record in cur.processes.items()
    )
    return system_cpu_percent(prev_cpu, cur.cpu), views
