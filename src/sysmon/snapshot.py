"""Snapshot builder: one immutable capture of system and process counters."""

import logging
import time
from types import MappingProxyType

from sysmon.models import ProcessRecord, Snapshot
from sysmon.sources import CounterSource

logger = logging.getLogger(__name__)


def build_snapshot(source: CounterSource) -> Snapshot:
    """
    Capture the current instant from a counter source.

    Processes are read one at a time. A process that exits between being
    listed and being read is left out, and never aborts the remaining reads.
    The mapping is assembled fully before the snapshot is returned, so
    consumers never observe a partial capture.
    """
    cpu = source.read_cpu_counters()
    memory = source.read_memory()

    processes: dict[int, ProcessRecord] = {}
    for pid in sorted(source.list_pids()):
        try:
            record = source.read_process(pid)
        except OSError:
            logger.debug("Skipping pid %d: unreadable", pid, exc_info=True)
            continue
        if record is None:
            continue
        processes[pid] = record

    return Snapshot(
        cpu=cpu,
        processes=MappingProxyType(processes),
        memory=memory,
        timestamp=time.monotonic(),
    )
