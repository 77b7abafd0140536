"""Sampling engine for sysmon: the per-tick pipeline and its background loop."""

import logging
import threading
from queue import Queue

from sysmon.delta import derive
from sysmon.models import Snapshot, TickResult
from sysmon.snapshot import build_snapshot
from sysmon.sources import CounterSource, default_source

logger = logging.getLogger(__name__)

REFRESH_INTERVAL = 2.0  # seconds


def tick(source: CounterSource, prev: Snapshot | None, mem_total_kb: int) -> TickResult:
    """
    Run one sampling tick.

    Args:
        source: Where to read counters from.
        prev: The snapshot returned by the previous tick, or None on the first.
        mem_total_kb: System memory total captured at startup.

    Returns:
        The new snapshot with its derived figures. Pass ``result.snapshot``
        as ``prev`` on the next call.
    """
    snapshot = build_snapshot(source)
    cpu_percent, views = derive(prev, snapshot, mem_total_kb)
    return TickResult(
        snapshot=snapshot,
        cpu_percent=cpu_percent,
        memory_used_kb=snapshot.memory.used_kb(mem_total_kb),
        memory_total_kb=mem_total_kb,
        processes=views,
    )


class SystemMonitor:
    """
    System monitor that samples counters on a fixed interval.

    Runs in a separate daemon thread and pushes each TickResult to a
    thread-safe Queue. Ticks run strictly one after another; the previous
    snapshot lives only in the loop and is handed to the next tick.
    """

    def __init__(
        self,
        update_queue: Queue[TickResult],
        poll_rate: float = REFRESH_INTERVAL,
        source: CounterSource | None = None,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            poll_rate: Seconds between ticks. Default 2.0s.
            source: Counter source. Defaults to the best one for this host.
        """
        self._queue = update_queue
        self._poll_rate = max(0.05, poll_rate)
        self._source = source if source is not None else default_source()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        # Denominator for memory percentages, fixed for the run
        self._mem_total_kb = self._source.read_memory().total_kb

    @property
    def poll_rate(self) -> float:
        """Seconds between ticks."""
        return self._poll_rate

    @property
    def memory_total_kb(self) -> int:
        """System memory total captured at startup."""
        return self._mem_total_kb

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def tick(self, prev: Snapshot | None) -> TickResult:
        """Run one tick against this monitor's source and memory total."""
        return tick(self._source, prev, self._mem_total_kb)

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._wake_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()
        logger.info("Monitor started (interval=%.1fs)", self._poll_rate)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread at the next tick boundary.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            logger.info("Monitor stopped")

    def refresh_now(self) -> None:
        """Cut the current wait short so the next tick runs immediately."""
        self._wake_event.set()

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        previous: Snapshot | None = None
        while not self._stop_event.is_set():
            try:
                result = self.tick(previous)
            except Exception:
                # Keep the loop and the last good snapshot alive
                logger.exception("Tick failed")
            else:
                previous = result.snapshot
                self._queue.put(result)

            # Wait for poll_rate seconds, or until stop/refresh is requested
            self._wake_event.wait(timeout=self._poll_rate)
            self._wake_event.clear()
