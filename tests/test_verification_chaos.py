"""Verification Test: Chaos Monkey - process churn resilience.

Processes are spawned and terminated at random while the monitor runs. The
monitor must keep producing ticks, never report a process twice, and never
report a percentage outside [0, 100], however many processes vanish between
being listed and being read.
"""

import multiprocessing
import random
import sys
import time
from queue import Empty, Queue

import pytest

from sysmon.models import TickResult
from sysmon.monitor import SystemMonitor
from sysmon.snapshot import build_snapshot
from sysmon.sources import default_source

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs a Unix process table")


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


def assert_sane(result: TickResult) -> None:
    """Check the invariants every tick must hold."""
    pids = [view.pid for view in result.processes]
    assert len(pids) == len(set(pids))
    assert set(pids) == set(result.snapshot.processes)
    assert 0.0 <= result.cpu_percent <= 100.0
    for view in result.processes:
        assert 0.0 <= view.cpu_percent <= 100.0
        assert 0.0 <= view.mem_percent <= 100.0


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_monitor_survives_process_termination(self):
        """Test the monitor keeps ticking while processes die mid-poll."""
        processes = []
        for _ in range(30):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)

        queue: Queue[TickResult] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.2)

        try:
            monitor.start()
            assert_sane(queue.get(timeout=5.0))

            for p in random.sample(processes, 15):
                if p.is_alive():
                    p.terminate()
                time.sleep(0.05)

            ticks_after_chaos = 0
            deadline = time.monotonic() + 4.0
            while time.monotonic() < deadline:
                try:
                    result = queue.get(timeout=1.0)
                except Empty:
                    continue
                assert_sane(result)
                ticks_after_chaos += 1

            assert ticks_after_chaos >= 3, f"Expected at least 3 ticks after chaos, got {ticks_after_chaos}"
            assert monitor.is_running, "Monitor should still be running after chaos"
        finally:
            monitor.stop()
            for p in processes:
                if p.is_alive():
                    p.terminate()
            for p in processes:
                p.join(timeout=1.0)

    def test_terminated_processes_leave_the_table(self):
        """Test a process that was killed is gone from the following ticks."""
        victim = multiprocessing.Process(target=dummy_worker, args=(60.0,))
        victim.start()

        queue: Queue[TickResult] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.1)
        try:
            monitor.start()
            deadline = time.monotonic() + 5.0
            while time.monotonic() < deadline:
                if victim.pid in queue.get(timeout=2.0).snapshot.processes:
                    break
            else:
                pytest.fail("victim never appeared")

            victim.terminate()
            victim.join(timeout=2.0)

            # Drain anything sampled before the process was reaped
            time.sleep(0.5)
            while True:
                try:
                    queue.get_nowait()
                except Empty:
                    break

            result = queue.get(timeout=2.0)
            assert victim.pid not in {view.pid for view in result.processes}
        finally:
            monitor.stop()
            if victim.is_alive():
                victim.terminate()
            victim.join(timeout=1.0)

    def test_snapshot_during_rapid_churn(self):
        """Test building snapshots directly while processes are created and destroyed."""
        source = default_source()
        processes = []
        try:
            deadline = time.monotonic() + 2.0
            while time.monotonic() < deadline:
                for _ in range(3):
                    p = multiprocessing.Process(target=dummy_worker, args=(5.0,))
                    p.start()
                    processes.append(p)

                alive = [p for p in processes if p.is_alive()]
                for p in random.sample(alive, min(3, len(alive))):
                    p.terminate()

                snapshot = build_snapshot(source)
                assert len(snapshot.processes) > 0
        finally:
            for p in processes:
                if p.is_alive():
                    p.terminate()
            for p in processes:
                p.join(timeout=0.5)

    def test_zombie_process_handling(self):
        """Test the monitor does not trip over exited but unreaped children."""
        queue: Queue[TickResult] = Queue()
        monitor = SystemMonitor(queue, poll_rate=0.2)

        monitor.start()
        p = multiprocessing.Process(target=dummy_worker, args=(0.1,))
        try:
            p.start()
            # Let it exit without joining, leaving a zombie
            time.sleep(0.3)

            for _ in range(3):
                try:
                    assert_sane(queue.get(timeout=2.0))
                except Empty:
                    continue

            assert monitor.is_running, "Monitor should survive zombie processes"
        finally:
            p.join(timeout=1.0)
            monitor.stop()
