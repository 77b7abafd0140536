"""Process control: terminating a process by pid."""

import logging
import signal
from dataclasses import dataclass
from enum import Enum

import psutil

logger = logging.getLogger(__name__)


class KillFailure(Enum):
    """Why a kill request was not delivered."""

    INVALID_IDENTIFIER = "invalid pid"
    NO_SUCH_PROCESS = "no such process"
    PERMISSION_DENIED = "permission denied"


@dataclass(slots=True, frozen=True)
class KillResult:
    """Outcome of a kill request, ready to show to the user."""

    pid: int | None
    ok: bool
    reason: KillFailure | None = None
    sig: int = signal.SIGTERM

    @property
    def message(self) -> str:
        if self.ok:
            return f"Sent {signal.Signals(self.sig).name} to {self.pid}"
        if self.reason is KillFailure.INVALID_IDENTIFIER:
            return "Invalid PID"
        reason = self.reason.value if self.reason else "unknown error"
        return f"Failed to kill {self.pid}: {reason}"


def parse_pid(text: str) -> int | None:
    """Parse operator input as a pid. Returns None unless it is a positive integer."""
    text = text.strip()
    if not text.isdecimal():
        return None
    pid = int(text)
    return pid if pid > 0 else None


def request_kill(pid: int | None, sig: int = signal.SIGTERM) -> KillResult:
    """
    Send ``sig`` to a process.

    Delivery is asynchronous; success means the OS accepted the signal, not
    that the process has exited.
    """
    if not isinstance(pid, int) or isinstance(pid, bool) or pid <= 0:
        return KillResult(pid=None, ok=False, reason=KillFailure.INVALID_IDENTIFIER)

    try:
        psutil.Process(pid).send_signal(sig)
    except psutil.NoSuchProcess:
        result = KillResult(pid=pid, ok=False, reason=KillFailure.NO_SUCH_PROCESS)
    except psutil.AccessDenied:
        result = KillResult(pid=pid, ok=False, reason=KillFailure.PERMISSION_DENIED)
    except (OverflowError, ValueError):
        # Out of range for the platform's pid_t
        result = KillResult(pid=None, ok=False, reason=KillFailure.INVALID_IDENTIFIER)
    else:
        logger.info("Sent signal %d to pid %d", sig, pid)
        return KillResult(pid=pid, ok=True, sig=sig)

    logger.warning("Kill of pid %s failed: %s", pid, result.reason.value)
    return result


def kill_from_input(text: str) -> KillResult:
    """Parse operator input and kill the named process."""
    return request_kill(parse_pid(text))
