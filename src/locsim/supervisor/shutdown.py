import signal
import logging
import threading
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional

log = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def start_escalation_timer(interval: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    timer.name = "SimulationEscalationTimer"
    timer.start()
    return timer


def _interrupt_if_alive(process: subprocess.Popen) -> bool:
    """
    Sends SIGINT to the given process if it has not exited.

    Popen refuses to signal a process it has already reaped, so a
    recycled PID is never hit through this handle.
    """
    if process.poll() is not None:
        return False
    try:
        log.warning(f"Process (PID {process.pid}) ignored SIGTERM. Sending SIGINT.")
        process.send_signal(signal.SIGINT)
        return True
    except ProcessLookupError:
        return False


@dataclass
class PendingEscalation:
    """A terminated process and the timer that will interrupt it if it lingers."""
    process: subprocess.Popen
    timer: Optional[threading.Timer]

    def settled(self) -> bool:
        return self.process.poll() is not None

    def cancel(self) -> None:
        if self.timer is not None:
            self.timer.cancel()


def terminate_process(
    process: Optional[subprocess.Popen],
    grace_period: float,
    timer_factory: TimerFactory = start_escalation_timer,
) -> Optional[PendingEscalation]:
    """
    Sends SIGTERM to a live process and schedules a SIGINT after the grace
    period should it still be running. Does not wait for the process.

    :param process: The process to stop. None is a no-op.
    :param grace_period: Seconds between SIGTERM and the escalation check.
    :param timer_factory: Starts the escalation timer; injectable for tests.
    :return: The pending escalation, or None if nothing was signalled.
    """
    if process is None or process.poll() is not None:
        return None

    log.info(f"Terminating active simulation process (PID {process.pid})")
    try:
        process.terminate()
    except ProcessLookupError:
        return None

    timer = timer_factory(grace_period, lambda: _interrupt_if_alive(process))
    return PendingEscalation(process=process, timer=timer)


def prune_settled(pending: List[PendingEscalation]) -> List[PendingEscalation]:
    """Cancels escalations whose process has exited and returns the rest."""
    remaining = []
    for item in pending:
        if item.settled():
            item.cancel()
        else:
            remaining.append(item)
    return remaining


def drain_pending(pending: List[PendingEscalation], grace_period: float) -> None:
    """
    Blocking teardown variant: waits out the grace period for every pending
    process, interrupts the stragglers right away and cancels their timers.
    """
    for item in pending:
        try:
            item.process.wait(timeout=grace_period)
        except subprocess.TimeoutExpired:
            _interrupt_if_alive(item.process)
        item.cancel()
