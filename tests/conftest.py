from __future__ import annotations

import io
import signal
import itertools
import subprocess
from typing import Any, Callable, List, Optional

import pytest

from locsim.errors import Outcome
from locsim.supervisor.binary import HelperAvailability
from locsim.supervisor.service import LocationService
from locsim.supervisor.simulation import SimulationProcessManager
from locsim.supervisor.tunnel import TunnelSupervisor

HELPER_PATH = "/opt/homebrew/bin/pymobiledevice3"
_pids = itertools.count(4000)


class FakeProcess:
    """Popen stand-in. `returncode` None means alive."""

    def __init__(self, args: List[str], events: List[Any], exit_code: Optional[int] = None,
                 stderr: bytes = b"", ignore_terminate: bool = False) -> None:
        self.args = args
        self.pid = next(_pids)
        self.returncode = exit_code
        self.stderr = io.BytesIO(stderr)
        self.signals: List[int] = []
        self.ignore_terminate = ignore_terminate
        self._events = events

    def poll(self) -> Optional[int]:
        return self.returncode

    def terminate(self) -> None:
        self.signals.append(signal.SIGTERM)
        self._events.append(("terminate", self.pid))
        if not self.ignore_terminate:
            self.returncode = -signal.SIGTERM

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)
        self._events.append(("signal", self.pid, sig))
        self.returncode = -sig

    def wait(self, timeout: Optional[float] = None) -> int:
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout)
        return self.returncode


class FakeLauncher:
    """Records spawns; each call consumes the next queued process behaviour."""

    def __init__(self) -> None:
        self.calls: List[dict] = []
        self.processes: List[FakeProcess] = []
        self.events: List[Any] = []
        self.behaviours: List[dict] = []
        self.error: Optional[BaseException] = None

    def __call__(self, args: List[str], **kwargs: Any) -> FakeProcess:
        self.calls.append({"args": list(args), **kwargs})
        if self.error is not None:
            raise self.error
        behaviour = self.behaviours.pop(0) if self.behaviours else {}
        proc = FakeProcess(list(args), self.events, **behaviour)
        self.processes.append(proc)
        self.events.append(("spawn", proc.pid))
        return proc


class FakeTimer:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer


class SleepRecorder:
    def __init__(self, hook: Optional[Callable[[float], None]] = None) -> None:
        self.calls: List[float] = []
        self.hook = hook

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.hook is not None:
            self.hook(seconds)

    @property
    def elapsed(self) -> float:
        return sum(self.calls)


class StubTunnel:
    """Tunnel stand-in for simulation tests."""

    def __init__(self, outcome: Optional[Outcome] = None) -> None:
        self.outcome = outcome if outcome is not None else Outcome.success("tunneld running")
        self.running = bool(self.outcome)
        self.invalidated = 0
        self.calls = 0
        self.cached_ready = True

    def ensure_ready(self) -> Outcome:
        self.calls += 1
        return self.outcome

    def probe_running(self) -> bool:
        return self.running

    def invalidate(self) -> None:
        self.invalidated += 1
        self.cached_ready = False


@pytest.fixture
def available() -> HelperAvailability:
    return HelperAvailability(available=True, executable_path=HELPER_PATH)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def stub_tunnel() -> StubTunnel:
    return StubTunnel()


@pytest.fixture
def make_manager(available, launcher, timers, stub_tunnel):
    def _make(availability: Optional[HelperAvailability] = None, tunnel: Any = None,
              sleep: Optional[SleepRecorder] = None) -> SimulationProcessManager:
        return SimulationProcessManager(
            availability or available,
            tunnel or stub_tunnel,
            warmup_seconds=2.0,
            grace_period=1.0,
            extra_path_dirs=["/opt/homebrew/bin", "/usr/local/bin"],
            launcher=launcher,
            sleep=sleep or SleepRecorder(),
            timer_factory=timers,
            clock=lambda: 1000.0,
        )
    return _make


@pytest.fixture
def make_service(available, make_manager):
    def _make(availability: Optional[HelperAvailability] = None, running: bool = True) -> LocationService:
        availability = availability or available
        tunnel = TunnelSupervisor(
            availability,
            prober=lambda pattern: [77] if running else [],
            runner=lambda *a, **k: subprocess.CompletedProcess(a[0], 1, "", "User canceled."),
            sleep=SleepRecorder(),
        )
        return LocationService(availability, tunnel, make_manager(availability=availability, tunnel=tunnel))
    return _make
