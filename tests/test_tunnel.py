from __future__ import annotations

import subprocess
import threading
from typing import List

import pytest

from locsim.errors import ErrorKind
from locsim.supervisor.binary import HelperAvailability
from locsim.supervisor.tunnel import TunnelSupervisor, build_privileged_command, tunneld_command

from conftest import HELPER_PATH, SleepRecorder


class DaemonWorld:
    """Process list and privileged runner sharing one notion of 'tunneld is up'."""

    def __init__(self, running: bool = False, polls_until_up: int = 0, launch_returncode: int = 0) -> None:
        self.running = running
        self.launched = False
        self.polls_until_up = polls_until_up
        self.launch_returncode = launch_returncode
        self.launch_commands: List[List[str]] = []
        self.patterns: List[str] = []
        self.lock = threading.Lock()

    def prober(self, pattern: str) -> List[int]:
        with self.lock:
            self.patterns.append(pattern)
            return [321] if self.running else []

    def runner(self, cmd, **kwargs) -> subprocess.CompletedProcess:
        with self.lock:
            self.launch_commands.append(cmd)
            self.launched = True
            if self.launch_returncode == 0 and self.polls_until_up == 0:
                self.running = True
        stderr = "" if self.launch_returncode == 0 else "execution error: User canceled. (-128)"
        return subprocess.CompletedProcess(cmd, self.launch_returncode, "", stderr)

    def on_sleep(self, _seconds: float) -> None:
        if self.launched and self.polls_until_up:
            self.polls_until_up -= 1
            if self.polls_until_up == 0:
                self.running = True


def _supervisor(world: DaemonWorld, sleep: SleepRecorder, availability: HelperAvailability = None,
                platform: str = "darwin") -> TunnelSupervisor:
    return TunnelSupervisor(
        availability or HelperAvailability(True, HELPER_PATH),
        poll_interval=0.5,
        poll_attempts=30,
        prober=world.prober,
        runner=world.runner,
        sleep=sleep,
        platform=platform,
    )


def test_back_to_back_calls_with_running_daemon_issue_no_launch() -> None:
    world = DaemonWorld(running=True)
    supervisor = _supervisor(world, SleepRecorder())

    assert supervisor.ensure_ready()
    assert supervisor.ensure_ready()

    assert world.launch_commands == []
    assert supervisor.cached_ready is True


def test_stale_cache_is_refreshed_from_live_probe() -> None:
    world = DaemonWorld(running=True)
    supervisor = _supervisor(world, SleepRecorder())
    assert supervisor.cached_ready is False

    outcome = supervisor.ensure_ready()

    assert outcome.ok
    assert supervisor.cached_ready is True
    assert world.launch_commands == []


def test_cached_ready_is_revalidated_when_daemon_dies() -> None:
    world = DaemonWorld(running=True)
    supervisor = _supervisor(world, SleepRecorder(hook=world.on_sleep))
    assert supervisor.ensure_ready()

    world.running = False
    world.polls_until_up = 1
    world.launched = False
    outcome = supervisor.ensure_ready()

    assert outcome.ok
    assert len(world.launch_commands) == 1


def test_daemon_appearing_after_three_polls_reports_ready_after_wait() -> None:
    world = DaemonWorld(running=False, polls_until_up=3)
    sleep = SleepRecorder(hook=world.on_sleep)
    supervisor = _supervisor(world, sleep)

    outcome = supervisor.ensure_ready()

    assert outcome.ok
    assert sleep.calls == [0.5, 0.5, 0.5]
    assert sleep.elapsed == pytest.approx(1.5)
    assert len(world.launch_commands) == 1
    assert supervisor.cached_ready is True


def test_denied_launch_fails_without_polling() -> None:
    world = DaemonWorld(running=False, launch_returncode=1)
    sleep = SleepRecorder()
    supervisor = _supervisor(world, sleep)

    outcome = supervisor.ensure_ready()

    assert not outcome
    assert outcome.error is ErrorKind.TUNNEL_LAUNCH_DENIED
    assert outcome.exit_code == 1
    assert "User canceled" in outcome.detail
    assert sleep.calls == []
    assert supervisor.cached_ready is False


def test_launch_os_error_is_reported_as_denied() -> None:
    def runner(cmd, **kwargs):
        raise FileNotFoundError("osascript")

    supervisor = TunnelSupervisor(
        HelperAvailability(True, HELPER_PATH), prober=lambda p: [], runner=runner, sleep=SleepRecorder(),
    )

    outcome = supervisor.ensure_ready()

    assert outcome.error is ErrorKind.TUNNEL_LAUNCH_DENIED


def test_launch_timeout_is_reported_as_denied() -> None:
    def runner(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    supervisor = TunnelSupervisor(
        HelperAvailability(True, HELPER_PATH), launch_timeout=5, prober=lambda p: [], runner=runner, sleep=SleepRecorder(),
    )

    outcome = supervisor.ensure_ready()

    assert outcome.error is ErrorKind.TUNNEL_LAUNCH_DENIED
    assert "5" in outcome.detail


def test_poll_bound_exhausted_reports_timeout() -> None:
    world = DaemonWorld(running=False, polls_until_up=10_000)
    sleep = SleepRecorder(hook=world.on_sleep)
    supervisor = _supervisor(world, sleep)

    outcome = supervisor.ensure_ready()

    assert outcome.error is ErrorKind.TUNNEL_TIMEOUT
    assert len(sleep.calls) == 30
    assert sleep.elapsed == pytest.approx(15.0)
    assert supervisor.cached_ready is False
    assert len(world.launch_commands) == 1


def test_unavailable_helper_cannot_launch_daemon() -> None:
    world = DaemonWorld(running=False)
    supervisor = _supervisor(world, SleepRecorder(), availability=HelperAvailability(False))

    outcome = supervisor.ensure_ready()

    assert outcome.error is ErrorKind.HELPER_UNAVAILABLE
    assert world.launch_commands == []


def test_unavailable_helper_still_accepts_externally_started_daemon() -> None:
    world = DaemonWorld(running=True)
    supervisor = _supervisor(world, SleepRecorder(), availability=HelperAvailability(False))

    assert supervisor.ensure_ready().ok
    assert world.patterns[0] == r"pymobiledevice3.*tunneld"


def test_concurrent_callers_share_one_privileged_launch() -> None:
    world = DaemonWorld(running=False, polls_until_up=2)
    supervisor = _supervisor(world, SleepRecorder(hook=world.on_sleep))
    results = []

    threads = [threading.Thread(target=lambda: results.append(supervisor.ensure_ready())) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(results) == 5
    assert all(result.ok for result in results)
    assert len(world.launch_commands) == 1


def test_probe_swallows_prober_errors() -> None:
    def prober(pattern):
        raise RuntimeError("process table unavailable")

    supervisor = TunnelSupervisor(HelperAvailability(True, HELPER_PATH), prober=prober)

    assert supervisor.probe_running() is False


def test_invalidate_clears_cached_flag() -> None:
    world = DaemonWorld(running=True)
    supervisor = _supervisor(world, SleepRecorder())
    supervisor.ensure_ready()

    supervisor.invalidate()

    assert supervisor.cached_ready is False


def test_privileged_command_on_macos_uses_administrator_prompt() -> None:
    cmd = build_privileged_command(tunneld_command(HELPER_PATH), platform="darwin")

    assert cmd[:2] == ["/usr/bin/osascript", "-e"]
    assert cmd[2] == f'do shell script "{HELPER_PATH} remote tunneld -d" with administrator privileges'


def test_privileged_command_escapes_applescript_quotes() -> None:
    cmd = build_privileged_command(['/Apps/My "Tools"/pymobiledevice3', "remote", "tunneld", "-d"], platform="darwin")

    assert '\\"Tools\\"' in cmd[2]


def test_privileged_command_elsewhere_uses_pkexec() -> None:
    cmd = build_privileged_command(tunneld_command(HELPER_PATH), platform="linux")

    assert cmd == ["pkexec", HELPER_PATH, "remote", "tunneld", "-d"]
