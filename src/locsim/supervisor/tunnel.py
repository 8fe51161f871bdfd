import re
import sys
import time
import shlex
import logging
import threading
import subprocess
from typing import Callable, List, Optional

from locsim.errors import ErrorKind, Outcome
from locsim.supervisor import process_utils
from locsim.supervisor.binary import HelperAvailability

log = logging.getLogger(__name__)

DEFAULT_HELPER_NAME = "pymobiledevice3"


def tunneld_command(executable_path: str) -> List[str]:
    """Returns the command that starts the tunnel daemon in the background."""
    return [executable_path, "remote", "tunneld", "-d"]

def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')

def build_privileged_command(command: List[str], platform: str = sys.platform) -> List[str]:
    """
    Wraps a command so it runs with elevated privileges after user consent.

    macOS uses an AppleScript `do shell script ... with administrator privileges`
    prompt; other POSIX systems go through polkit's `pkexec`.
    """
    if platform == "darwin":
        script = f'do shell script "{_applescript_quote(shlex.join(command))}" with administrator privileges'
        return ["/usr/bin/osascript", "-e", script]
    return ["pkexec", *command]


class TunnelSupervisor:
    """
    Makes sure the privileged tunnel daemon is running before any simulation
    request proceeds.

    The cached readiness flag is advisory only. The daemon is an independent
    process that can die at any time, so every fast path re-probes the live
    process list before trusting it.
    """

    def __init__(
        self,
        availability: HelperAvailability,
        poll_interval: float = 0.5,
        poll_attempts: int = 30,
        launch_timeout: float = 120,
        prober: Optional[Callable[[str], List[int]]] = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        platform: str = sys.platform,
    ) -> None:
        self.availability = availability
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.launch_timeout = launch_timeout
        self._find_processes = prober or process_utils.find_processes_matching
        self._run = runner
        self._sleep = sleep
        self._platform = platform

        helper_name = availability.executable_name or DEFAULT_HELPER_NAME
        self.signature = f"{re.escape(helper_name)}.*tunneld"
        self._cached_ready = False
        self._launch_lock = threading.Lock()

    @property
    def cached_ready(self) -> bool:
        return self._cached_ready

    def invalidate(self) -> None:
        """Forgets the cached readiness, forcing the next call through the full check."""
        self._cached_ready = False

    def probe_running(self) -> bool:
        """
        Point-in-time check of the OS process list for the tunnel daemon.
        Read-only and safe to call from any thread.
        """
        try:
            return bool(self._find_processes(self.signature))
        except Exception as e:
            log.error(f"Tunnel liveness probe failed: {e}")
            return False

    def ensure_ready(self) -> Outcome:
        """
        Returns success once the tunnel daemon is confirmed running, launching
        it through a privileged prompt if necessary and polling for it to
        appear. Never retries the launch on its own.
        """
        if self._cached_ready and self.probe_running():
            return Outcome.success("tunneld running")

        if self.probe_running():
            log.info("tunneld is already running")
            self._cached_ready = True
            return Outcome.success("tunneld already running")

        self._cached_ready = False
        with self._launch_lock:
            # Another caller may have brought the daemon up while we waited.
            if self.probe_running():
                self._cached_ready = True
                return Outcome.success("tunneld started by a concurrent request")

            launched = self._request_privileged_launch()
            if not launched:
                return launched
            return self._wait_until_running()

    def _request_privileged_launch(self) -> Outcome:
        if not self.availability.available:
            message = "Cannot start tunneld: pymobiledevice3 is not available"
            log.error(message)
            return Outcome.failure(ErrorKind.HELPER_UNAVAILABLE, message)

        log.info("Starting tunneld with admin privileges...")
        cmd = build_privileged_command(tunneld_command(self.availability.executable_path), self._platform)
        try:
            result = self._run(cmd, capture_output=True, text=True, timeout=self.launch_timeout, check=False)
        except subprocess.TimeoutExpired:
            message = f"Privileged launch of tunneld did not finish within {self.launch_timeout} seconds"
            log.error(message)
            return Outcome.failure(ErrorKind.TUNNEL_LAUNCH_DENIED, message)
        except OSError as e:
            message = f"Failed to launch tunneld: {e}"
            log.error(message)
            return Outcome.failure(ErrorKind.TUNNEL_LAUNCH_DENIED, message)

        if result.returncode != 0:
            stderr = (result.stderr or "").strip() or "unknown"
            log.error(f"Failed to start tunneld: {stderr}")
            return Outcome.failure(ErrorKind.TUNNEL_LAUNCH_DENIED, stderr, exit_code=result.returncode)
        return Outcome.success()

    def _wait_until_running(self) -> Outcome:
        log.info("Waiting for tunneld to become ready...")
        for attempt in range(1, self.poll_attempts + 1):
            self._sleep(self.poll_interval)
            if self.probe_running():
                waited = attempt * self.poll_interval
                log.info(f"tunneld is ready (waited {waited:.1f}s)")
                self._cached_ready = True
                return Outcome.success(f"tunneld ready after {waited:.1f}s")

        ceiling = self.poll_attempts * self.poll_interval
        message = f"tunneld did not start within {ceiling:.1f} seconds"
        log.error(message)
        return Outcome.failure(ErrorKind.TUNNEL_TIMEOUT, message)
