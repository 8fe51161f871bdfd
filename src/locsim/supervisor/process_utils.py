import os
import re
import sys
import psutil
import logging
import threading
import subprocess
from collections import deque
from typing import Any, Callable, Deque, Dict, IO, List, Mapping, Optional, Sequence

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def _joined_cmdline(proc: psutil.Process) -> str:
    cmdline = proc.info.get("cmdline") or []
    return " ".join(cmdline)

def find_processes_matching(pattern: str) -> List[int]:
    """
    Returns the PIDs of all live processes whose command line matches a regex.
    Processes that vanish or deny access while being inspected are skipped.

    :param pattern: A regular expression searched in the space-joined command line.
    :return: A list of matching PIDs, possibly empty.
    """
    regex = re.compile(pattern)
    matches = []
    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            if regex.search(_joined_cmdline(proc)):
                matches.append(proc.pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return matches

def describe_process(pid: int) -> str:
    """Gets a short string describing a process status for display."""
    try:
        proc = psutil.Process(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            return "zombie"
        return proc.status()
    except psutil.NoSuchProcess:
        return "stopped"
    except psutil.Error:
        return "unknown"

#* --- Process Creation ---
def build_helper_env(extra_dirs: Sequence[str], base_env: Optional[Mapping[str, str]] = None,
                     default_path: str = "/usr/bin:/bin") -> Dict[str, str]:
    """
    Returns a copy of the environment with the known installation directories
    placed in front of the inherited PATH.

    :param extra_dirs: Directories to prepend, in order.
    :param base_env: The environment to copy. Defaults to os.environ.
    :param default_path: PATH to use when the inherited environment has none.
    """
    env = dict(os.environ if base_env is None else base_env)
    inherited = env.get("PATH") or default_path
    env["PATH"] = ":".join(list(extra_dirs) + [inherited])
    return env

def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    # Keep console Ctrl+C away from the helper; termination is ours to send.
    return {"start_new_session": True}

def spawn_helper(args: List[str], env: Dict[str, str], launcher: Callable[..., subprocess.Popen] = subprocess.Popen) -> subprocess.Popen:
    """
    Launches a helper process with stdout suppressed and stderr piped.

    :param args: The full argument vector, executable first.
    :param env: The environment for the child.
    :param launcher: The Popen-compatible callable used to create the process.
    :raises OSError: If the OS could not create the process.
    """
    return launcher(
        args,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        env=env,
        **_get_popen_creation_flags(),
    )

#* --- Output Capture ---
class StderrCollector:
    """
    Consumes a subprocess pipe on a daemon thread, logging every line under
    `proc.<name>` and retaining the last lines for diagnostics.
    """

    def __init__(self, pipe: Optional[IO[bytes]], name: str, tail_lines: int = 200, level: int = logging.WARNING) -> None:
        self.name = name
        self.level = level
        self._pipe = pipe
        self._lines: Deque[str] = deque(maxlen=tail_lines)
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "StderrCollector":
        if self._pipe is not None:
            self._thread = threading.Thread(target=self._read_pipe, daemon=True, name=f"{self.name}-stderr")
            self._thread.start()
        return self

    def _read_pipe(self) -> None:
        """Target function for the reader thread."""
        proc_logger = logging.getLogger(f"proc.{self.name}")
        try:
            for line_bytes in iter(self._pipe.readline, b""):
                line = line_bytes.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue
                with self._lock:
                    self._lines.append(line)
                proc_logger.log(self.level, line)
        except (OSError, ValueError) as e:
            proc_logger.debug(f"Pipe reader for {self.name} stream exited: {e}")
        finally:
            self._pipe.close()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def text(self) -> str:
        """Returns the retained lines joined with newlines."""
        with self._lock:
            return "\n".join(self._lines)
