import enum
import time
import logging
import threading
import subprocess
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Sequence, Union

from locsim.errors import ErrorKind, Outcome
from locsim.supervisor import process_utils, shutdown
from locsim.supervisor.binary import HelperAvailability
from locsim.supervisor.tunnel import TunnelSupervisor

log = logging.getLogger(__name__)

Coordinate = Union[str, int, float, Decimal]
PROCESS_LABEL = "simulate-location"


class SimulationState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"


@dataclass(frozen=True)
class ActiveSimulation:
    """The one live simulate-location process and what it is simulating."""
    process: subprocess.Popen
    latitude: str
    longitude: str
    device_id: str
    started_at: float

    @property
    def pid(self) -> int:
        return self.process.pid


def format_coordinate(value: Coordinate, name: str = "coordinate") -> str:
    """
    Returns the decimal text handed to the helper for a coordinate.

    Strings are validated and passed through untouched; numbers use their
    `str()` form. Non-numeric and non-finite values raise ValueError.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid {name}: {value!r}")
    if isinstance(value, str):
        text = value.strip()
    elif isinstance(value, (int, float, Decimal)):
        text = str(value)
    else:
        raise ValueError(f"Invalid {name}: {value!r}")

    try:
        number = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"Invalid {name}: {value!r}") from None
    if not number.is_finite():
        raise ValueError(f"Invalid {name}: {value!r} is not finite")
    return text


def simulate_location_args(executable_path: str, device_id: str, latitude: str, longitude: str) -> List[str]:
    """Builds the DVT simulate-location argument vector."""
    return [
        executable_path,
        "developer", "dvt", "simulate-location", "set",
        "--tunnel", device_id,
        "--",  # separator so negative coordinates aren't parsed as flags
        latitude,
        longitude,
    ]


class SimulationProcessManager:
    """
    Owns the single persistent `developer dvt simulate-location set` process.

    The DVT command keeps a connection open to the device and the simulated
    location stays in effect only while it runs. Setting a new location stops
    the old process first and spawns a new one; clearing the location stops
    it. All handle mutations happen under one lock.
    """

    def __init__(
        self,
        availability: HelperAvailability,
        tunnel: TunnelSupervisor,
        warmup_seconds: float = 2.0,
        grace_period: float = 1.0,
        extra_path_dirs: Sequence[str] = (),
        default_path: str = "/usr/bin:/bin",
        stderr_tail_lines: int = 200,
        launcher: Callable[..., subprocess.Popen] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
        timer_factory: Optional[shutdown.TimerFactory] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.availability = availability
        self.tunnel = tunnel
        self.warmup_seconds = warmup_seconds
        self.grace_period = grace_period
        self.extra_path_dirs = list(extra_path_dirs)
        self.default_path = default_path
        self.stderr_tail_lines = stderr_tail_lines
        self._launcher = launcher
        self._sleep = sleep
        self._timer_factory = timer_factory or shutdown.start_escalation_timer
        self._clock = clock

        self._lock = threading.Lock()
        self._active: Optional[ActiveSimulation] = None
        self._state = SimulationState.IDLE
        self._pending: List[shutdown.PendingEscalation] = []

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def active(self) -> Optional[ActiveSimulation]:
        return self._active

    @property
    def pending_escalations(self) -> int:
        return len(self._pending)

    def set_location(self, latitude: Coordinate, longitude: Coordinate, device_id: str) -> Outcome:
        """
        Simulates the given location on a device, replacing any running
        simulation. On failure the previous simulation stays stopped.

        :param latitude: Latitude as decimal text or number.
        :param longitude: Longitude as decimal text or number.
        :param device_id: The UDID of the target device.
        :raises ValueError: If a coordinate is not a finite decimal.
        """
        lat_text = format_coordinate(latitude, "latitude")
        lon_text = format_coordinate(longitude, "longitude")

        if not self.availability.available:
            message = "pymobiledevice3 is not available"
            log.error(message)
            return Outcome.failure(ErrorKind.HELPER_UNAVAILABLE, message)

        ready = self.tunnel.ensure_ready()
        if not ready:
            log.error("Cannot simulate location: tunneld is not running")
            return ready

        with self._lock:
            try:
                return self._replace_locked(lat_text, lon_text, device_id)
            finally:
                if self._state is SimulationState.STARTING:
                    self._state = SimulationState.IDLE

    def clear(self, device_id: Optional[str] = None) -> Outcome:
        """
        Stops the active simulation, if any. Always succeeds.

        :param device_id: The UDID of the device, for logging only.
        """
        log.info(f"Clearing simulated location{f' for device {device_id}' if device_id else ''}")
        with self._lock:
            self._pending = shutdown.prune_settled(self._pending)
            self._terminate_active_locked()
        return Outcome.success("simulation cleared")

    def shutdown(self) -> None:
        """
        Application teardown: stops the active simulation and blocks until
        every terminated process has either exited or been interrupted.
        """
        with self._lock:
            self._terminate_active_locked()
            pending, self._pending = self._pending, []
        shutdown.drain_pending(pending, self.grace_period)
        log.info("Simulation process manager shut down.")

    def _terminate_active_locked(self) -> None:
        active, self._active = self._active, None
        self._state = SimulationState.IDLE
        if active is None:
            return
        escalation = shutdown.terminate_process(active.process, self.grace_period, self._timer_factory)
        if escalation is not None:
            self._pending.append(escalation)

    def _replace_locked(self, latitude: str, longitude: str, device_id: str) -> Outcome:
        self._pending = shutdown.prune_settled(self._pending)
        self._terminate_active_locked()
        self._state = SimulationState.STARTING

        log.info(f"Setting location to {latitude}, {longitude} for device {device_id}")
        args = simulate_location_args(self.availability.executable_path, device_id, latitude, longitude)
        env = process_utils.build_helper_env(self.extra_path_dirs, default_path=self.default_path)
        try:
            process = process_utils.spawn_helper(args, env, self._launcher)
        except OSError as e:
            message = f"Failed to launch DVT simulate-location: {e}"
            log.error(message)
            return Outcome.failure(ErrorKind.PROCESS_SPAWN_FAILED, message)

        collector = process_utils.StderrCollector(process.stderr, PROCESS_LABEL, self.stderr_tail_lines).start()
        try:
            # Wait briefly for the process to connect through the tunnel.
            self._sleep(self.warmup_seconds)
        except BaseException:
            escalation = shutdown.terminate_process(process, self.grace_period, self._timer_factory)
            if escalation is not None:
                self._pending.append(escalation)
            raise

        exit_code = process.poll()
        if exit_code is not None:
            collector.join(timeout=1.0)
            stderr = collector.text() or "unknown error"
            log.error(f"DVT simulate-location exited early (code {exit_code}): {stderr}")
            if not self.tunnel.probe_running():
                log.warning("tunneld is no longer running; the next request will relaunch it.")
                self.tunnel.invalidate()
            return Outcome.failure(ErrorKind.PROCESS_EXITED_EARLY, stderr, exit_code=exit_code)

        self._active = ActiveSimulation(
            process=process,
            latitude=latitude,
            longitude=longitude,
            device_id=device_id,
            started_at=self._clock(),
        )
        self._state = SimulationState.ACTIVE
        log.info(f"Location simulation active (PID {process.pid})")
        return Outcome.success(f"simulating {latitude}, {longitude} (PID {process.pid})")
