import time
import logging
from typing import Any, Dict, Optional

from locsim.supervisor import process_utils
from locsim.supervisor.binary import BinaryLocator, HelperAvailability, locate_helper
from locsim.supervisor.simulation import SimulationProcessManager
from locsim.supervisor.tunnel import TunnelSupervisor

log = logging.getLogger(__name__)


class LocationService:
    """
    Holds the supervision subsystem for the lifetime of the application.

    Built once at startup and handed to every consumer. Owns the frozen
    helper availability, the tunnel supervisor and the simulation process
    manager, and must be shut down before the application exits so no
    simulation process outlives it.
    """

    def __init__(self, availability: HelperAvailability, tunnel: TunnelSupervisor,
                 simulation: SimulationProcessManager) -> None:
        self.availability = availability
        self.tunnel = tunnel
        self.simulation = simulation
        self.minimum_tunnel_version = 17
        self.started_at = time.time()

    @classmethod
    def from_settings(cls, config: Any, availability: Optional[HelperAvailability] = None) -> "LocationService":
        """
        Builds the service from the effective settings.

        :param config: A settings object such as `locsim.config.effective_settings`.
        :param availability: Pre-resolved helper availability, skipping discovery.
        """
        if availability is None:
            locator = BinaryLocator(
                executable_name=config.PMD3_EXECUTABLE_NAME,
                candidates=config.PMD3_CANDIDATE_PATHS,
                explicit_path=config.PMD3_PATH,
                login_shell=config.LOGIN_SHELL,
                which_timeout=config.WHICH_LOOKUP_TIMEOUT,
            )
            availability = locate_helper(locator)

        tunnel = TunnelSupervisor(
            availability,
            poll_interval=float(config.TUNNEL_POLL_INTERVAL),
            poll_attempts=int(config.TUNNEL_POLL_ATTEMPTS),
            launch_timeout=float(config.PRIVILEGED_LAUNCH_TIMEOUT),
        )
        simulation = SimulationProcessManager(
            availability,
            tunnel,
            warmup_seconds=float(config.SIMULATION_WARMUP_SECONDS),
            grace_period=float(config.TERMINATION_GRACE_SECONDS),
            extra_path_dirs=config.HELPER_EXTRA_PATH_DIRS,
            default_path=config.DEFAULT_INHERITED_PATH,
            stderr_tail_lines=int(config.STDERR_TAIL_LINES),
        )
        service = cls(availability, tunnel, simulation)
        service.minimum_tunnel_version = int(config.MINIMUM_TUNNEL_IOS_VERSION)
        return service

    def requires_tunnel(self, major_version: Optional[int]) -> bool:
        """True if a device with this iOS major version needs the tunnel-based backend."""
        if major_version is None:
            return False
        return major_version >= self.minimum_tunnel_version

    def status(self) -> Dict[str, Any]:
        """Returns a snapshot of the subsystem for display."""
        active = self.simulation.active
        snapshot: Dict[str, Any] = {
            "helper_available": self.availability.available,
            "helper_path": self.availability.executable_path,
            "tunnel_cached_ready": self.tunnel.cached_ready,
            "tunnel_running": self.tunnel.probe_running(),
            "simulation_state": self.simulation.state.value,
            "pending_escalations": self.simulation.pending_escalations,
            "active": None,
        }
        if active is not None:
            snapshot["active"] = {
                "device_id": active.device_id,
                "latitude": active.latitude,
                "longitude": active.longitude,
                "pid": active.pid,
                "process_status": process_utils.describe_process(active.pid),
                "running_for": time.time() - active.started_at,
            }
        return snapshot

    def shutdown(self) -> None:
        """Force-clears the simulation. Call once on application exit."""
        log.info("Shutting down location service...")
        self.simulation.shutdown()
