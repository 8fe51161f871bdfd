import logging
from typing import Protocol

from locsim.errors import DeviceError, ErrorKind, Outcome
from locsim.supervisor.simulation import Coordinate
from locsim.supervisor.service import LocationService
from .models import Device

log = logging.getLogger(__name__)

TUNNEL_REMEDIATION = (
    "Failed to start tunneld. Please ensure pymobiledevice3 is installed and try running:\n"
    "sudo pymobiledevice3 remote tunneld -d\n\n"
    "Then restart LocSim."
)
INSTALL_REMEDIATION = "iOS 17+ requires pymobiledevice3. Install it with: python3 -m pip install pymobiledevice3"


class LocationBackend(Protocol):
    """What a device needs to offer for pairing and location simulation."""

    def pair(self) -> None: ...

    def simulate_location(self, latitude: Coordinate, longitude: Coordinate) -> Outcome: ...

    def disable_simulation(self) -> Outcome: ...


class LegacyDevice(Protocol):
    """The in-process mechanism used for devices older than iOS 17."""

    def pair(self) -> None: ...

    def simulate_location(self, latitude: Coordinate, longitude: Coordinate) -> bool: ...

    def disable_simulation(self) -> bool: ...


class UnsupportedLegacyDevice:
    """Stand-in for builds without the legacy in-process backend."""

    def __init__(self, device: Device) -> None:
        self.device = device

    def pair(self) -> None:
        log.debug(f"No legacy pairing available for {self.device.udid}; skipping.")

    def simulate_location(self, latitude: Coordinate, longitude: Coordinate) -> bool:
        log.error(f"Legacy location simulation is not available in this build (device {self.device.udid}, iOS {self.device.version or '?'})")
        return False

    def disable_simulation(self) -> bool:
        log.error(f"Legacy location simulation is not available in this build (device {self.device.udid})")
        return False


class TunnelBackend:
    """Location simulation through the pymobiledevice3 tunnel and DVT process."""

    def __init__(self, device: Device, service: LocationService) -> None:
        self.device = device
        self.service = service

    def pair(self) -> None:
        log.info("iOS 17+ device: starting tunneld for pymobiledevice3")
        outcome = self.service.tunnel.ensure_ready()
        if not outcome:
            raise DeviceError(TUNNEL_REMEDIATION, outcome)
        log.info("tunneld ready: device can now simulate location")

    def simulate_location(self, latitude: Coordinate, longitude: Coordinate) -> Outcome:
        return self.service.simulation.set_location(latitude, longitude, self.device.udid)

    def disable_simulation(self) -> Outcome:
        return self.service.simulation.clear(self.device.udid)


class LegacyBackend:
    """Adapts a legacy device's boolean API to Outcome results."""

    def __init__(self, device: Device, legacy: LegacyDevice, service: LocationService) -> None:
        self.device = device
        self.legacy = legacy
        self.service = service

    def pair(self) -> None:
        if self.service.requires_tunnel(self.device.major_version) and not self.service.availability.available:
            log.error("iOS 17+ detected but pymobiledevice3 is not installed!")
            raise DeviceError(INSTALL_REMEDIATION)
        self.legacy.pair()

    def simulate_location(self, latitude: Coordinate, longitude: Coordinate) -> Outcome:
        if self.legacy.simulate_location(latitude, longitude):
            return Outcome.success(f"simulating {latitude}, {longitude}")
        return Outcome.failure(ErrorKind.LEGACY_BACKEND_FAILED, "legacy backend could not set the location")

    def disable_simulation(self) -> Outcome:
        if self.legacy.disable_simulation():
            return Outcome.success("simulation cleared")
        return Outcome.failure(ErrorKind.LEGACY_BACKEND_FAILED, "legacy backend could not clear the location")
