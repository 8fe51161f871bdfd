import logging
from typing import Optional

from locsim.errors import Outcome
from locsim.supervisor.service import LocationService
from locsim.supervisor.simulation import Coordinate
from .backends import LegacyBackend, LegacyDevice, LocationBackend, TunnelBackend, UnsupportedLegacyDevice
from .models import Device

log = logging.getLogger(__name__)


class DeviceFacade:
    """
    Routes pairing and location calls for one device to the right backend.

    The backend is chosen once, at construction: iOS 17+ devices use the
    pymobiledevice3 tunnel when the helper is installed, everything else
    goes to the legacy in-process mechanism.
    """

    def __init__(self, device: Device, service: LocationService, legacy: Optional[LegacyDevice] = None) -> None:
        self.device = device
        self.uses_tunnel = service.requires_tunnel(device.major_version) and service.availability.available
        if self.uses_tunnel:
            log.info(f"iOS {device.version or '?'} detected: using pymobiledevice3 backend")
            self.backend: LocationBackend = TunnelBackend(device, service)
        else:
            self.backend = LegacyBackend(device, legacy or UnsupportedLegacyDevice(device), service)

    @property
    def udid(self) -> str:
        return self.device.udid

    @property
    def backend_name(self) -> str:
        return "pymobiledevice3" if self.uses_tunnel else "legacy"

    def pair(self) -> None:
        """
        Prepares the device for location simulation.

        :raises DeviceError: With remediation text if the device cannot be prepared.
        """
        self.backend.pair()

    def simulate_location(self, latitude: Coordinate, longitude: Coordinate) -> Outcome:
        return self.backend.simulate_location(latitude, longitude)

    def disable_simulation(self) -> Outcome:
        return self.backend.disable_simulation()

    def __repr__(self) -> str:
        return f"DeviceFacade({self.device.name or self.device.udid}, iOS {self.device.version or '?'}, backend: {self.backend_name})"
