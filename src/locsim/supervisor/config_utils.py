import os
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import LocationService

log = logging.getLogger(__name__)


def check_configuration(service: "LocationService") -> bool:
    """
    Validates that the helper executable and the directories the simulation
    process relies on are present.

    :param service: The LocationService whose configuration is checked.
    :return: True if the helper was found, otherwise False.
    """
    log.info("Performing configuration and path validation...")
    all_ok = True

    if service.availability.available:
        log.info(f"Config Check OK: Found pymobiledevice3 at '{service.availability.executable_path}'")
    else:
        log.error("CONFIG CHECK FAILED: pymobiledevice3 not found. Install it with: python3 -m pip install pymobiledevice3")
        all_ok = False

    for path in service.simulation.extra_path_dirs:
        if os.path.isdir(path):
            log.info(f"Config Check OK: Helper PATH entry '{path}' exists")
        else:
            log.debug(f"Helper PATH entry '{path}' does not exist on this system")

    if service.tunnel.probe_running():
        log.info("Config Check OK: tunneld is running")
    else:
        log.warning("tunneld is not running. It will be started with admin privileges on first use.")

    return all_ok
