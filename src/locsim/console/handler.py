import time
import logging
from typing import List, Optional, Tuple

from locsim.config import effective_settings as config
from locsim.device import Device, DeviceFacade
from locsim.errors import DeviceError
from locsim.supervisor import LocationService

log = logging.getLogger(__name__)


def _parse_device_args(args: List[str]) -> Tuple[List[str], Optional[str]]:
    """
    Splits console arguments into positionals and the optional `--ios VERSION`.
    A bare `--` is accepted and ignored so negative coordinates can follow it.
    """
    positionals, ios_version = [], None
    remaining = list(args)
    while remaining:
        arg = remaining.pop(0)
        if arg == "--ios" and remaining:
            ios_version = remaining.pop(0)
        elif arg == "--":
            continue
        else:
            positionals.append(arg)
    return positionals, ios_version

def _facade_for(service: LocationService, udid: str, ios_version: Optional[str]) -> DeviceFacade:
    # Without an explicit version the device is assumed to be a tunnel-era device.
    version = ios_version or str(service.minimum_tunnel_version)
    return DeviceFacade(Device(udid=udid, version=version), service)

def handle_set_command(service: LocationService, args: List[str]) -> None:
    """Handles 'set <udid> <lat> <lon> [--ios VERSION]'."""
    positionals, ios_version = _parse_device_args(args)
    if len(positionals) != 3:
        print("Usage: set <udid> <latitude> <longitude> [--ios VERSION]")
        return

    udid, latitude, longitude = positionals
    facade = _facade_for(service, udid, ios_version)
    try:
        outcome = facade.simulate_location(latitude, longitude)
    except ValueError as e:
        print(f"Error: {e}")
        return
    print(f"Set location on {udid} via {facade.backend_name}: {outcome.describe()}")

def handle_clear_command(service: LocationService, args: List[str]) -> None:
    """Handles 'clear [udid] [--ios VERSION]'."""
    positionals, ios_version = _parse_device_args(args)
    if positionals:
        facade = _facade_for(service, positionals[0], ios_version)
        outcome = facade.disable_simulation()
    else:
        outcome = service.simulation.clear()
    print(f"Clear location: {outcome.describe()}")

def handle_pair_command(service: LocationService, args: List[str]) -> None:
    """Handles 'pair <udid> [--ios VERSION]'."""
    positionals, ios_version = _parse_device_args(args)
    if len(positionals) != 1:
        print("Usage: pair <udid> [--ios VERSION]")
        return

    facade = _facade_for(service, positionals[0], ios_version)
    try:
        facade.pair()
    except DeviceError as e:
        print(f"\nERROR: {e}\n")
        return
    print(f"Device {facade.udid} is ready ({facade.backend_name} backend).")

def handle_tunnel_command(service: LocationService) -> None:
    """Ensures the tunnel daemon is running, prompting for admin rights if needed."""
    outcome = service.tunnel.ensure_ready()
    print(f"tunneld: {outcome.describe()}")

def handle_probe_command(service: LocationService) -> None:
    status = "RUNNING" if service.tunnel.probe_running() else "NOT RUNNING"
    print(f"tunneld is {status}.")

def display_status(service: LocationService) -> None:
    """Displays the current status of the helper, the tunnel and the simulation."""
    snapshot = service.status()
    print("\n--- Location Simulation Status ---")
    helper = snapshot["helper_path"] if snapshot["helper_available"] else "NOT FOUND"
    print(f"  - {'pymobiledevice3':<22} : {helper}")
    tunnel = "RUNNING" if snapshot["tunnel_running"] else "STOPPED"
    print(f"  - {'tunneld':<22} : {tunnel} (cached ready: {snapshot['tunnel_cached_ready']})")
    print(f"  - {'simulation':<22} : {snapshot['simulation_state'].upper()}")

    active = snapshot["active"]
    if active:
        print(f"  - {'device':<22} : {active['device_id']}")
        print(f"  - {'location':<22} : {active['latitude']}, {active['longitude']}")
        print(f"  - {'process':<22} : PID {active['pid']:<8} | Status: {active['process_status'].upper()}")
        print(f"  - {'running for':<22} : {time.strftime('%H:%M:%S', time.gmtime(active['running_for']))}")
    if snapshot["pending_escalations"]:
        print(f"\nWARNING: {snapshot['pending_escalations']} terminated process(es) have not exited yet.")
    print("-" * 34 + "\n")

def _config_show() -> None:
    """Displays the current modifiable configuration settings."""
    print("\n--- Current Application Configuration ---")
    print(f"(Overrides file: {config.OVERRIDES_JSON_PATH})")
    for key, value in config.modifiable_values().items():
        print(f"  {key} = {value}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("Restart the console for changes to take effect.")
    print("---------------------------------------\n")

def _config_set(args: List[str]) -> None:
    """Sets and persists a modifiable configuration setting."""
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return

    key, value_str = args[0].upper(), " ".join(args[1:])
    _, message = config.update_setting(key, value_str)
    print(message)

def _config_help() -> None:
    """Displays help for the config command."""
    print("\nConfig Command Help:")
    print("  config show                - Display all modifiable settings.")
    print("  config set KEY VALUE       - Change a setting. Requires a console restart to apply.")
    print("  config help                - Show this help message.")
    print("Use 'check-config' to validate the helper installation.")

def handle_config_command(args: List[str]) -> None:
    """
    Handles all sub-commands for the 'config' command-line interface.

    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show()
    elif sub_command == "set":
        _config_set(args[1:])
    elif sub_command == "help":
        _config_help()
    else:
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")

def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    config.VERBOSE_LOGGING = not config.VERBOSE_LOGGING
    new_level = logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO

    # Reconfigure the console handler's level directly
    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if config.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
    else:
        print("Could not find console handler to modify level.")

def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  status                          - Show helper, tunnel and simulation status.")
    print("  check-config                    - Validate the pymobiledevice3 installation.")
    print("  tunnel                          - Make sure tunneld is running (may ask for your password).")
    print("  probe                           - Check whether tunneld is running, without starting it.")
    print("  pair <udid> [--ios V]           - Prepare a device for location simulation.")
    print("  set <udid> <lat> <lon> [--ios V] - Simulate a location on a device.")
    print("  clear [udid]                    - Stop simulating the location.")
    print("  config <cmd>                    - Manage configuration. Use 'config help' for more details.")
    print("  verbose                         - Toggle detailed DEBUG log output in the console.")
    print("  exit                            - Clear the simulation and exit the console.")
    print()
