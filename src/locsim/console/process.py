import logging
from typing import List

from locsim.supervisor import LocationService
from locsim.supervisor.config_utils import check_configuration
from locsim.console.handler import (
    display_status, handle_clear_command, handle_config_command, handle_pair_command,
    handle_probe_command, handle_set_command, handle_tunnel_command, print_help, toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def execute_command(service: LocationService, command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param service: The application's LocationService.
    :param command: The main command string (e.g., 'set', 'config').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "status": lambda: display_status(service),
        "check-config": lambda: check_configuration(service),
        "tunnel": lambda: handle_tunnel_command(service),
        "probe": lambda: handle_probe_command(service),
        "pair": lambda: handle_pair_command(service, args),
        "set": lambda: handle_set_command(service, args),
        "clear": lambda: handle_clear_command(service, args),
        "config": lambda: handle_config_command(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
        "exit": lambda: True,
        "quit": lambda: True,
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False

    result = command_map[command]()
    return command in ("exit", "quit") and result is True
