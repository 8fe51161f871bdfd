import sys
import logging
import setproctitle

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

import locsim.console as console
from locsim.config import effective_settings as config
from locsim.log.setup import setup_logging
from locsim.supervisor import LocationService


def run_interactive(service: LocationService) -> None:
    """Reads commands from stdin until 'exit' or Ctrl+C."""
    print("--- LocSim Management Console ---")
    print("Type 'help' for a list of commands.")

    while True:
        try:
            command_line_str = input("> ")
            if not command_line_str.strip():
                continue
            command_line = command_line_str.strip().split()
            command, args = command_line[0].lower(), command_line[1:]
            log.debug(f"Received command: {command}, args: {args}")

            if console.execute_command(service, command, args):
                break
        except (KeyboardInterrupt, EOFError):
            log.warning("\nExiting console due to KeyboardInterrupt.")
            break
        except Exception as e:
            log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)


def main() -> None:
    """The main entry point for the console application."""
    setproctitle.setproctitle("LocSim - Console")
    setup_logging(logging.INFO)

    service = LocationService.from_settings(config)
    try:
        # Non-interactive mode for one-off commands
        if len(sys.argv) > 1:
            command, args = sys.argv[1].lower(), sys.argv[2:]
            if "--verbose" in args:
                console.toggle_verbose_logging()
                args.remove("--verbose")
            console.execute_command(service, command, args)
            # A one-off 'set' keeps the simulation alive until interrupted.
            if service.simulation.active is not None:
                print("Location simulation is running. Press Ctrl+C to stop.")
                service.simulation.active.process.wait()
            return

        run_interactive(service)
    except KeyboardInterrupt:
        log.warning("Interrupted by user.")
    finally:
        service.shutdown()


if __name__ == "__main__":
    main()
    print("Exiting LocSim console. See you next time!")
