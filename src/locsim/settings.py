"""
This module contains the configuration settings for the LocSim application.
It defines paths, helper discovery candidates, supervision timings and
logging configuration. Values can be overridden from a `.env` file or the
process environment, and the MODIFIABLE_SETTINGS from `overrides.json`.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
APP_HOME = pathlib.Path(os.getenv("LOCSIM_HOME", pathlib.Path.home() / ".locsim"))
LOGS_DIR = APP_HOME / "logs"
LOG_FILE_PATH = LOGS_DIR / "locsim.log"
OVERRIDES_JSON_PATH = APP_HOME / "overrides.json"

#* --- Helper Executable Discovery ---
PMD3_EXECUTABLE_NAME = "pymobiledevice3"
# Explicit path wins over every other lookup when set.
PMD3_PATH = os.getenv("PMD3_PATH", "")
PMD3_CANDIDATE_PATHS = [
    "/Library/Frameworks/Python.framework/Versions/3.12/bin/pymobiledevice3",
    "/Library/Frameworks/Python.framework/Versions/3.13/bin/pymobiledevice3",
    "/opt/homebrew/bin/pymobiledevice3",
    "/usr/local/bin/pymobiledevice3",
]
LOGIN_SHELL = os.getenv("LOGIN_SHELL", "/bin/zsh")
WHICH_LOOKUP_TIMEOUT = 10 # seconds

# Prepended to the inherited PATH of the simulation subprocess.
HELPER_EXTRA_PATH_DIRS = [
    "/opt/homebrew/bin",
    "/usr/local/bin",
    "/Library/Frameworks/Python.framework/Versions/3.12/bin",
]
DEFAULT_INHERITED_PATH = "/usr/bin:/bin"

#* --- Device Settings ---
MINIMUM_TUNNEL_IOS_VERSION = 17

#* --- Application variables ---
VERBOSE_LOGGING = False

#* --- MODIFIABLE SETTINGS (Changeable at runtime via 'config' command) ---
MODIFIABLE_SETTINGS = {
    # Tunnel daemon
    "TUNNEL_POLL_INTERVAL", "TUNNEL_POLL_ATTEMPTS", "PRIVILEGED_LAUNCH_TIMEOUT",
    # Simulation process
    "SIMULATION_WARMUP_SECONDS", "TERMINATION_GRACE_SECONDS", "STDERR_TAIL_LINES",
}

#* --- Default Values for Modifiable Settings ---
TUNNEL_POLL_INTERVAL = 0.5      # seconds between liveness probes
TUNNEL_POLL_ATTEMPTS = 30       # 15 second ceiling with the default interval
PRIVILEGED_LAUNCH_TIMEOUT = 120 # the user has to answer a credential prompt
SIMULATION_WARMUP_SECONDS = 2.0
TERMINATION_GRACE_SECONDS = 1.0 # SIGTERM -> SIGINT escalation delay
STDERR_TAIL_LINES = 200
