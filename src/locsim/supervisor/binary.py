import os
import shutil
import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HelperAvailability:
    """Whether the helper executable was found, resolved once at startup."""
    available: bool
    executable_path: Optional[str] = None

    @property
    def executable_name(self) -> Optional[str]:
        return os.path.basename(self.executable_path) if self.executable_path else None


def is_executable_file(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


class BinaryLocator:
    """
    Resolves the absolute path of the helper executable.

    Lookup order: explicit path, fixed candidate locations, a login-shell
    `which`, and finally `shutil.which` on the current PATH.
    """

    def __init__(
        self,
        executable_name: str,
        candidates: Sequence[str] = (),
        explicit_path: str = "",
        login_shell: Optional[str] = None,
        which_timeout: float = 10,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        is_executable: Callable[[str], bool] = is_executable_file,
    ) -> None:
        self.executable_name = executable_name
        self.candidates: List[str] = list(candidates)
        self.explicit_path = explicit_path
        self.login_shell = login_shell
        self.which_timeout = which_timeout
        self._run = runner
        self._is_executable = is_executable

    def _which_via_login_shell(self) -> Optional[str]:
        """Asks a login shell, so user profile PATH additions are honoured."""
        if not self.login_shell or not self._is_executable(self.login_shell):
            return None
        try:
            result = self._run(
                [self.login_shell, "-l", "-c", f"which {self.executable_name}"],
                capture_output=True, text=True, timeout=self.which_timeout, check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            log.error(f"Failed to look up {self.executable_name} via {self.login_shell}: {e}")
            return None
        path = (result.stdout or "").strip()
        return path if path and self._is_executable(path) else None

    def resolve(self) -> Optional[str]:
        """
        Returns the absolute path of the helper, or None if it cannot be found.
        """
        if self.explicit_path:
            if self._is_executable(self.explicit_path):
                return os.path.abspath(self.explicit_path)
            log.warning(f"Configured helper path '{self.explicit_path}' is not an executable file. Falling back to discovery.")

        for path in self.candidates:
            if self._is_executable(path):
                return path

        path = self._which_via_login_shell()
        if path:
            return path

        path = shutil.which(self.executable_name)
        return os.path.abspath(path) if path else None


def locate_helper(locator: BinaryLocator) -> HelperAvailability:
    """Resolves the helper once and freezes the result."""
    path = locator.resolve()
    if path:
        log.info(f"Found {locator.executable_name} at {path}")
        return HelperAvailability(available=True, executable_path=path)
    log.error(f"{locator.executable_name} not found. Location simulation for iOS 17+ devices is unavailable.")
    return HelperAvailability(available=False)
