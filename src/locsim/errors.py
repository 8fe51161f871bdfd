"""
Result and error types shared by the supervision subsystem and the device layer.

Supervision failures are never raised: every public operation returns an
`Outcome` whose truthiness is the success flag and which carries the
diagnostic text. `DeviceError` is reserved for the device layer, where a
failure has to reach the user together with remediation instructions.
"""
import enum
from dataclasses import dataclass
from typing import Optional


class ErrorKind(enum.Enum):
    HELPER_UNAVAILABLE = "helper_unavailable"
    TUNNEL_LAUNCH_DENIED = "tunnel_launch_denied"
    TUNNEL_TIMEOUT = "tunnel_timeout"
    PROCESS_SPAWN_FAILED = "process_spawn_failed"
    PROCESS_EXITED_EARLY = "process_exited_early"
    LEGACY_BACKEND_FAILED = "legacy_backend_failed"


@dataclass(frozen=True)
class Outcome:
    """Success/failure of a supervision operation plus its diagnostic."""
    ok: bool
    error: Optional[ErrorKind] = None
    detail: str = ""
    exit_code: Optional[int] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, detail: str = "") -> "Outcome":
        return cls(ok=True, detail=detail)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str = "", exit_code: Optional[int] = None) -> "Outcome":
        return cls(ok=False, error=error, detail=detail, exit_code=exit_code)

    def describe(self) -> str:
        """Returns a one-line human readable summary."""
        if self.ok:
            return f"OK{': ' + self.detail if self.detail else ''}"
        text = f"FAILED ({self.error.value})"
        if self.exit_code is not None:
            text += f" [exit code {self.exit_code}]"
        if self.detail:
            text += f": {self.detail}"
        return text


class DeviceError(Exception):
    """Raised by the device layer with a message the user can act on."""

    def __init__(self, message: str, outcome: Optional[Outcome] = None) -> None:
        super().__init__(message)
        self.outcome = outcome
