from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Device:
    """A connected iOS device as reported by device discovery."""
    udid: str
    name: str = ""
    version: Optional[str] = None

    def _version_part(self, index: int) -> Optional[int]:
        if not self.version:
            return None
        parts = self.version.split(".")
        if len(parts) <= index:
            return None
        try:
            return int(parts[index])
        except ValueError:
            return None

    @property
    def major_version(self) -> Optional[int]:
        return self._version_part(0)

    @property
    def minor_version(self) -> int:
        return self._version_part(1) or 0

    @property
    def major_minor_version(self) -> Optional[str]:
        """The iOS version in major.minor format, without a revision number."""
        if self.major_version is None:
            return None
        return f"{self.major_version}.{self.minor_version}"
