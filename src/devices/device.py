"""Device descriptors produced by the device finder."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TargetPlatform(str, Enum):
    ANDROID = "android"
    IOS = "ios"
    MACOS = "macos"

    @classmethod
    def from_flutter(cls, value: str) -> "TargetPlatform | None":
        """Map a ``targetPlatform`` reported by ``flutter devices --machine``."""

        normalised = value.strip().lower()
        if normalised.startswith("android"):
            return cls.ANDROID
        if normalised == "ios":
            return cls.IOS
        if normalised.startswith("darwin"):
            return cls.MACOS
        return None


@dataclass(frozen=True)
class Device:
    """Single device or simulator a run executes on."""

    name: str
    id: str
    target_platform: TargetPlatform
    real: bool

    @property
    def resolved_name(self) -> str:
        if self.name == self.id:
            return self.name
        return f"{self.name} ({self.id})"

    @property
    def description(self) -> str:
        kind = "device" if self.real else ("emulator" if self.target_platform is TargetPlatform.ANDROID else "simulator")
        return f"{self.resolved_name} [{self.target_platform.value} {kind}]"


__all__ = ["Device", "TargetPlatform"]
