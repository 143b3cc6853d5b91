"""Platform dispatch: one resolved device selects one backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from devices.device import Device, TargetPlatform
from ports.base import TestBackend, UninstallingBackend
from ports.options import AndroidAppOptions, IOSAppOptions, MacOSAppOptions


class RouterError(RuntimeError):
    """Raised when no backend is registered for the device's platform."""


@dataclass(frozen=True)
class Backends:
    android: UninstallingBackend
    ios: UninstallingBackend
    macos: TestBackend


@dataclass(frozen=True)
class PlatformOptions:
    android: AndroidAppOptions
    ios: IOSAppOptions
    macos: MacOSAppOptions


@dataclass(frozen=True)
class PlatformPlan:
    """Phase actions bound to the backend and options of one platform.

    ``uninstall`` is ``None`` when the platform cannot uninstall or no app
    identifier is configured.
    """

    platform: TargetPlatform
    build: Callable[[], None]
    execute: Callable[[], None]
    uninstall: Callable[[], None] | None


def plan_for(device: Device, options: PlatformOptions, backends: Backends) -> PlatformPlan:
    platform = device.target_platform

    if platform is TargetPlatform.ANDROID:
        android = options.android
        backend = backends.android
        package_name = android.package_name
        return PlatformPlan(
            platform=platform,
            build=lambda: backend.build(android),
            execute=lambda: backend.execute(android, device),
            uninstall=(lambda: backend.uninstall(package_name, device)) if package_name else None,
        )

    if platform is TargetPlatform.IOS:
        ios = options.ios
        backend = backends.ios
        bundle_id = ios.bundle_id
        return PlatformPlan(
            platform=platform,
            build=lambda: backend.build(ios),
            execute=lambda: backend.execute(ios, device),
            uninstall=(
                (lambda: backend.uninstall(bundle_id, device, ios.flutter.flavor)) if bundle_id else None
            ),
        )

    if platform is TargetPlatform.MACOS:
        macos = options.macos
        backend = backends.macos
        return PlatformPlan(
            platform=platform,
            build=lambda: backend.build(macos),
            execute=lambda: backend.execute(macos, device),
            uninstall=None,
        )

    raise RouterError(f"Unsupported target platform '{platform}'")


__all__ = ["Backends", "PlatformOptions", "PlatformPlan", "RouterError", "plan_for"]
