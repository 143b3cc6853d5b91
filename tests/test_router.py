from __future__ import annotations

import pytest

from devices.device import Device, TargetPlatform
from orchestrator.router import Backends, PlatformOptions, RouterError, plan_for
from ports.options import (
    AndroidAppOptions,
    BuildMode,
    FlutterAppOptions,
    IOSAppOptions,
    MacOSAppOptions,
)


class _Backend:
    def __init__(self, name: str) -> None:
        self.name = name
        self.calls = []

    def build(self, options) -> None:
        self.calls.append(("build", options))

    def execute(self, options, device) -> None:
        self.calls.append(("execute", options, device.id))

    def uninstall(self, app_id, device, flavor=None) -> None:
        self.calls.append(("uninstall", app_id, device.id, flavor))


def _options(package_name="com.example.app", bundle_id="com.example.ios") -> PlatformOptions:
    flutter = FlutterAppOptions(target="bundle.dart", build_mode=BuildMode.DEBUG, flavor="dev")
    return PlatformOptions(
        android=AndroidAppOptions(flutter=flutter, package_name=package_name),
        ios=IOSAppOptions(
            flutter=flutter, scheme="dev", configuration="Debug-dev", simulator=True, bundle_id=bundle_id
        ),
        macos=MacOSAppOptions(flutter=flutter, scheme="Runner", configuration="Debug", bundle_id="mac"),
    )


@pytest.fixture
def backends() -> Backends:
    return Backends(android=_Backend("android"), ios=_Backend("ios"), macos=_Backend("macos"))


def test_android_plan_binds_android_backend(backends) -> None:
    device = Device("Pixel", "emulator-5554", TargetPlatform.ANDROID, real=False)
    options = _options()

    plan = plan_for(device, options, backends)
    plan.build()
    plan.execute()
    plan.uninstall()

    assert backends.android.calls == [
        ("build", options.android),
        ("execute", options.android, "emulator-5554"),
        ("uninstall", "com.example.app", "emulator-5554", None),
    ]
    assert backends.ios.calls == [] and backends.macos.calls == []


def test_ios_uninstall_forwards_flavor(backends) -> None:
    device = Device("iPhone", "SIM-1", TargetPlatform.IOS, real=False)

    plan = plan_for(device, _options(), backends)
    plan.uninstall()

    assert backends.ios.calls == [("uninstall", "com.example.ios", "SIM-1", "dev")]


def test_no_identifier_means_no_uninstall(backends) -> None:
    android = Device("Pixel", "emulator-5554", TargetPlatform.ANDROID, real=False)
    ios = Device("iPhone", "SIM-1", TargetPlatform.IOS, real=False)
    options = _options(package_name=None, bundle_id=None)

    assert plan_for(android, options, backends).uninstall is None
    assert plan_for(ios, options, backends).uninstall is None


def test_macos_never_uninstalls(backends) -> None:
    device = Device("macOS", "macos", TargetPlatform.MACOS, real=True)

    plan = plan_for(device, _options(), backends)
    plan.execute()

    assert plan.uninstall is None
    assert backends.macos.calls == [("execute", _options().macos, "macos")]


def test_unknown_platform_is_rejected(backends) -> None:
    device = Device("Linux", "linux", "linux", real=True)  # type: ignore[arg-type]

    with pytest.raises(RouterError):
        plan_for(device, _options(), backends)
