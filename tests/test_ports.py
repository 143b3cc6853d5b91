from __future__ import annotations

import sys
import threading
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest

from contracts.errors import BuildFailure, ExecutionFailure, UninstallFailure
from devices.device import Device, TargetPlatform
from ports import (
    AndroidAppOptions,
    AndroidTestBackend,
    BuildMode,
    FlutterAppOptions,
    IOSAppOptions,
    IOSTestBackend,
    MacOSAppOptions,
    MacOSTestBackend,
    ProcessRunner,
)
from ports.options import encode_gradle_dart_defines

EMULATOR = Device(name="Pixel", id="emulator-5554", target_platform=TargetPlatform.ANDROID, real=False)
SIMULATOR = Device(name="iPhone 15", id="SIM-1", target_platform=TargetPlatform.IOS, real=False)
IPHONE = Device(name="iPhone", id="00008110", target_platform=TargetPlatform.IOS, real=True)
MAC = Device(name="macOS", id="macos", target_platform=TargetPlatform.MACOS, real=True)


def _flutter(flavor=None, defines=None) -> FlutterAppOptions:
    return FlutterAppOptions(
        target="/app/integration_test/test_bundle.dart",
        build_mode=BuildMode.DEBUG,
        flavor=flavor,
        dart_defines=defines if defines is not None else {"A": "1"},
    )


def test_build_mode_names() -> None:
    assert BuildMode.DEBUG.create_scheme(None) == "Runner"
    assert BuildMode.DEBUG.create_scheme("dev") == "dev"
    assert BuildMode.RELEASE.create_configuration(None) == "Release"
    assert BuildMode.PROFILE.create_configuration("dev") == "Profile-dev"
    assert BuildMode.DEBUG.gradle_variant("dev") == "DevDebug"
    assert BuildMode.DEBUG.gradle_variant(None) == "Debug"


def test_gradle_defines_are_base64_encoded() -> None:
    assert encode_gradle_dart_defines({"A": "1", "B": "x"}) == "QT0x,Qj14"


def test_android_build_runs_gradle_assemble(tmp_path, runner) -> None:
    backend = AndroidTestBackend(tmp_path, runner, is_windows=False)

    backend.build(AndroidAppOptions(flutter=_flutter("dev"), package_name="com.example.app"))

    call = runner.calls[0]
    assert call.args == (
        "./gradlew",
        ":app:assembleDevDebug",
        ":app:assembleDevDebugAndroidTest",
        "-Ptarget=/app/integration_test/test_bundle.dart",
        "-Pdart-defines=QT0x",
    )
    assert call.cwd == tmp_path / "android"


def test_android_execute_targets_the_device(tmp_path, runner) -> None:
    backend = AndroidTestBackend(tmp_path, runner, is_windows=True)

    backend.execute(AndroidAppOptions(flutter=_flutter()), EMULATOR)

    call = runner.calls[0]
    assert call.args[:2] == ("gradlew.bat", ":app:connectedDebugAndroidTest")
    assert call.env == {"ANDROID_SERIAL": "emulator-5554"}


def test_android_build_failure_carries_diagnostics(tmp_path, runner) -> None:
    runner.respond("assemble", output="FAILURE: Build failed with an exception.", returncode=1)
    backend = AndroidTestBackend(tmp_path, runner, is_windows=False)

    with pytest.raises(BuildFailure) as excinfo:
        backend.build(AndroidAppOptions(flutter=_flutter()))

    failure = excinfo.value
    assert failure.returncode == 1
    assert failure.command[0] == "./gradlew"
    assert "Build failed" in failure.output
    assert "phase: build" in failure.detail()


def test_missing_toolchain_is_a_build_failure(tmp_path) -> None:
    class MissingRunner:
        def run(self, cmd, *, cwd=None, env=None, check=True):
            raise FileNotFoundError(2, "No such file or directory", cmd[0])

    backend = AndroidTestBackend(tmp_path, MissingRunner(), is_windows=False)

    with pytest.raises(BuildFailure, match="No such file"):
        backend.build(AndroidAppOptions(flutter=_flutter()))


def test_android_uninstall_removes_app_and_test_package(tmp_path, runner) -> None:
    AndroidTestBackend(tmp_path, runner).uninstall("com.example.app", EMULATOR)

    assert runner.lines() == [
        "adb -s emulator-5554 uninstall com.example.app",
        "adb -s emulator-5554 uninstall com.example.app.test",
    ]


def test_android_uninstall_failure(tmp_path, runner) -> None:
    runner.respond("uninstall", output="Failure [DELETE_FAILED_INTERNAL_ERROR]", returncode=1)

    with pytest.raises(UninstallFailure):
        AndroidTestBackend(tmp_path, runner).uninstall("com.example.app", EMULATOR)


def _ios(simulator=True, flavor=None) -> IOSAppOptions:
    return IOSAppOptions(
        flutter=_flutter(flavor),
        scheme=BuildMode.DEBUG.create_scheme(flavor),
        configuration=BuildMode.DEBUG.create_configuration(flavor),
        simulator=simulator,
        bundle_id="com.example.ios",
    )


def test_ios_flutter_build_forwards_defines() -> None:
    cmd = _ios(flavor="dev").to_flutter_build_invocation()

    assert cmd[:4] == ["flutter", "build", "ios", "--config-only"]
    assert "--simulator" in cmd
    assert "--flavor=dev" in cmd
    assert "--dart-define=A=1" in cmd


def test_ios_build_runs_flutter_then_xcodebuild(tmp_path, runner) -> None:
    backend = IOSTestBackend(tmp_path, runner)

    backend.build(_ios())

    assert [call.args[0] for call in runner.calls] == ["flutter", "xcodebuild"]
    xcodebuild = runner.calls[1]
    assert "build-for-testing" in xcodebuild.args
    assert xcodebuild.cwd == tmp_path / "ios"
    assert str(tmp_path / "build" / "ios_integ") in xcodebuild.args


def test_ios_execute_uses_the_built_xctestrun(tmp_path, runner) -> None:
    backend = IOSTestBackend(tmp_path, runner)
    products = backend.derived_data / "Build" / "Products"
    products.mkdir(parents=True)
    xctestrun = products / "Runner_iphonesimulator17.2-arm64.xctestrun"
    xctestrun.write_text("<plist/>", encoding="utf-8")

    backend.execute(_ios(), SIMULATOR)

    args = runner.calls[0].args
    assert args[:2] == ("xcodebuild", "test-without-building")
    assert str(xctestrun) in args
    assert "platform=iOS Simulator,id=SIM-1" in args


def test_ios_execute_without_build_products_fails(tmp_path, runner) -> None:
    with pytest.raises(ExecutionFailure, match="xctestrun"):
        IOSTestBackend(tmp_path, runner).execute(_ios(), SIMULATOR)
    assert runner.calls == []


def test_ios_uninstall_on_simulator_and_device(tmp_path, runner) -> None:
    backend = IOSTestBackend(tmp_path, runner)

    backend.uninstall("com.example.ios", SIMULATOR)
    backend.uninstall("com.example.ios", IPHONE, flavor="dev")

    assert runner.lines() == [
        "xcrun simctl uninstall SIM-1 com.example.ios",
        "xcrun simctl uninstall SIM-1 com.example.ios.RunnerUITests.xctrunner",
        "ideviceinstaller --udid 00008110 --uninstall com.example.ios",
        "ideviceinstaller --udid 00008110 --uninstall com.example.ios.RunnerUITests.xctrunner",
    ]


def test_macos_backend(tmp_path, runner) -> None:
    backend = MacOSTestBackend(tmp_path, runner)
    options = MacOSAppOptions(flutter=_flutter(), scheme="Runner", configuration="Debug")
    products = backend.derived_data / "Build" / "Products"
    products.mkdir(parents=True)
    (products / "Runner_macosx14.2-arm64.xctestrun").write_text("<plist/>", encoding="utf-8")

    backend.build(options)
    backend.execute(options, MAC)

    assert runner.calls[0].args[:3] == ("flutter", "build", "macos")
    assert "macosx" in runner.calls[1].args
    assert "platform=macOS" in runner.calls[2].args
    assert not hasattr(backend, "uninstall")


def test_options_are_immutable() -> None:
    options = AndroidAppOptions(flutter=_flutter())

    with pytest.raises(FrozenInstanceError):
        options.package_name = "other"  # type: ignore[misc]
    assert Path(options.flutter.target).name == "test_bundle.dart"


def test_stream_feeds_lines_until_stopped() -> None:
    seen = []
    first_line = threading.Event()

    def listener(line: str) -> None:
        seen.append(line)
        first_line.set()

    script = "import time; print('VM service ready', flush=True); time.sleep(60)"
    stream = ProcessRunner().stream([sys.executable, "-c", script], listener)

    assert first_line.wait(timeout=10)
    stream.stop(timeout=10)

    assert seen == ["VM service ready"]
