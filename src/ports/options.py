"""Per-platform build options derived once per run."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Mapping, Sequence

from devices.device import Device

DEFAULT_TEST_SERVER_PORT = 8081
DEFAULT_APP_SERVER_PORT = 8082


class BuildMode(str, Enum):
    DEBUG = "debug"
    PROFILE = "profile"
    RELEASE = "release"

    @property
    def title(self) -> str:
        return self.value.capitalize()

    @property
    def flag(self) -> str:
        return f"--{self.value}"

    def create_scheme(self, flavor: str | None) -> str:
        return flavor or "Runner"

    def create_configuration(self, flavor: str | None) -> str:
        if flavor is None:
            return self.title
        return f"{self.title}-{flavor}"

    def gradle_variant(self, flavor: str | None) -> str:
        """Return the Gradle variant name, e.g. ``DevDebug`` or ``Release``."""

        if flavor is None:
            return self.title
        return f"{flavor[:1].upper()}{flavor[1:]}{self.title}"


def encode_gradle_dart_defines(dart_defines: Mapping[str, str]) -> str:
    """Encode defines the way the Flutter Gradle plugin expects them."""

    encoded = (
        base64.b64encode(f"{key}={value}".encode("utf-8")).decode("ascii")
        for key, value in dart_defines.items()
    )
    return ",".join(encoded)


@dataclass(frozen=True)
class FlutterAppOptions:
    """Options shared by every platform build."""

    target: str
    build_mode: BuildMode
    flavor: str | None = None
    dart_defines: Mapping[str, str] = field(default_factory=dict)
    dart_define_from_file_paths: Sequence[str] = ()
    command: str = "flutter"

    def dart_define_args(self) -> List[str]:
        args: List[str] = []
        for key, value in self.dart_defines.items():
            args.append(f"--dart-define={key}={value}")
        for path in self.dart_define_from_file_paths:
            args.append(f"--dart-define-from-file={path}")
        return args


@dataclass(frozen=True)
class AndroidAppOptions:
    flutter: FlutterAppOptions
    package_name: str | None = None
    app_server_port: int = DEFAULT_APP_SERVER_PORT
    test_server_port: int = DEFAULT_TEST_SERVER_PORT

    @property
    def variant(self) -> str:
        return self.flutter.build_mode.gradle_variant(self.flutter.flavor)

    def _gradle_properties(self) -> List[str]:
        props = [f"-Ptarget={self.flutter.target}"]
        if self.flutter.dart_defines:
            props.append(f"-Pdart-defines={encode_gradle_dart_defines(self.flutter.dart_defines)}")
        return props

    def to_gradle_assemble_invocation(self, *, is_windows: bool = False) -> List[str]:
        gradlew = "gradlew.bat" if is_windows else "./gradlew"
        return [
            gradlew,
            f":app:assemble{self.variant}",
            f":app:assemble{self.variant}AndroidTest",
            *self._gradle_properties(),
        ]

    def to_gradle_connected_test_invocation(self, *, is_windows: bool = False) -> List[str]:
        gradlew = "gradlew.bat" if is_windows else "./gradlew"
        return [
            gradlew,
            f":app:connected{self.variant}AndroidTest",
            *self._gradle_properties(),
        ]


@dataclass(frozen=True)
class IOSAppOptions:
    flutter: FlutterAppOptions
    scheme: str
    configuration: str
    simulator: bool
    bundle_id: str | None = None
    app_server_port: int = DEFAULT_APP_SERVER_PORT
    test_server_port: int = DEFAULT_TEST_SERVER_PORT

    @property
    def sdk(self) -> str:
        return "iphonesimulator" if self.simulator else "iphoneos"

    @property
    def generic_destination(self) -> str:
        return "generic/platform=iOS Simulator" if self.simulator else "generic/platform=iOS"

    def to_flutter_build_invocation(self) -> List[str]:
        cmd = [
            self.flutter.command,
            "build",
            "ios",
            "--config-only",
            "--no-codesign",
            self.flutter.build_mode.flag,
        ]
        if self.simulator:
            cmd.append("--simulator")
        if self.flutter.flavor is not None:
            cmd.append(f"--flavor={self.flutter.flavor}")
        cmd.append(f"--target={self.flutter.target}")
        cmd.extend(self.flutter.dart_define_args())
        return cmd

    def build_for_testing_invocation(self, derived_data: Path) -> List[str]:
        return [
            "xcodebuild",
            "build-for-testing",
            "-workspace",
            "Runner.xcworkspace",
            "-scheme",
            self.scheme,
            "-configuration",
            self.configuration,
            "-sdk",
            self.sdk,
            "-destination",
            self.generic_destination,
            "-quiet",
            "-derivedDataPath",
            str(derived_data),
            "OTHER_SWIFT_FLAGS=$(inherited) -D UIRUN_ENABLED",
        ]

    def test_without_building_invocation(
        self, device: Device, *, xctestrun: Path, result_bundle: Path
    ) -> List[str]:
        return [
            "xcodebuild",
            "test-without-building",
            "-xctestrun",
            str(xctestrun),
            "-only-testing",
            "RunnerUITests/RunnerUITests",
            "-destination",
            f"platform={'iOS Simulator' if self.simulator else 'iOS'},id={device.id}",
            "-resultBundlePath",
            str(result_bundle),
        ]


@dataclass(frozen=True)
class MacOSAppOptions:
    flutter: FlutterAppOptions
    scheme: str
    configuration: str
    bundle_id: str | None = None
    app_server_port: int = DEFAULT_APP_SERVER_PORT
    test_server_port: int = DEFAULT_TEST_SERVER_PORT

    def to_flutter_build_invocation(self) -> List[str]:
        cmd = [
            self.flutter.command,
            "build",
            "macos",
            "--config-only",
            self.flutter.build_mode.flag,
        ]
        if self.flutter.flavor is not None:
            cmd.append(f"--flavor={self.flutter.flavor}")
        cmd.append(f"--target={self.flutter.target}")
        cmd.extend(self.flutter.dart_define_args())
        return cmd

    def build_for_testing_invocation(self, derived_data: Path) -> List[str]:
        return [
            "xcodebuild",
            "build-for-testing",
            "-workspace",
            "Runner.xcworkspace",
            "-scheme",
            self.scheme,
            "-configuration",
            self.configuration,
            "-sdk",
            "macosx",
            "-destination",
            "platform=macOS",
            "-quiet",
            "-derivedDataPath",
            str(derived_data),
            "OTHER_SWIFT_FLAGS=$(inherited) -D UIRUN_ENABLED",
        ]

    def test_without_building_invocation(self, *, xctestrun: Path, result_bundle: Path) -> List[str]:
        return [
            "xcodebuild",
            "test-without-building",
            "-xctestrun",
            str(xctestrun),
            "-only-testing",
            "RunnerUITests/RunnerUITests",
            "-destination",
            "platform=macOS",
            "-resultBundlePath",
            str(result_bundle),
        ]


__all__ = [
    "DEFAULT_APP_SERVER_PORT",
    "DEFAULT_TEST_SERVER_PORT",
    "AndroidAppOptions",
    "BuildMode",
    "FlutterAppOptions",
    "IOSAppOptions",
    "MacOSAppOptions",
    "encode_gradle_dart_defines",
]
