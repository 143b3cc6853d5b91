"""Android backend driving Gradle and adb."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from contracts.errors import BuildFailure, ExecutionFailure, UninstallFailure
from devices.device import Device

from ._process import ProcessRunner
from .base import invoke
from .options import AndroidAppOptions

ADB = "adb"


class AndroidTestBackend:
    """Builds the app and its instrumentation APK, then runs it on a device."""

    def __init__(
        self,
        project_directory: str | Path,
        runner: ProcessRunner,
        logger: logging.Logger | None = None,
        *,
        is_windows: bool | None = None,
    ) -> None:
        self._android_dir = Path(project_directory) / "android"
        self._runner = runner
        self._logger = logger or logging.getLogger(__name__)
        self._is_windows = sys.platform.startswith("win") if is_windows is None else is_windows

    def build(self, options: AndroidAppOptions) -> None:
        self._logger.info("Building apk with entrypoint %s...", Path(options.flutter.target).name)
        invoke(
            self._runner,
            options.to_gradle_assemble_invocation(is_windows=self._is_windows),
            failure=BuildFailure,
            message="Failed to build app with entrypoint test_bundle.dart",
            cwd=self._android_dir,
            logger=self._logger,
        )
        self._logger.info("Completed building apk (%s)", options.variant)

    def execute(self, options: AndroidAppOptions, device: Device) -> None:
        self._logger.info("Running tests on %s...", device.resolved_name)
        invoke(
            self._runner,
            options.to_gradle_connected_test_invocation(is_windows=self._is_windows),
            failure=ExecutionFailure,
            message=f"Tests failed on {device.resolved_name}",
            cwd=self._android_dir,
            env={"ANDROID_SERIAL": device.id},
            logger=self._logger,
        )
        self._logger.info("Tests passed on %s", device.resolved_name)

    def uninstall(self, app_id: str, device: Device, flavor: str | None = None) -> None:
        self._logger.debug("Uninstalling %s from %s", app_id, device.resolved_name)
        for package in (app_id, f"{app_id}.test"):
            invoke(
                self._runner,
                [ADB, "-s", device.id, "uninstall", package],
                failure=UninstallFailure,
                message=f"Failed to uninstall {package} from {device.resolved_name}",
                logger=self._logger,
            )


__all__ = ["ADB", "AndroidTestBackend"]
