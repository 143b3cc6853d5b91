"""iOS backend driving ``flutter build ios`` and ``xcodebuild``."""

from __future__ import annotations

import logging
from pathlib import Path

from contracts.errors import BuildFailure, ExecutionFailure, UninstallFailure
from devices.device import Device

from ._process import ProcessRunner
from ._xcode import find_xctestrun, result_bundle_path
from .base import invoke
from .options import IOSAppOptions

TEST_RUNNER_SUFFIX = ".RunnerUITests.xctrunner"


class IOSTestBackend:
    """Builds the XCUITest runner for simulators or devices and runs it."""

    def __init__(
        self,
        project_directory: str | Path,
        runner: ProcessRunner,
        logger: logging.Logger | None = None,
    ) -> None:
        self._project_dir = Path(project_directory)
        self._runner = runner
        self._logger = logger or logging.getLogger(__name__)

    @property
    def derived_data(self) -> Path:
        return self._project_dir / "build" / "ios_integ"

    def build(self, options: IOSAppOptions) -> None:
        self._logger.info(
            "Building app with entrypoint %s for iOS %s...",
            Path(options.flutter.target).name,
            "simulator" if options.simulator else "device",
        )
        invoke(
            self._runner,
            options.to_flutter_build_invocation(),
            failure=BuildFailure,
            message="Failed to build app with entrypoint test_bundle.dart",
            cwd=self._project_dir,
            logger=self._logger,
        )
        invoke(
            self._runner,
            options.build_for_testing_invocation(self.derived_data),
            failure=BuildFailure,
            message=f"Failed to build scheme {options.scheme} for testing",
            cwd=self._project_dir / "ios",
            logger=self._logger,
        )
        self._logger.info("Completed building %s (%s)", options.scheme, options.configuration)

    def execute(self, options: IOSAppOptions, device: Device) -> None:
        xctestrun = find_xctestrun(self.derived_data, options.scheme, options.sdk)
        result_bundle = result_bundle_path(self._project_dir, "ios")
        self._logger.debug("Using %s", xctestrun)
        self._logger.info("Running tests on %s...", device.resolved_name)
        invoke(
            self._runner,
            options.test_without_building_invocation(
                device, xctestrun=xctestrun, result_bundle=result_bundle
            ),
            failure=ExecutionFailure,
            message=f"Tests failed on {device.resolved_name}",
            cwd=self._project_dir / "ios",
            logger=self._logger,
        )
        self._logger.info("Tests passed on %s (results in %s)", device.resolved_name, result_bundle)

    def uninstall(self, app_id: str, device: Device, flavor: str | None = None) -> None:
        self._logger.debug(
            "Uninstalling %s%s from %s",
            app_id,
            f" (flavor {flavor})" if flavor else "",
            device.resolved_name,
        )
        for bundle_id in (app_id, f"{app_id}{TEST_RUNNER_SUFFIX}"):
            if device.real:
                cmd = ["ideviceinstaller", "--udid", device.id, "--uninstall", bundle_id]
            else:
                cmd = ["xcrun", "simctl", "uninstall", device.id, bundle_id]
            invoke(
                self._runner,
                cmd,
                failure=UninstallFailure,
                message=f"Failed to uninstall {bundle_id} from {device.resolved_name}",
                logger=self._logger,
            )


__all__ = ["IOSTestBackend", "TEST_RUNNER_SUFFIX"]
