"""Primary test-run pipeline (Discover → Configure → Build → Execute → Finalize)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from contracts.errors import DeviceResolutionError
from devices.device import Device
from devices.finder import DeviceFinder, FlutterDeviceLister
from discovery.bundler import TestBundler
from discovery.finder import TestFinder
from ports._process import ProcessRunner
from ports.android_port import AndroidTestBackend
from ports.ios_port import IOSTestBackend
from ports.macos_port import MacOSTestBackend
from ports.options import (
    DEFAULT_APP_SERVER_PORT,
    DEFAULT_TEST_SERVER_PORT,
    AndroidAppOptions,
    BuildMode,
    FlutterAppOptions,
    IOSAppOptions,
    MacOSAppOptions,
)
from project_config import ProjectConfig, load_project_config

from .analytics import Analytics
from .coverage_collector import DEFAULT_COVERAGE_PATH, CoverageCollector, resolve_coverage_packages
from .defines import DefinesReader, merge, merge_from_sources
from .phases import BUILD, EXECUTE, FINALIZE, PRE_EXECUTE, PhaseResult, run_phase
from .router import Backends, PlatformOptions, plan_for

DEFAULT_WAIT = 0

CoverageFactory = Callable[..., Any]


@dataclass(frozen=True)
class TestRequest:
    """Everything the ``test`` command was asked to do."""

    __test__ = False

    targets: Sequence[str] = ()
    excludes: Sequence[str] = ()
    devices: Sequence[str] = ()
    build_mode: BuildMode = BuildMode.DEBUG
    flavor: str | None = None
    defines: Sequence[str] = ()
    define_files: Sequence[str] = ()
    tags: str | None = None
    exclude_tags: str | None = None
    label: bool = True
    wait: int | None = None
    test_server_port: int = DEFAULT_TEST_SERVER_PORT
    app_server_port: int = DEFAULT_APP_SERVER_PORT
    uninstall: bool = True
    package_name: str | None = None
    bundle_id: str | None = None
    generate_bundle: bool = True
    coverage: bool = False
    coverage_ignore: Sequence[str] = ()
    coverage_packages: Sequence[str] = ()
    function_coverage: bool = False
    branch_coverage: bool = False
    coverage_path: str = DEFAULT_COVERAGE_PATH


@dataclass(frozen=True)
class RunOutcome:
    all_passed: bool
    phases: Tuple[PhaseResult, ...] = ()

    @property
    def exit_code(self) -> int:
        return 0 if self.all_passed else 1


@dataclass(frozen=True)
class ConfiguredRun:
    """State resolved before anything is built; read-only afterwards."""

    device: Device
    targets: Tuple[str, ...]
    dart_defines: Mapping[str, str]
    options: PlatformOptions
    coverage_packages: frozenset = field(default_factory=frozenset)


def _bool_define(value: bool) -> str:
    return "true" if value else "false"


def internal_defines(
    request: TestRequest,
    config: ProjectConfig,
    *,
    package_name: str | None,
    bundle_id: str | None,
    macos_bundle_id: str | None,
) -> Dict[str, str]:
    """Return the defines the runner injects for the in-app test runtime.

    Entries without a value are left out.
    """

    wait = request.wait if request.wait is not None else DEFAULT_WAIT
    values: Dict[str, Optional[str]] = {
        "UIRUN_WAIT": str(wait),
        "UIRUN_APP_PACKAGE_NAME": package_name,
        "UIRUN_APP_BUNDLE_ID": bundle_id,
        "UIRUN_MACOS_APP_BUNDLE_ID": macos_bundle_id,
        "UIRUN_ANDROID_APP_NAME": config.android.app_name,
        "UIRUN_IOS_APP_NAME": config.ios.app_name,
        "INTEGRATION_TEST_SHOULD_REPORT_RESULTS_TO_NATIVE": "false",
        "UIRUN_TEST_LABEL_ENABLED": _bool_define(request.label),
        "UIRUN_TEST_SERVER_PORT": str(request.test_server_port),
        "UIRUN_APP_SERVER_PORT": str(request.app_server_port),
        "COVERAGE_ENABLED": _bool_define(request.coverage),
    }
    return {key: value for key, value in values.items() if value is not None}


class TestOrchestrator:
    """Runs one ``test`` invocation against a single resolved device."""

    __test__ = False

    def __init__(
        self,
        *,
        project_directory: str | Path,
        config: ProjectConfig,
        test_finder: TestFinder,
        test_bundler: TestBundler,
        defines_reader: DefinesReader,
        device_finder: DeviceFinder,
        backends: Backends,
        process_runner: ProcessRunner,
        analytics: Analytics | None = None,
        coverage_factory: CoverageFactory = CoverageCollector,
        flutter_command: str = "flutter",
        logger: logging.Logger | None = None,
    ) -> None:
        self.project_directory = Path(project_directory)
        self.config = config
        self._finder = test_finder
        self._bundler = test_bundler
        self._defines = defines_reader
        self._devices = device_finder
        self._backends = backends
        self._process_runner = process_runner
        self._analytics = analytics
        self._coverage_factory = coverage_factory
        self._flutter = flutter_command
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def for_project(
        cls,
        project_directory: str | Path,
        *,
        env: Mapping[str, str] | None = None,
        flutter_command: str = "flutter",
        logger: logging.Logger | None = None,
    ) -> "TestOrchestrator":
        """Wire the default collaborators for the project in *project_directory*."""

        logger = logger or logging.getLogger(__name__)
        project_directory = Path(project_directory).resolve()
        config = load_project_config(project_directory)
        runner = ProcessRunner(logger)
        return cls(
            project_directory=project_directory,
            config=config,
            test_finder=TestFinder(project_directory, config.test_directory, logger),
            test_bundler=TestBundler(project_directory, config.test_directory, logger),
            defines_reader=DefinesReader(project_directory, logger),
            device_finder=DeviceFinder(FlutterDeviceLister(runner, flutter_command), logger),
            backends=Backends(
                android=AndroidTestBackend(project_directory, runner, logger),
                ios=IOSTestBackend(project_directory, runner, logger),
                macos=MacOSTestBackend(project_directory, runner, logger),
            ),
            process_runner=runner,
            analytics=Analytics(os.environ if env is None else env, logger),
            flutter_command=flutter_command,
            logger=logger,
        )

    # -- Discover ---------------------------------------------------------

    def discover(self, request: TestRequest) -> List[str]:
        suffix = self.config.test_file_suffix
        if request.targets:
            targets = self._finder.find_tests(request.targets, suffix)
        else:
            targets = self._finder.find_all_tests(
                excludes=set(request.excludes), test_file_suffix=suffix
            )
        self._logger.debug("Received %d test target(s)", len(targets))
        for target in targets:
            self._logger.debug("Received test target: %s", target)
        return targets

    def resolve_device(self, request: TestRequest) -> Device:
        devices = self._devices.find(request.devices)
        self._logger.debug("Received %d device(s) to run on", len(devices))
        if not devices:
            raise DeviceResolutionError("No devices attached")
        if len(devices) > 1:
            names = ", ".join(device.resolved_name for device in devices)
            raise DeviceResolutionError(
                f"Running on more than one device is not supported (matched: {names}). "
                "Pass a single --device."
            )
        device = devices[0]
        self._logger.debug("Received device: %s", device.resolved_name)
        return device

    # -- Configure --------------------------------------------------------

    def _flavor(self, request: TestRequest, configured: str | None, platform: str) -> str | None:
        flavor = request.flavor or configured
        if flavor is not None:
            self._logger.debug("Received %s flavor: %s", platform, flavor)
        return flavor

    def configure(
        self,
        request: TestRequest,
        device: Device,
        targets: Sequence[str],
        entrypoint: Path,
    ) -> ConfiguredRun:
        config = self.config
        android_flavor = self._flavor(request, config.android.flavor, "Android")
        ios_flavor = self._flavor(request, config.ios.flavor, "iOS")
        macos_flavor = self._flavor(request, config.macos.flavor, "macOS")

        package_name = request.package_name or config.android.package_name
        bundle_id = request.bundle_id or config.ios.bundle_id
        macos_bundle_id = request.bundle_id or config.macos.bundle_id

        custom = merge(self._defines.from_file(), self._defines.from_cli(request.defines))
        internal = internal_defines(
            request,
            config,
            package_name=package_name,
            bundle_id=bundle_id,
            macos_bundle_id=macos_bundle_id,
        )
        combined = merge(custom, internal)
        self._logger.debug(
            "Received %d define(s) (%d custom, %d internal)",
            len(combined),
            len(custom),
            len(internal),
        )
        for key in custom:
            self._logger.debug("Received custom define: %s", key)
        for key, value in internal.items():
            self._logger.debug("Received internal define: %s=%s", key, value)

        define_files = tuple(request.define_files)
        dart_defines = merge_from_sources(define_files, combined, self._defines)

        coverage_packages: frozenset = frozenset()
        if request.coverage:
            coverage_packages = frozenset(
                resolve_coverage_packages(
                    request.coverage_packages, config.name, self.project_directory
                )
            )

        flutter = FlutterAppOptions(
            target=str(entrypoint),
            build_mode=request.build_mode,
            dart_defines=dart_defines,
            dart_define_from_file_paths=define_files,
            command=self._flutter,
        )
        options = PlatformOptions(
            android=AndroidAppOptions(
                flutter=replace(flutter, flavor=android_flavor),
                package_name=package_name,
                app_server_port=request.app_server_port,
                test_server_port=request.test_server_port,
            ),
            ios=IOSAppOptions(
                flutter=replace(flutter, flavor=ios_flavor),
                scheme=request.build_mode.create_scheme(ios_flavor),
                configuration=request.build_mode.create_configuration(ios_flavor),
                simulator=not device.real,
                bundle_id=bundle_id,
                app_server_port=request.app_server_port,
                test_server_port=request.test_server_port,
            ),
            macos=MacOSAppOptions(
                flutter=replace(flutter, flavor=macos_flavor),
                scheme=request.build_mode.create_scheme(macos_flavor),
                configuration=request.build_mode.create_configuration(macos_flavor),
                bundle_id=macos_bundle_id,
                app_server_port=request.app_server_port,
                test_server_port=request.test_server_port,
            ),
        )
        return ConfiguredRun(
            device=device,
            targets=tuple(targets),
            dart_defines=dart_defines,
            options=options,
            coverage_packages=coverage_packages,
        )

    def _create_collector(self, request: TestRequest, configured: ConfiguredRun) -> Any:
        return self._coverage_factory(
            package_name=self.config.name,
            package_directory=self.project_directory,
            platform=configured.device.target_platform,
            library_names=configured.coverage_packages,
            log_runner=self._process_runner,
            device=configured.device,
            function_coverage=request.function_coverage,
            branch_coverage=request.branch_coverage,
            ignore_globs=tuple(request.coverage_ignore),
            coverage_path=request.coverage_path,
            logger=self._logger,
        )

    # -- Run --------------------------------------------------------------

    def run(self, request: TestRequest) -> RunOutcome:
        """Run the whole pipeline and return its outcome.

        Configuration, device and build errors propagate, as does a failing
        post-run uninstall. A failing test run is reported through the
        outcome instead.
        """

        if self._analytics is not None:
            self._analytics.send_command("test")

        targets = self.discover(request)
        if request.tags is not None:
            self._logger.debug("Received tag(s): %s", request.tags)
        if request.exclude_tags is not None:
            self._logger.debug("Received exclude tag(s): %s", request.exclude_tags)
        entrypoint = self._bundler.bundled_test_file
        if request.generate_bundle:
            self._bundler.create_test_bundle(targets, request.tags, request.exclude_tags)

        device = self.resolve_device(request)
        configured = self.configure(request, device, targets, entrypoint)
        plan = plan_for(device, configured.options, self._backends)
        uninstall = plan.uninstall if request.uninstall else None

        phases: List[PhaseResult] = []
        if uninstall is not None:
            self._logger.debug("Will uninstall apps before running tests")
        phases.append(run_phase(PRE_EXECUTE, uninstall, self._logger))
        phases.append(run_phase(BUILD, plan.build, self._logger))

        collector = None
        if request.coverage:
            collector = self._create_collector(request, configured)
            collector.start()

        try:
            executed = run_phase(EXECUTE, plan.execute, self._logger)
            phases.append(executed)
        finally:
            try:
                phases.append(run_phase(FINALIZE, uninstall, self._logger))
            finally:
                if collector is not None:
                    collector.collect_coverage_data()

        return RunOutcome(all_passed=executed.ok, phases=tuple(phases))


def run_tests(
    request: TestRequest,
    project_directory: str | Path = ".",
    *,
    env: Mapping[str, str] | None = None,
    flutter_command: str = "flutter",
    logger: logging.Logger | None = None,
) -> RunOutcome:
    """Run *request* against the project in *project_directory*."""

    orchestrator = TestOrchestrator.for_project(
        project_directory, env=env, flutter_command=flutter_command, logger=logger
    )
    return orchestrator.run(request)


__all__ = [
    "DEFAULT_WAIT",
    "ConfiguredRun",
    "RunOutcome",
    "TestOrchestrator",
    "TestRequest",
    "internal_defines",
    "run_tests",
]
