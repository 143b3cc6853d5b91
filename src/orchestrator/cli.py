"""Command-line entry point: ``uirun test`` and ``uirun devices``."""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional

from contracts.errors import RunnerError, ToolchainFailure
from devices.finder import DeviceFinder, FlutterDeviceLister
from ports._process import ProcessRunner
from ports.options import DEFAULT_APP_SERVER_PORT, DEFAULT_TEST_SERVER_PORT, BuildMode

from . import __version__
from .analytics import Analytics
from .coverage_collector import DEFAULT_COVERAGE_PATH
from .orchestrator import TestRequest, run_tests

_LOGGER = logging.getLogger("uirun")


def _add_bool_flag(parser: argparse.ArgumentParser, name: str, default: bool, help_text: str) -> None:
    dest = name.replace("-", "_")
    parser.add_argument(f"--{name}", dest=dest, action="store_true", help=help_text)
    parser.add_argument(f"--no-{name}", dest=dest, action="store_false", help=argparse.SUPPRESS)
    parser.set_defaults(**{dest: default})


def _add_test_parser(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser("test", help="Build the app and run its integration tests.")
    parser.add_argument(
        "-t",
        "--target",
        dest="targets",
        action="append",
        default=[],
        help="Test file or directory to run. Repeatable; defaults to every test.",
    )
    parser.add_argument(
        "--exclude",
        dest="excludes",
        action="append",
        default=[],
        help="Glob of test files to skip when no --target is given.",
    )
    parser.add_argument(
        "-d",
        "--device",
        dest="devices",
        action="append",
        default=[],
        help="Id or name of the device to run on.",
    )

    modes = parser.add_mutually_exclusive_group()
    for mode in BuildMode:
        modes.add_argument(
            mode.flag,
            dest="build_mode",
            action="store_const",
            const=mode,
            help=f"Build in {mode.value} mode.",
        )
    parser.set_defaults(build_mode=BuildMode.DEBUG)

    parser.add_argument("--flavor", help="Flavor of the app. Overrides uirun.toml.")
    parser.add_argument(
        "--define",
        "--dart-define",
        dest="defines",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Additional build-time define. Repeatable.",
    )
    parser.add_argument(
        "--define-from-file",
        "--dart-define-from-file",
        dest="define_files",
        action="append",
        default=[],
        metavar="PATH",
        help="JSON file with build-time defines. Repeatable; later files win.",
    )
    parser.add_argument("--tags", help="Tag expression of the tests to run.")
    parser.add_argument("--exclude-tags", help="Tag expression of the tests to skip.")
    _add_bool_flag(parser, "label", True, "Show the test name on the screen while it runs.")
    parser.add_argument(
        "--wait",
        type=int,
        metavar="SECONDS",
        help="Seconds the runtime waits after the test finishes. Defaults to 0.",
    )
    parser.add_argument(
        "--test-server-port",
        type=int,
        default=DEFAULT_TEST_SERVER_PORT,
        help=f"Port of the server running in the test runner. Defaults to {DEFAULT_TEST_SERVER_PORT}.",
    )
    parser.add_argument(
        "--app-server-port",
        type=int,
        default=DEFAULT_APP_SERVER_PORT,
        help=f"Port of the server running in the app under test. Defaults to {DEFAULT_APP_SERVER_PORT}.",
    )

    _add_bool_flag(parser, "coverage", False, "Collect code coverage into an LCOV report.")
    parser.add_argument(
        "--coverage-ignore",
        action="append",
        default=[],
        metavar="GLOB",
        help=(
            "Source files to leave out of the coverage report. Supports *, **/ "
            "and {a,b} alternatives; * also crosses directories."
        ),
    )
    parser.add_argument(
        "--coverage-package",
        dest="coverage_packages",
        action="append",
        default=[],
        metavar="REGEX",
        help="Packages to report coverage for. Defaults to the project package.",
    )
    _add_bool_flag(parser, "function-coverage", False, "Collect function coverage.")
    _add_bool_flag(parser, "branch-coverage", False, "Collect branch coverage.")
    parser.add_argument(
        "--coverage-path",
        default=DEFAULT_COVERAGE_PATH,
        metavar="DIR",
        help=f"Directory the LCOV report is written to. Defaults to '{DEFAULT_COVERAGE_PATH}'.",
    )

    _add_bool_flag(parser, "uninstall", True, "Uninstall the app before and after the run.")
    parser.add_argument("--package-name", help="Android package name. Overrides uirun.toml.")
    parser.add_argument("--bundle-id", help="iOS/macOS bundle identifier. Overrides uirun.toml.")
    _add_bool_flag(parser, "generate-bundle", True, "Regenerate test_bundle.dart before building.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uirun",
        description="Build Flutter apps and run their instrumented UI tests on a device.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Print toolchain output and diagnostic details.",
    )
    parser.add_argument(
        "-C",
        "--directory",
        default=".",
        help="Directory of the Flutter project. Defaults to the current directory.",
    )
    parser.add_argument(
        "--flutter-command",
        default=os.environ.get("UIRUN_FLUTTER_COMMAND", "flutter"),
        help="Flutter executable to use.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_test_parser(subparsers)
    subparsers.add_parser("devices", help="List the attached devices the runner can use.")
    return parser


def request_from_args(args: argparse.Namespace) -> TestRequest:
    return TestRequest(
        targets=tuple(args.targets),
        excludes=tuple(args.excludes),
        devices=tuple(args.devices),
        build_mode=args.build_mode,
        flavor=args.flavor,
        defines=tuple(args.defines),
        define_files=tuple(args.define_files),
        tags=args.tags,
        exclude_tags=args.exclude_tags,
        label=args.label,
        wait=args.wait,
        test_server_port=args.test_server_port,
        app_server_port=args.app_server_port,
        uninstall=args.uninstall,
        package_name=args.package_name,
        bundle_id=args.bundle_id,
        generate_bundle=args.generate_bundle,
        coverage=args.coverage,
        coverage_ignore=tuple(args.coverage_ignore),
        coverage_packages=tuple(args.coverage_packages),
        function_coverage=args.function_coverage,
        branch_coverage=args.branch_coverage,
        coverage_path=args.coverage_path,
    )


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(format="%(message)s", level=logging.DEBUG if verbose else logging.INFO)


def _run_test(args: argparse.Namespace) -> int:
    outcome = run_tests(
        request_from_args(args),
        Path(args.directory),
        flutter_command=args.flutter_command,
        logger=_LOGGER,
    )
    return outcome.exit_code


def _run_devices(args: argparse.Namespace) -> int:
    Analytics(os.environ, _LOGGER).send_command("devices")
    runner = ProcessRunner(_LOGGER)
    finder = DeviceFinder(FlutterDeviceLister(runner, args.flutter_command), _LOGGER)
    devices = finder.attached_devices()
    if not devices:
        _LOGGER.warning("No devices attached")
        return 0
    for device in devices:
        print(device.description)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        if args.command == "devices":
            return _run_devices(args)
        return _run_test(args)
    except ToolchainFailure as exc:
        # Already reported by the phase that raised it.
        return exc.exit_code
    except RunnerError as exc:
        _LOGGER.error("%s", exc)
        return exc.exit_code


__all__ = ["build_parser", "main", "request_from_args"]


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
