"""Code coverage collection around the execute phase.

The app under test prints a Dart VM service URI for every test isolate it
starts. That line only reaches the device log (logcat, the simulator or
host unified log, or the device syslog), so the collector reads that log
while the tests run. Each URI triggers ``coverage:collect_coverage`` for
its isolate; once the tests finish the hitmaps are merged into a single
``lcov.info``.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import re
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set
from urllib.parse import urlsplit, urlunsplit

from contracts.errors import ConfigurationError, RunnerError
from contracts.schemas import validate
from devices.device import Device, TargetPlatform
from ports._process import LogStream, ProcessFailure, ProcessRunner

PACKAGE_CONFIG_PATH = Path(".dart_tool") / "package_config.json"
REPORT_FILENAME = "lcov.info"
DEFAULT_COVERAGE_PATH = "coverage"

_VM_SERVICE_URI = re.compile(r"(?:VM [Ss]ervice|Observatory)\b.*?(https?://\S+)")
_UNIFIED_LOG_PREDICATE = 'eventMessage CONTAINS[c] "vm service" OR eventMessage CONTAINS "Observatory"'
_BRACES = re.compile(r"\{([^{}]*)\}")


class CoverageError(RunnerError):
    """Raised when the collected hitmaps cannot be turned into a report."""


def read_package_names(project_directory: str | Path) -> List[str]:
    """Return the package names declared in the project's package config."""

    path = Path(project_directory) / PACKAGE_CONFIG_PATH
    try:
        document = json.loads(path.read_text("utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(
            f"{PACKAGE_CONFIG_PATH} was not found; run 'flutter pub get' first"
        ) from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{PACKAGE_CONFIG_PATH} is not valid JSON: {exc}") from exc
    validate(document, "uirun:package_config", source=str(PACKAGE_CONFIG_PATH))
    return [package["name"] for package in document["packages"]]


def resolve_coverage_packages(
    patterns: Sequence[str],
    project_name: str,
    project_directory: str | Path,
) -> Set[str]:
    """Return the set of packages whose libraries are reported on.

    Without *patterns* only the host package is included. The package config
    is read once per call.
    """

    if not patterns:
        return {project_name}

    try:
        compiled = [re.compile(pattern) for pattern in patterns]
    except re.error as exc:
        raise ConfigurationError(f"Regular expression syntax is invalid. {exc}") from exc

    names = read_package_names(project_directory)
    return {name for name in names if any(regex.search(name) for regex in compiled)}


def expand_glob(pattern: str) -> List[str]:
    """Return the ``fnmatch`` patterns equivalent to *pattern*.

    ``{a,b}`` alternatives are expanded and ``**/`` may match zero
    directories, so ``**/*.g.dart`` also matches a top-level ``a.g.dart``.
    """

    match = _BRACES.search(pattern)
    if match is not None:
        head, tail = pattern[: match.start()], pattern[match.end() :]
        return [
            expanded
            for option in match.group(1).split(",")
            for expanded in expand_glob(head + option + tail)
        ]
    if pattern.startswith("**/"):
        return [pattern, *expand_glob(pattern[3:])]
    if "/**/" in pattern:
        return [pattern, *expand_glob(pattern.replace("/**/", "/", 1))]
    return [pattern]


def filter_lcov(content: str, ignore_globs: Iterable[str], base_directory: Path) -> str:
    """Drop LCOV records whose ``SF:`` path matches any of *ignore_globs*."""

    globs = [expanded for glob in ignore_globs for expanded in expand_glob(glob)]
    if not globs:
        return content

    kept: List[str] = []
    record: List[str] = []
    ignored = False
    for line in content.splitlines():
        if line.startswith("SF:"):
            source = Path(line[3:])
            candidates = [source.as_posix()]
            if source.is_absolute():
                try:
                    candidates.append(source.relative_to(base_directory).as_posix())
                except ValueError:
                    pass
            ignored = any(fnmatch.fnmatch(c, glob) for c in candidates for glob in globs)
        record.append(line)
        if line == "end_of_record":
            if not ignored:
                kept.extend(record)
            record = []
            ignored = False
    if record and not ignored:
        kept.extend(record)
    return "\n".join(kept) + ("\n" if kept else "")


def device_log_command(platform: TargetPlatform, device: Device) -> List[str]:
    """Return the command that follows the log the app under test writes to."""

    if platform is TargetPlatform.ANDROID:
        return ["adb", "-s", device.id, "logcat", "-T", "1"]
    if platform is TargetPlatform.IOS and device.real:
        return ["idevicesyslog", "-u", device.id]
    stream = ["log", "stream", "--style", "compact", "--predicate", _UNIFIED_LOG_PREDICATE]
    if platform is TargetPlatform.IOS:
        return ["xcrun", "simctl", "spawn", device.id, *stream]
    return stream


class CoverageCollector:
    """Collects coverage for one run; ``start`` and ``collect`` once each."""

    def __init__(
        self,
        *,
        package_name: str,
        package_directory: str | Path,
        platform: TargetPlatform,
        library_names: Iterable[str],
        device: Device | None = None,
        tool_runner: ProcessRunner | None = None,
        log_runner: ProcessRunner | None = None,
        function_coverage: bool = False,
        branch_coverage: bool = False,
        ignore_globs: Iterable[str] = (),
        coverage_path: str | Path = DEFAULT_COVERAGE_PATH,
        dart_command: str = "dart",
        logger: logging.Logger | None = None,
    ) -> None:
        self.package_name = package_name
        self.package_directory = Path(package_directory)
        self.platform = platform
        self.library_names = frozenset(library_names)
        self.function_coverage = function_coverage
        self.branch_coverage = branch_coverage
        self.ignore_globs = tuple(ignore_globs)
        output = Path(coverage_path)
        self.output_directory = output if output.is_absolute() else self.package_directory / output
        self._device = device
        self._logger = logger or logging.getLogger(__name__)
        self._tool_runner = tool_runner or ProcessRunner(self._logger)
        self._log_runner = log_runner or self._tool_runner
        self._dart = dart_command

        self._state = "created"
        self._seen_uris: Set[str] = set()
        self._failures: List[str] = []
        self._executor: ThreadPoolExecutor | None = None
        self._hitmap_dir: Path | None = None
        self._log_stream: Optional[LogStream] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def report_path(self) -> Path:
        return self.output_directory / REPORT_FILENAME

    def start(self) -> None:
        """Begin following the device log for VM service URIs."""

        if self._state != "created":
            raise RuntimeError(f"Coverage collector cannot start from state '{self._state}'")
        self._hitmap_dir = Path(tempfile.mkdtemp(prefix="uirun-coverage-"))
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="uirun-coverage")
        self._state = "listening"
        self._logger.debug(
            "Collecting coverage for %s", ", ".join(sorted(self.library_names)) or "<no packages>"
        )

        if self._device is None:
            self._logger.warning("No device to read logs from; coverage will not be collected")
            return
        cmd = device_log_command(self.platform, self._device)
        try:
            self._log_stream = self._log_runner.stream(cmd, self._on_line)
        except OSError as exc:
            self._logger.error("Failed to read the log of %s: %s", self._device.resolved_name, exc)

    def _on_line(self, line: str) -> None:
        match = _VM_SERVICE_URI.search(line)
        if match is None:
            return
        uri = match.group(1).rstrip(".,;")
        with self._lock:
            if self._state != "listening" or uri in self._seen_uris or self._executor is None:
                return
            self._seen_uris.add(uri)
            index = len(self._seen_uris)
            self._logger.debug("Observed VM service %s", uri)
            self._executor.submit(self._collect, uri, index)

    def _forward(self, uri: str) -> tuple[str, str | None]:
        """Expose an on-device VM service on the host; return (uri, host_port)."""

        if self.platform is not TargetPlatform.ANDROID or self._device is None:
            return uri, None
        parts = urlsplit(uri)
        device_port = parts.port
        if device_port is None:
            return uri, None
        result = self._tool_runner.run(
            ["adb", "-s", self._device.id, "forward", "tcp:0", f"tcp:{device_port}"]
        )
        lines = result.output.strip().splitlines()
        host_port = lines[-1].strip() if lines else str(device_port)
        netloc = f"{parts.hostname or '127.0.0.1'}:{host_port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment)), host_port

    def _unforward(self, host_port: str | None) -> None:
        if host_port is None or self._device is None:
            return
        try:
            self._tool_runner.run(
                ["adb", "-s", self._device.id, "forward", "--remove", f"tcp:{host_port}"],
                check=False,
            )
        except OSError as exc:
            self._logger.debug("Failed to remove port forward tcp:%s: %s", host_port, exc)

    def collect_command(self, uri: str, out: Path) -> List[str]:
        cmd = [
            self._dart,
            "pub",
            "global",
            "run",
            "coverage:collect_coverage",
            f"--uri={uri}",
            f"--out={out}",
            "--wait-paused",
            "--resume-isolates",
        ]
        cmd.extend(f"--scope-output={name}" for name in sorted(self.library_names))
        if self.function_coverage:
            cmd.append("--function-coverage")
        if self.branch_coverage:
            cmd.append("--branch-coverage")
        return cmd

    def format_command(self, report: Path) -> List[str]:
        assert self._hitmap_dir is not None
        return [
            self._dart,
            "pub",
            "global",
            "run",
            "coverage:format_coverage",
            "--lcov",
            "--check-ignore",
            f"--in={self._hitmap_dir}",
            f"--out={report}",
            f"--packages={self.package_directory / PACKAGE_CONFIG_PATH}",
        ]

    def _collect(self, uri: str, index: int) -> None:
        assert self._hitmap_dir is not None
        out = self._hitmap_dir / f"hitmap_{index:03d}.json"
        host_port: str | None = None
        try:
            target, host_port = self._forward(uri)
            self._tool_runner.run(self.collect_command(target, out))
        except (ProcessFailure, OSError) as exc:
            self._failures.append(uri)
            self._logger.error("Failed to collect coverage from %s: %s", uri, exc)
        finally:
            self._unforward(host_port)

    def collect_coverage_data(self) -> Path | None:
        """Stop listening, merge the collected hitmaps and write the report.

        Returns the report path, or ``None`` when no isolate reported
        coverage.
        """

        if self._state != "listening":
            raise RuntimeError(f"Coverage collector cannot collect from state '{self._state}'")
        with self._lock:
            self._state = "collected"
        if self._log_stream is not None:
            self._log_stream.stop()
            self._log_stream = None
        assert self._executor is not None and self._hitmap_dir is not None
        self._executor.shutdown(wait=True)

        try:
            hitmaps = sorted(self._hitmap_dir.glob("hitmap_*.json"))
            if self._failures:
                self._logger.warning("Coverage is missing for %d test isolate(s)", len(self._failures))
            if not hitmaps:
                self._logger.warning("No coverage data was collected")
                return None

            self.output_directory.mkdir(parents=True, exist_ok=True)
            report = self.report_path
            try:
                self._tool_runner.run(self.format_command(report))
            except (ProcessFailure, OSError) as exc:
                raise CoverageError(f"Failed to format coverage report: {exc}") from exc

            if self.ignore_globs and report.exists():
                content = report.read_text("utf-8")
                report.write_text(
                    filter_lcov(content, self.ignore_globs, self.package_directory), encoding="utf-8"
                )
            self._logger.info("Coverage report written to %s", report)
            return report
        finally:
            shutil.rmtree(self._hitmap_dir, ignore_errors=True)


__all__ = [
    "CoverageCollector",
    "CoverageError",
    "DEFAULT_COVERAGE_PATH",
    "PACKAGE_CONFIG_PATH",
    "REPORT_FILENAME",
    "device_log_command",
    "expand_glob",
    "filter_lcov",
    "read_package_names",
    "resolve_coverage_packages",
]
