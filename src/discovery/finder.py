"""Locate test files in the host project."""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Iterable, List, Sequence

from contracts.errors import ConfigurationError

BUNDLE_FILENAME = "test_bundle.dart"


class TestFinder:
    """Finds test entry points below the project's test directory."""

    __test__ = False

    def __init__(
        self,
        project_directory: str | Path,
        test_directory: str = "integration_test",
        logger: logging.Logger | None = None,
    ) -> None:
        self._project_dir = Path(project_directory).resolve()
        self._test_dir = self._project_dir / test_directory
        self._logger = logger or logging.getLogger(__name__)

    @property
    def test_directory(self) -> Path:
        return self._test_dir

    def _absolute(self, target: str | Path) -> Path:
        path = Path(target)
        if not path.is_absolute():
            path = self._project_dir / path
        return path.resolve()

    def _walk(self, root: Path, test_file_suffix: str) -> List[Path]:
        found = [
            path
            for path in root.rglob(f"*{test_file_suffix}")
            if path.is_file() and path.name != BUNDLE_FILENAME
        ]
        return sorted(found, key=lambda path: path.relative_to(root).parts)

    def _is_excluded(self, path: Path, patterns: Iterable[str]) -> bool:
        absolute = path.as_posix()
        relative = path.relative_to(self._project_dir).as_posix()
        for pattern in patterns:
            absolute_pattern = self._absolute(pattern).as_posix()
            if fnmatch.fnmatchcase(absolute, absolute_pattern) or fnmatch.fnmatchcase(relative, pattern):
                return True
        return False

    def find_all_tests(self, *, excludes: Iterable[str] = (), test_file_suffix: str) -> List[str]:
        """Return every test file in the test directory not matching *excludes*."""

        if not self._test_dir.is_dir():
            self._logger.debug("Test directory %s does not exist", self._test_dir)
            return []

        patterns = sorted(set(excludes))
        tests: List[str] = []
        for path in self._walk(self._test_dir, test_file_suffix):
            if patterns and self._is_excluded(path, patterns):
                self._logger.debug("Excluding %s", path)
                continue
            tests.append(str(path))
        return tests

    def find_tests(self, targets: Sequence[str], test_file_suffix: str) -> List[str]:
        """Expand explicit *targets* (files or directories) into test files."""

        tests: List[str] = []
        for target in targets:
            path = self._absolute(target)
            if path.is_dir():
                candidates = [str(p) for p in self._walk(path, test_file_suffix)]
            elif path.is_file():
                if not path.name.endswith(test_file_suffix):
                    raise ConfigurationError(
                        f"Target {target} doesn't end with \"{test_file_suffix}\""
                    )
                candidates = [str(path)]
            else:
                raise ConfigurationError(f"Target {target} does not exist")

            for candidate in candidates:
                if candidate not in tests:
                    tests.append(candidate)
        return tests


__all__ = ["BUNDLE_FILENAME", "TestFinder"]
