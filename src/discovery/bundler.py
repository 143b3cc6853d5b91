"""Generate the single Dart entry point that runs every discovered test."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from string import Template
from typing import List, Sequence

from .finder import BUNDLE_FILENAME

_BUNDLE_TEMPLATE = Template(
    """\
// GENERATED CODE - DO NOT MODIFY BY HAND AND DO NOT COMMIT TO VERSION CONTROL
// ignore_for_file: type=lint, invalid_use_of_internal_member

import 'package:flutter_test/flutter_test.dart';
import 'package:uirun/uirun.dart';

// START: GENERATED TEST IMPORTS
$imports
// END: GENERATED TEST IMPORTS

const String? includeTags = $include_tags;
const String? excludeTags = $exclude_tags;

Future<void> main() async {
  final binding = UirunBinding.ensureInitialized();
  binding.configureTagFilter(include: includeTags, exclude: excludeTags);

  // START: GENERATED TEST GROUPS
$groups
  // END: GENERATED TEST GROUPS

  await binding.reportDiscoveredTests();
}
"""
)

_ALIAS_INVALID = re.compile(r"[^0-9A-Za-z_]")


def dart_string(value: str | None) -> str:
    """Render *value* as a single-quoted Dart literal (or ``null``)."""

    if value is None:
        return "null"
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("$", "\\$")
    return f"'{escaped}'"


class TestBundler:
    """Writes ``test_bundle.dart`` into the test directory."""

    __test__ = False

    def __init__(
        self,
        project_directory: str | Path,
        test_directory: str = "integration_test",
        logger: logging.Logger | None = None,
    ) -> None:
        self._test_dir = Path(project_directory).resolve() / test_directory
        self._logger = logger or logging.getLogger(__name__)

    @property
    def bundled_test_file(self) -> Path:
        return self._test_dir / BUNDLE_FILENAME

    def _relative(self, target: str) -> str:
        path = Path(target).resolve()
        try:
            return path.relative_to(self._test_dir).as_posix()
        except ValueError:
            return path.as_posix()

    @staticmethod
    def _group_name(relative: str) -> str:
        stem = relative[: -len(".dart")] if relative.endswith(".dart") else relative
        return stem.strip("/").replace("/", ".")

    @staticmethod
    def _alias(group_name: str, index: int) -> str:
        alias = _ALIAS_INVALID.sub("_", group_name.replace(".", "__"))
        if not alias or alias[0].isdigit():
            alias = f"t{index}_{alias}"
        return alias

    def generate(
        self,
        targets: Sequence[str],
        tags: str | None = None,
        exclude_tags: str | None = None,
    ) -> str:
        """Return the bundle source for *targets* without writing it."""

        imports: List[str] = []
        groups: List[str] = []
        used: set[str] = set()
        for index, target in enumerate(targets):
            relative = self._relative(target)
            group = self._group_name(relative)
            alias = self._alias(group, index)
            if alias in used:
                alias = f"{alias}_{index}"
            used.add(alias)
            uri = relative if not Path(relative).is_absolute() else f"file://{relative}"
            imports.append(f"import {dart_string(uri)} as {alias};")
            groups.append(f"  group({dart_string(group)}, {alias}.main);")

        return _BUNDLE_TEMPLATE.substitute(
            imports="\n".join(imports),
            groups="\n".join(groups),
            include_tags=dart_string(tags),
            exclude_tags=dart_string(exclude_tags),
        )

    def create_test_bundle(
        self,
        targets: Sequence[str],
        tags: str | None = None,
        exclude_tags: str | None = None,
    ) -> Path:
        """Write the bundle for *targets*, replacing any previous one."""

        if not targets:
            self._logger.warning("No test files were found; the bundle will be empty")
        content = self.generate(targets, tags, exclude_tags)
        path = self.bundled_test_file
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        self._logger.debug("Wrote %s with %d test file(s)", path, len(targets))
        return path


__all__ = ["TestBundler", "dart_string"]
