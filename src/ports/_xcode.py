"""Helpers shared by the Xcode based ports."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from contracts.errors import ExecutionFailure


def find_xctestrun(derived_data: Path, scheme: str, sdk: str) -> Path:
    """Return the newest ``.xctestrun`` produced by ``build-for-testing``."""

    products = derived_data / "Build" / "Products"
    candidates = sorted(
        products.glob(f"{scheme}_*{sdk}*.xctestrun"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    if not candidates:
        raise ExecutionFailure(
            f"No .xctestrun file for scheme '{scheme}' ({sdk}) was found in {products}"
        )
    return candidates[0]


def result_bundle_path(project_directory: Path, platform: str) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return project_directory / "build" / f"{platform}_results_{stamp}.xcresult"


__all__ = ["find_xctestrun", "result_bundle_path"]
