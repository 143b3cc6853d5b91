"""Platform backends for building and running instrumented tests."""

from __future__ import annotations

from ._process import ProcessFailure, ProcessResult, ProcessRunner
from .android_port import AndroidTestBackend
from .base import TestBackend, UninstallingBackend
from .ios_port import IOSTestBackend
from .macos_port import MacOSTestBackend
from .options import (
    AndroidAppOptions,
    BuildMode,
    FlutterAppOptions,
    IOSAppOptions,
    MacOSAppOptions,
)

__all__ = [
    "AndroidAppOptions",
    "AndroidTestBackend",
    "BuildMode",
    "FlutterAppOptions",
    "IOSAppOptions",
    "IOSTestBackend",
    "MacOSAppOptions",
    "MacOSTestBackend",
    "ProcessFailure",
    "ProcessResult",
    "ProcessRunner",
    "TestBackend",
    "UninstallingBackend",
]
