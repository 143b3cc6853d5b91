"""Helpers for running platform toolchain commands."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Sequence

_OUTPUT_TAIL_LINES = 60

LineListener = Callable[[str], None]


def build_env(overrides: Mapping[str, str] | None = None) -> Dict[str, str]:
    """Merge process environment with optional overrides."""

    env: Dict[str, str] = {str(k): str(v) for k, v in os.environ.items()}
    if overrides:
        env.update({str(k): str(v) for k, v in overrides.items()})
    return env


@dataclass(frozen=True)
class ProcessResult:
    args: tuple[str, ...]
    returncode: int
    output: str

    @property
    def tail(self) -> str:
        return "\n".join(self.output.splitlines()[-_OUTPUT_TAIL_LINES:])


class ProcessFailure(RuntimeError):
    """Raised when a command exits with a non-zero status and ``check`` is set."""

    def __init__(self, result: ProcessResult) -> None:
        super().__init__(
            f"Command '{result.args[0] if result.args else '?'}' exited with code {result.returncode}"
        )
        self.result = result


class LogStream:
    """A background command feeding its output lines to a listener until stopped."""

    def __init__(self, args: tuple[str, ...], proc: subprocess.Popen, pump: threading.Thread) -> None:
        self.args = args
        self._proc = proc
        self._pump = pump

    def stop(self, timeout: float = 5.0) -> None:
        if self._proc.poll() is None:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self._proc.wait()
        self._pump.join(timeout=timeout)


class ProcessRunner:
    """Runs toolchain commands, logging every output line at ``DEBUG``."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def _spawn(
        self,
        args: tuple[str, ...],
        cwd: str | Path | None,
        env: Mapping[str, str] | None,
    ) -> subprocess.Popen:
        return subprocess.Popen(
            args,
            cwd=str(cwd) if cwd is not None else None,
            env=build_env(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> ProcessResult:
        args = tuple(str(part) for part in cmd)
        self._logger.debug("$ %s", " ".join(args))

        lines: List[str] = []
        proc = self._spawn(args, cwd, env)
        assert proc.stdout is not None
        with proc.stdout:
            for raw in proc.stdout:
                line = raw.rstrip("\n")
                lines.append(line)
                self._logger.debug("%s", line)
        returncode = proc.wait()

        result = ProcessResult(args=args, returncode=returncode, output="\n".join(lines))
        if check and returncode != 0:
            raise ProcessFailure(result)
        return result

    def stream(
        self,
        cmd: Sequence[str],
        listener: LineListener,
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> LogStream:
        """Start *cmd* in the background and hand each output line to *listener*.

        Device logs are noisy, so streamed lines are not logged. The command
        runs until :meth:`LogStream.stop` is called.
        """

        args = tuple(str(part) for part in cmd)
        self._logger.debug("$ %s &", " ".join(args))
        proc = self._spawn(args, cwd, env)

        def pump() -> None:
            assert proc.stdout is not None
            with proc.stdout:
                for raw in proc.stdout:
                    listener(raw.rstrip("\n"))

        thread = threading.Thread(target=pump, name="uirun-log-stream", daemon=True)
        thread.start()
        return LogStream(args, proc, thread)


__all__ = ["LineListener", "LogStream", "ProcessFailure", "ProcessResult", "ProcessRunner", "build_env"]
