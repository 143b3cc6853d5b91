from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from ports._process import ProcessFailure, ProcessResult, ProcessRunner


@dataclass
class Call:
    args: Tuple[str, ...]
    cwd: Optional[Path]
    env: Dict[str, str] = field(default_factory=dict)

    @property
    def line(self) -> str:
        return " ".join(self.args)


class RecordedStream:
    def __init__(self, args: Tuple[str, ...], listener: Callable[[str], None]) -> None:
        self.args = args
        self.listener = listener
        self.stopped = False

    def stop(self, timeout: float = 5.0) -> None:
        self.stopped = True


class RecordingRunner(ProcessRunner):
    """Process runner double: records commands and replays scripted output.

    Streamed commands hand their scripted lines to the listener straight away.
    """

    def __init__(self) -> None:
        super().__init__(logging.getLogger("tests.runner"))
        self.calls: List[Call] = []
        self.streams: List[RecordedStream] = []
        self._responses: List[Tuple[str, int, str, Optional[Callable[[Tuple[str, ...]], None]]]] = []

    def respond(
        self,
        match: str,
        *,
        output: str = "",
        returncode: int = 0,
        effect: Optional[Callable[[Tuple[str, ...]], None]] = None,
    ) -> None:
        """Reply to commands containing *match* with the given result."""

        self._responses.append((match, returncode, output, effect))

    def lines(self) -> List[str]:
        return [call.line for call in self.calls]

    def _reply(self, cmd: Sequence[str], cwd, env) -> Tuple[Tuple[str, ...], int, str]:
        args = tuple(str(part) for part in cmd)
        self.calls.append(Call(args, Path(cwd) if cwd is not None else None, dict(env or {})))
        for match, code, text, effect in self._responses:
            if match in " ".join(args):
                if effect is not None:
                    effect(args)
                return args, code, text
        return args, 0, ""

    def run(
        self,
        cmd: Sequence[str],
        *,
        cwd=None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> ProcessResult:
        args, returncode, output = self._reply(cmd, cwd, env)
        result = ProcessResult(args=args, returncode=returncode, output=output)
        if check and returncode != 0:
            raise ProcessFailure(result)
        return result

    def stream(self, cmd, listener, *, cwd=None, env=None) -> RecordedStream:
        args, _, output = self._reply(cmd, cwd, env)
        stream = RecordedStream(args, listener)
        self.streams.append(stream)
        for line in output.splitlines():
            listener(line)
        return stream


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()
