"""Pipeline phases and their failure policies."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from contracts.errors import DEFAULT_FAILURE_MESSAGE, ToolchainFailure


class FailurePolicy(str, Enum):
    """What a phase does with an exception raised by its action."""

    IGNORE = "ignore"
    RECORD = "record"
    PROPAGATE = "propagate"


@dataclass(frozen=True)
class Phase:
    name: str
    policy: FailurePolicy
    banner: bool = True
    failure_prefix: str = ""


PRE_EXECUTE = Phase("pre-execute", FailurePolicy.IGNORE, banner=False)
BUILD = Phase("build", FailurePolicy.PROPAGATE)
EXECUTE = Phase("execute", FailurePolicy.RECORD)
FINALIZE = Phase("finalize", FailurePolicy.PROPAGATE, banner=False, failure_prefix="Failed to call finalizer: ")


@dataclass(frozen=True)
class PhaseResult:
    phase: str
    status: str
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status in {"ok", "skipped", "ignored"}


def _detail(error: BaseException) -> str:
    if isinstance(error, ToolchainFailure):
        return error.detail()
    return "".join(traceback.format_exception(type(error), error, error.__traceback__)).rstrip()


def run_phase(
    phase: Phase,
    action: Callable[[], None] | None,
    logger: logging.Logger,
) -> PhaseResult:
    """Run *action* under *phase*'s failure policy.

    ``IGNORE`` drops the error, ``RECORD`` logs it and returns a failed
    result, ``PROPAGATE`` logs it and re-raises.
    """

    if action is None:
        return PhaseResult(phase.name, "skipped")

    try:
        action()
    except Exception as err:  # noqa: BLE001 - the policy decides what happens next
        if phase.policy is FailurePolicy.IGNORE:
            logger.debug("Ignoring %s failure: %s", phase.name, err)
            return PhaseResult(phase.name, "ignored", err)

        logger.error("%s%s", phase.failure_prefix, err)
        logger.debug("%s", _detail(err))
        if phase.banner:
            logger.error(DEFAULT_FAILURE_MESSAGE)
        if phase.policy is FailurePolicy.PROPAGATE:
            raise
        return PhaseResult(phase.name, "failed", err)

    return PhaseResult(phase.name, "ok")


__all__ = [
    "BUILD",
    "EXECUTE",
    "FINALIZE",
    "PRE_EXECUTE",
    "FailurePolicy",
    "Phase",
    "PhaseResult",
    "run_phase",
]
