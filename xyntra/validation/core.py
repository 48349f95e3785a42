"""Core validation types, registry, and runner.

All types live here to avoid circular imports: validator submodules
import from core, and __init__ re-exports everything.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable

from ..errors import ValidationError, XyntraError

logger = logging.getLogger(__name__)


class Phase(Enum):
    """What kind of artifact a validator inspects.

        GRAPH:  a completed Graph, before it is handed to lowering
        CONFIG: a CompilerConfig, before its values are threaded through
    """
    GRAPH  = auto()
    CONFIG = auto()


class ValidationFailed(XyntraError):
    """Raised by the validation gates when any diagnostic was produced.

    Carries the complete ordered diagnostic list, so a caller can render
    every defect from a single run.
    """

    def __init__(self, phase: Phase, errors: list[ValidationError]) -> None:
        self.phase = phase
        self.errors = list(errors)
        msg = f"Validation failed at {phase.name} ({len(self.errors)} error(s)):\n"
        msg += "\n".join(f"  {e}" for e in self.errors)
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

@dataclass
class Validator:
    """A named validation pass.

    Attributes:
        name: Human-readable identifier.
        phase: Which artifact kind the pass inspects.
        check: Callable that inspects the artifact and returns every
            defect it finds (empty list = nothing wrong). Never raises
            for malformed input.
    """
    name: str
    phase: Phase
    check: Callable[[Any], list[ValidationError]]


VALIDATORS: list[Validator] = []


def register_validator(name: str, phase: Phase):
    """Decorator to register a validation pass.

    Passes of a phase run in the order they were registered, which is
    also the order their diagnostics appear in combined results.

    Usage:
        @register_validator("my_check", Phase.GRAPH)
        def check_something(graph: Graph) -> list[ValidationError]:
            ...
    """
    def decorator(fn: Callable[[Any], list[ValidationError]]):
        VALIDATORS.append(Validator(name=name, phase=phase, check=fn))
        return fn
    return decorator


def validators_for(phase: Phase) -> list[Validator]:
    """Registered passes for a phase, in declaration order."""
    return [v for v in VALIDATORS if v.phase == phase]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def combine_results(results: list[list[ValidationError]]) -> list[ValidationError]:
    """Merge per-pass diagnostics into one list.

    Empty iff every pass came back empty. Otherwise pass order first,
    then each pass's discovery order.
    """
    combined: list[ValidationError] = []
    for errors in results:
        combined.extend(errors)
    return combined


def run_validators(
    phase: Phase,
    target: Any,
    *,
    raise_on_error: bool = False,
    parallel: bool = False,
) -> list[ValidationError]:
    """Run every pass registered for a phase. No pass is skipped.

    Args:
        phase: Which artifact kind target is.
        target: The artifact to validate (Graph or CompilerConfig).
        raise_on_error: Raise ValidationFailed instead of returning a
            non-empty list.
        parallel: Run the passes on a thread pool. Passes only read the
            target, and results are merged in declaration order, so the
            output is identical to a sequential run.

    Returns:
        The combined diagnostics of all passes.

    Raises:
        ValidationFailed: If raise_on_error is set and anything was found.
    """
    passes = validators_for(phase)

    if parallel and len(passes) > 1:
        with ThreadPoolExecutor(max_workers=len(passes)) as pool:
            results = list(pool.map(lambda v: v.check(target), passes))
    else:
        results = [v.check(target) for v in passes]

    for v, errors in zip(passes, results):
        logger.debug("[%s] %s: %d error(s)", phase.name, v.name, len(errors))

    combined = combine_results(results)
    if raise_on_error and combined:
        raise ValidationFailed(phase, combined)
    return combined
