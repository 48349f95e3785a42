"""Validation framework for the IR layer.

Validators are named passes registered per phase. Each inspects one
artifact (a Graph or a CompilerConfig) and returns every defect it finds
as a list of diagnostics; nothing stops at the first problem.

    from xyntra.validation import GraphValidator
    errors = GraphValidator(graph).validate()
    for e in errors:
        print(e)

Validators are defined in submodules:
    graph.py   — referential integrity, cycles, op contracts, connections
    config.py  — compiler configuration ranges and paths

Core types live in core.py to avoid circular imports.
"""

from .core import (  # noqa: F401
    Phase,
    ValidationFailed,
    Validator,
    VALIDATORS,
    combine_results,
    register_validator,
    run_validators,
    validators_for,
)
from .graph import GraphValidator, validate_graph  # noqa: F401

# Import submodules to trigger validator registration.
from . import graph, config  # noqa: F401
