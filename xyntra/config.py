"""Compiler configuration threaded through to the lowering stages.

The IR layer never interprets these values. It only checks that they are
in the ranges the backends accept (see validation/config.py) before a
validated graph and config are handed on together.
"""

from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

from .errors import InvalidFormat, ValidationError
from .validation import Phase, run_validators


class Backend(Enum):
    """Code generation target."""
    WGSL     = "wgsl"
    CUDA_PTX = "cuda-ptx"


@dataclass
class CompilerConfig:
    input_file: Path | None = None
    output_dir: Path = Path(".")
    backend: Backend = Backend.WGSL
    optimisation_level: int = 2
    tile_size: int = 16
    block_size: int = 256
    enable_debug: bool = False
    export_ir: bool = False

    def validate(self) -> list[ValidationError]:
        """Every defect in the configuration (empty = valid)."""
        return run_validators(Phase.CONFIG, self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "CompilerConfig":
        """Build a config from a plain mapping, e.g. a parsed settings file.

        Missing keys keep their defaults. Range checks are left to validate().

        Raises:
            InvalidFormat: Unknown key, unknown backend name, or a value of
                the wrong type.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise InvalidFormat("config", f"unknown keys: {', '.join(unknown)}")

        kwargs = dict(d)
        for name in ("optimisation_level", "tile_size", "block_size"):
            value = kwargs.get(name, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidFormat("config", f"'{name}' must be an integer, got {value!r}")
        for name in ("enable_debug", "export_ir"):
            if name in kwargs and not isinstance(kwargs[name], bool):
                raise InvalidFormat("config", f"'{name}' must be a boolean, got {kwargs[name]!r}")
        if "backend" in kwargs and not isinstance(kwargs["backend"], Backend):
            try:
                kwargs["backend"] = Backend(kwargs["backend"])
            except ValueError as e:
                choices = ", ".join(b.value for b in Backend)
                raise InvalidFormat(
                    "config", f"unknown backend {kwargs['backend']!r} (expected one of {choices})"
                ) from e
        if kwargs.get("input_file") is not None:
            kwargs["input_file"] = Path(kwargs["input_file"])
        if "output_dir" in kwargs:
            kwargs["output_dir"] = Path(kwargs["output_dir"])
        return cls(**kwargs)
