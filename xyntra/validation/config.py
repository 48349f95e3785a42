"""Configuration validators (Phase.CONFIG).

All validators receive a CompilerConfig. They check only the ranges the
lowering stages rely on; the values themselves are never interpreted here.
"""

from pathlib import Path

from ..errors import (
    InvalidConfigValue, InvalidFilePath, InvalidGPUParameter, ValidationError,
)
from .core import Phase, register_validator

TILE_SIZE_RANGE = (4, 64)
BLOCK_SIZE_RANGE = (64, 1024)
MAX_OPTIMISATION_LEVEL = 3


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def _check_gpu_parameter(name: str, value: int,
                         bounds: tuple[int, int]) -> list[ValidationError]:
    """Integer, then power of two, then range; at most one error per parameter."""
    lo, hi = bounds
    if not _is_int(value):
        return [InvalidConfigValue(name, str(value), "must be an integer")]
    if not _is_power_of_two(value):
        return [InvalidGPUParameter(name, value, "must be a power of 2")]
    if not lo <= value <= hi:
        return [InvalidGPUParameter(name, value, f"must be between {lo} and {hi}")]
    return []


@register_validator("gpu_parameters", Phase.CONFIG)
def check_gpu_parameters(config) -> list[ValidationError]:
    """tile_size and block_size must be powers of two within bounds."""
    return (_check_gpu_parameter("tile_size", config.tile_size, TILE_SIZE_RANGE)
            + _check_gpu_parameter("block_size", config.block_size, BLOCK_SIZE_RANGE))


@register_validator("optimisation_level", Phase.CONFIG)
def check_optimisation_level(config) -> list[ValidationError]:
    level = config.optimisation_level
    if not _is_int(level):
        return [InvalidConfigValue("optimisation_level", str(level), "must be an integer")]
    if not 0 <= level <= MAX_OPTIMISATION_LEVEL:
        return [InvalidConfigValue("optimisation_level", str(level),
                                   f"must be between 0 and {MAX_OPTIMISATION_LEVEL}")]
    return []


@register_validator("paths", Phase.CONFIG)
def check_paths(config) -> list[ValidationError]:
    """The input file (if any) must exist; the output directory must be a directory."""
    errors: list[ValidationError] = []

    if config.input_file is not None:
        path = Path(config.input_file)
        if not path.exists():
            errors.append(InvalidFilePath(str(path), "file does not exist"))
        elif not path.is_file():
            errors.append(InvalidFilePath(str(path), "not a regular file"))

    out = Path(config.output_dir)
    if not out.is_dir():
        errors.append(InvalidFilePath(
            str(out), "directory does not exist or is not accessible"))

    return errors
