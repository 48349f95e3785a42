"""Command-line front end: validate a serialized graph before lowering.

    python -m xyntra check model.json --backend cuda-ptx -O 3 --tile-size 32
    python -m xyntra summary model.json

Exit codes for `check`: 0 = graph and config valid, 1 = validation
failures (every diagnostic is printed), 2 = the graph could not be read.
The graph is read before the configuration is checked, so a missing or
malformed graph file always exits 2.
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import Backend, CompilerConfig
from .errors import ParsingError
from .ir import Graph
from .ops import infer_shapes
from .validation import validate_graph

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_UNREADABLE = 2


def _load(path: str) -> Graph | None:
    try:
        return Graph.load(path)
    except (OSError, ParsingError) as e:
        print(f"error: cannot read graph '{path}': {e}", file=sys.stderr)
        return None


def cmd_check(args: argparse.Namespace) -> int:
    graph = _load(args.graph)
    if graph is None:
        return EXIT_UNREADABLE

    config = CompilerConfig(
        input_file=Path(args.graph),
        output_dir=Path(args.output_dir),
        backend=Backend(args.backend),
        optimisation_level=args.opt_level,
        tile_size=args.tile_size,
        block_size=args.block_size,
    )
    config_errors = config.validate()
    if config_errors:
        for e in config_errors:
            print(e)
        print(f"\nConfiguration invalid: {len(config_errors)} error(s)")
        return EXIT_INVALID

    if args.infer_shapes:
        filled = infer_shapes(graph)
        if args.verbose:
            print(f"Shape inference filled {filled} shape(s)")

    if args.verbose:
        print(graph.summary())
        print()

    errors = validate_graph(graph, parallel=args.parallel)
    if errors:
        for e in errors:
            print(e)
        print(f"\nGraph invalid: {len(errors)} error(s)")
        return EXIT_INVALID

    print(f"OK: {len(graph)} nodes valid for {config.backend.value} "
          f"(O{config.optimisation_level}, tile {config.tile_size}, "
          f"block {config.block_size})")
    return EXIT_OK


def cmd_summary(args: argparse.Namespace) -> int:
    graph = _load(args.graph)
    if graph is None:
        return EXIT_UNREADABLE
    print(graph.dump())
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    defaults = CompilerConfig()
    parser = argparse.ArgumentParser(
        prog="xyntra", description="Validate tensor-compiler IR graphs.")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Print graph summaries and debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Validate a graph and compiler settings")
    check.add_argument("graph", help="Graph JSON file (as written by Graph.save)")
    check.add_argument("--backend", choices=[b.value for b in Backend],
                       default=defaults.backend.value)
    check.add_argument("-O", "--opt-level", type=int,
                       default=defaults.optimisation_level)
    check.add_argument("--tile-size", type=int, default=defaults.tile_size)
    check.add_argument("--block-size", type=int, default=defaults.block_size)
    check.add_argument("--output-dir", default=str(defaults.output_dir))
    check.add_argument("--infer-shapes", action="store_true",
                       help="Propagate shape metadata before validating")
    check.add_argument("--parallel", action="store_true",
                       help="Run validation passes on a thread pool")
    check.set_defaults(func=cmd_check)

    summary = sub.add_parser("summary", help="Print a node-by-node listing")
    summary.add_argument("graph")
    summary.set_defaults(func=cmd_summary)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)
