#!/usr/bin/env python3
"""hotproc/main.py: CLI entry-point for hotproc.

Usage examples
--------------
    # Rank the hottest procedures of a program description
    python -m hotproc analyze program.json --top 20

    # Treat an extra package as library code, machine-readable output
    python -m hotproc analyze program.json --exclude com.vendor. --format json

    # Show the call graph after thread/executor augmentation
    python -m hotproc callgraph program.json

    # Show version and exit
    python -m hotproc --version

Exit codes
----------
    0   Success.
    2   Infrastructure failure (missing or malformed program/config file).

The module doubles as ``python -m hotproc`` via the companion
``hotproc/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence, TextIO

from hotproc import __version__
from hotproc.analyzer import StaticAnalyzer
from hotproc.augment import CallGraphAugmenter
from hotproc.callgraph import build_callgraph, callgraph_summary
from hotproc.config import AnalysisConfig, load_config
from hotproc.errors import ConfigError, ProgramFormatError
from hotproc.model import InMemoryProgram, load_program
from hotproc.report import features_to_json, format_features_map, format_ranking

_log = logging.getLogger("hotproc")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the root ``hotproc`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("hotproc")
    root.setLevel(level)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _build_config(args: argparse.Namespace) -> AnalysisConfig:
    config = load_config(args.config) if args.config else AnalysisConfig()
    if args.exclude:
        config = config.with_overrides(
            library_prefixes=tuple(config.library_prefixes) + tuple(args.exclude)
        )
    if getattr(args, "no_augment", False):
        config = config.with_overrides(augment_callgraph=False)
    return config


def _load(args: argparse.Namespace) -> InMemoryProgram:
    config = _build_config(args)
    _log.info("Loading program: %s", args.program)
    return load_program(args.program, config)


# ===========================================================================
# Sub-commands
# ===========================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    """Rank procedures by estimated invocations."""
    program = _load(args)
    result = StaticAnalyzer(program).run()

    if args.format == "json":
        text = features_to_json(result, top=args.top)
    elif args.top is not None:
        text = format_ranking(
            result, top=args.top,
            markers=program.config.hot_markers, color=not args.no_color,
        )
    else:
        text = format_features_map(
            result, markers=program.config.hot_markers, color=not args.no_color,
        )

    out = _open_output(args.output)
    try:
        out.write(text + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def cmd_callgraph(args: argparse.Namespace) -> int:
    """Print a call-graph summary after augmentation."""
    program = _load(args)
    cg = build_callgraph(program)
    if program.config.augment_callgraph:
        CallGraphAugmenter(program, cg, program.config).run()
    out = _open_output(args.output)
    try:
        out.write(callgraph_summary(cg) + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    # --- Top-level parser --------------------------------------------------
    parser = argparse.ArgumentParser(
        prog="hotproc",
        description=(
            "hotproc: static estimate of how often each procedure and its\n"
            "transitive callees run, from a call graph and loop nesting."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              hotproc analyze program.json --top 20
              hotproc analyze program.json --exclude com.vendor. --format json
              hotproc callgraph program.json
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups (reusable) ------------------------------------

    def _add_input_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("program", help="JSON program description.")
        p.add_argument(
            "--config",
            metavar="FILE",
            help="JSON analysis configuration.",
        )
        p.add_argument(
            "--exclude",
            action="append",
            metavar="PREFIX",
            default=[],
            help="Extra package prefix to treat as library code (repeatable).",
        )
        p.add_argument(
            "--no-augment",
            action="store_true",
            help="Do not add thread/executor dispatch edges.",
        )
        p.add_argument(
            "-o", "--output",
            metavar="FILE",
            help="Write output to FILE instead of stdout.",
        )

    # --- analyze -----------------------------------------------------------
    p_analyze = subparsers.add_parser(
        "analyze",
        help="Estimate invocations per procedure.",
    )
    _add_input_args(p_analyze)
    p_analyze.add_argument(
        "--top",
        type=int,
        metavar="N",
        help="Only show the N hottest procedures, as a ranked table.",
    )
    p_analyze.add_argument(
        "--format",
        choices=("text", "json"),
        default="text",
        help="Output format (default: text).",
    )
    p_analyze.add_argument(
        "--no-color",
        action="store_true",
        help="Disable highlighting of hot procedures.",
    )
    p_analyze.set_defaults(func=cmd_analyze)

    # --- callgraph ---------------------------------------------------------
    p_cg = subparsers.add_parser(
        "callgraph",
        help="Summarise the augmented call graph.",
    )
    _add_input_args(p_cg)
    p_cg.set_defaults(func=cmd_callgraph)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the hotproc CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except (ProgramFormatError, ConfigError) as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except OSError as exc:
        _log.error("I/O error: %s", exc)
        return EXIT_INFRA
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
