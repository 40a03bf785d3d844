"""
hotproc/report.py
═════════════════

Text and JSON renderings of an :class:`~hotproc.analyzer.AnalysisResult`.

Terminal output
───────────────
    Method: <sig> :: <static> | <approx>

Procedures whose signature contains one of the configured hot markers
(benchmark drivers, iteration loops) are highlighted.  Local-only entries,
procedures the propagation pass never reached, are listed afterwards as
``Method not propagated: ...``.

None of these formats is a stable machine-readable contract.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from termcolor import colored

from hotproc.analyzer import AnalysisResult
from hotproc.features import Features
from hotproc.model import Procedure

__all__ = [
    "format_features_line",
    "format_features_map",
    "format_ranking",
    "features_to_json",
]


def _is_hot(procedure: Procedure, markers: Sequence[str]) -> bool:
    return any(m in procedure.signature for m in markers)


def format_features_line(
    procedure: Procedure,
    features: Features,
    prefix: str = "Method",
) -> str:
    return f"{prefix}: {procedure.signature} :: {features.serialize()}"


def format_features_map(
    result: AnalysisResult,
    markers: Sequence[str] = (" benchmark(", " runIteration("),
    color: bool = True,
) -> str:
    """Every propagated procedure, then every local-only one."""
    lines: List[str] = []
    for proc, features in result.store.propagated_items():
        line = format_features_line(proc, features)
        if color and _is_hot(proc, markers):
            line = colored(line, "white", "on_red", attrs=["bold"])
        lines.append(line)
    unpropagated = result.store.unpropagated_items()
    if unpropagated:
        lines.append("")
        for proc, features in unpropagated:
            lines.append(format_features_line(proc, features, "Method not propagated"))
    return "\n".join(lines)


def format_ranking(
    result: AnalysisResult,
    top: Optional[int] = None,
    markers: Sequence[str] = (),
    color: bool = True,
) -> str:
    """The hottest procedures as an aligned table."""
    rows = result.ranking(top)
    if not rows:
        return "No procedures were propagated."
    width = max(len(str(f.approx_dynamic_invocations)) for _, f in rows)
    width = max(width, len("approx"))
    header = f"{'rank':>4}  {'approx':>{width}}  {'static':>6}  procedure"
    lines = [colored(header, attrs=["bold"]) if color else header]
    for rank, (proc, features) in enumerate(rows, start=1):
        line = (
            f"{rank:>4}  {features.approx_dynamic_invocations:>{width}}  "
            f"{features.static_invocations:>6}  {proc.signature}"
        )
        if color and _is_hot(proc, markers):
            line = colored(line, "red", attrs=["bold"])
        lines.append(line)
    return "\n".join(lines)


def features_to_json(result: AnalysisResult, top: Optional[int] = None) -> str:
    """Ranking, summary and recovered issues as a JSON document."""
    doc: Dict[str, Any] = {
        "summary": result.summary(),
        "procedures": [
            {
                "signature": proc.signature,
                "static_invocations": f.static_invocations,
                "approx_dynamic_invocations": f.approx_dynamic_invocations,
                "local": (
                    result.store.local(proc).as_dict()
                    if result.store.local(proc) is not None else None
                ),
            }
            for proc, f in result.ranking(top)
        ],
        "synthetic_edges": [
            {
                "source": e.source.signature,
                "target": e.target.signature,
                "kind": e.kind.value,
                "statement": e.statement.index,
            }
            for e in result.synthetic_edges
        ],
        "issues": [i.to_json() for i in result.issues],
    }
    return json.dumps(doc, indent=2)
