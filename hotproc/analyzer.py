"""
hotproc.analyzer
================

One full analysis pass: augment the call graph, extract local features for
every application procedure, propagate them through the call graph.

Typical usage
-------------
    >>> from hotproc import analyze, load_program
    >>> result = analyze(load_program("program.json"))
    >>> for proc, features in result.ranking(top=5):
    ...     print(proc.signature, features.serialize())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from hotproc.augment import CallGraphAugmenter, DispatchPattern
from hotproc.callgraph import (
    CallEdge,
    CallGraph,
    build_callgraph,
    find_recursive_procedures,
)
from hotproc.config import AnalysisConfig
from hotproc.errors import IssueLog
from hotproc.features import Features, LocalFeatureExtractor
from hotproc.model import Procedure, ProgramModel
from hotproc.propagation import PropagationEngine
from hotproc.store import FeatureStore

logger = logging.getLogger(__name__)

__all__ = ["AnalysisResult", "StaticAnalyzer", "analyze"]


@dataclass
class AnalysisResult:
    """Everything one analysis run produced."""

    store: FeatureStore
    callgraph: CallGraph
    issues: IssueLog
    synthetic_edges: List[CallEdge] = field(default_factory=list)
    recursive: List[Set[Procedure]] = field(default_factory=list)

    def features(self, procedure: Procedure) -> Features:
        """Best available features (propagated, else local, else computed)."""
        return self.store.get(procedure)

    def local_features(self, procedure: Procedure) -> Optional[Features]:
        return self.store.local(procedure)

    def propagated_features(self, procedure: Procedure) -> Optional[Features]:
        return self.store.propagated(procedure)

    def ranking(self, top: Optional[int] = None) -> List[Tuple[Procedure, Features]]:
        """Propagated procedures, hottest first."""
        items = sorted(
            self.store.propagated_items(),
            key=lambda pf: (
                -pf[1].approx_dynamic_invocations,
                -pf[1].static_invocations,
                pf[0].signature,
            ),
        )
        return items[:top] if top is not None else items

    def summary(self) -> Dict[str, Any]:
        return {
            "propagated": len(self.store.propagated_items()),
            "local": len(self.store.local_items()),
            "external": len(self.store.external_items()),
            "synthetic_edges": len(self.synthetic_edges),
            "recursive_cycles": len(self.recursive),
            "issues": self.issues.counts(),
        }


class StaticAnalyzer:
    """Run the cost-propagation engine over a program.

    Parameters
    ----------
    program:
        The host program model.  Its ``config`` drives the whole run.
    callgraph:
        The host's static call graph; built with
        :func:`~hotproc.callgraph.build_callgraph` when omitted.  It is
        augmented in place.
    patterns:
        Dispatch patterns for the augmenter (defaults to thread start,
        executor submit and the unresolved-call fallback).
    """

    def __init__(
        self,
        program: ProgramModel,
        callgraph: Optional[CallGraph] = None,
        patterns: Optional[List[DispatchPattern]] = None,
    ) -> None:
        self.program = program
        # one config drives library classification and dispatch matching
        self.config: AnalysisConfig = program.config
        self.callgraph = callgraph if callgraph is not None else build_callgraph(program)
        self.patterns = patterns
        for w in self.config.validate():
            logger.warning("AnalysisConfig: %s", w)

    def run(self) -> AnalysisResult:
        issues = IssueLog()

        # 1 - Add the edges thread/executor dispatch hides from the call graph
        synthetic: List[CallEdge] = []
        if self.config.augment_callgraph:
            augmenter = CallGraphAugmenter(
                self.program, self.callgraph, self.config,
                patterns=self.patterns, issues=issues,
            )
            synthetic = augmenter.run()

        # 2 - Count how many calls each procedure does on its own
        logger.info("Counting how many calls each procedure does")
        extractor = LocalFeatureExtractor(self.program, issues=issues)
        store = FeatureStore(extractor)
        extractor.extract_all(self.program.application_procedures(), store)

        # 3 - Traverse the call graph and propagate the counters
        PropagationEngine(self.program, self.callgraph, store, issues=issues).run()

        recursive = find_recursive_procedures(self.callgraph)
        if recursive:
            logger.info(
                "%d recursive cycles: their features are under-approximated",
                len(recursive),
            )
        if len(issues):
            logger.info("Recovered from %d issues: %s", len(issues), issues.counts())
        return AnalysisResult(
            store=store,
            callgraph=self.callgraph,
            issues=issues,
            synthetic_edges=synthetic,
            recursive=recursive,
        )


def analyze(
    program: ProgramModel,
    callgraph: Optional[CallGraph] = None,
) -> AnalysisResult:
    """Convenience entry point: ``StaticAnalyzer(...).run()``.

    Settings come from ``program.config``; build the program with the
    config you want analysed.
    """
    return StaticAnalyzer(program, callgraph=callgraph).run()
