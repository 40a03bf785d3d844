"""
hotproc.propagation
===================

Depth-first propagation of invocation features over the call graph.

Every application procedure is resolved exactly once per :meth:`run`.
Resolving a procedure P:

1. A phantom P (no body) is resolved with empty propagated features.
2. P's propagated features start as a copy of its local features and are
   registered with the store straight away.
3. For each call site of P and each call-graph edge out of it, an unresolved
   application target T is resolved first (post-order), then T's features
   are folded into P's with the loop depth of the call site *in P*.

A procedure is marked resolved when its visit starts.  On a call cycle the
procedure that closes the cycle therefore folds in the partial features its
ancestor has gathered so far.  Recursive code is under-counted; this is the
accepted approximation of the heuristic, not fixed-point iteration.

Diamonds are counted once per path: if A calls B and C and both call D, D is
resolved once and merged into both B and C, so A sees D twice.
"""

from __future__ import annotations

import logging
from typing import Generator, List, Optional, Set, Tuple

from hotproc.callgraph import CallGraph
from hotproc.errors import ClassificationFailure, ExtractionFailure, IssueLog
from hotproc.features import Features
from hotproc.model import Procedure, ProgramModel
from hotproc.store import FeatureStore

logger = logging.getLogger(__name__)

__all__ = ["PropagationEngine"]

# A resolution frame yields the callees that must be resolved before it can
# continue folding.
_Frame = Generator[Procedure, None, None]


class PropagationEngine:
    """Fold callee features into callers across the whole call graph.

    Parameters
    ----------
    program:
        The host program model.
    callgraph:
        The (augmented) call graph.
    store:
        Holds local features on entry and receives propagated ones.
    issues:
        Receives recovered per-edge and per-procedure failures.

    An engine instance owns its resolved set for the duration of one
    :meth:`run`; it must not be shared by concurrent runs.
    """

    def __init__(
        self,
        program: ProgramModel,
        callgraph: CallGraph,
        store: FeatureStore,
        issues: Optional[IssueLog] = None,
    ) -> None:
        self.program = program
        self.callgraph = callgraph
        self.store = store
        self.issues = issues if issues is not None else IssueLog()
        self._resolved: Set[Procedure] = set()

    @property
    def resolved(self) -> Set[Procedure]:
        return set(self._resolved)

    def is_resolved(self, procedure: Procedure) -> bool:
        return procedure in self._resolved

    def run(self) -> None:
        """Resolve every application procedure."""
        logger.info("Propagating invocations through the call graph")
        self._resolved = set()
        for proc in self.program.application_procedures():
            if proc not in self._resolved:
                self.visit(proc)
        logger.info("Resolved %d procedures", len(self._resolved))

    def visit(self, procedure: Procedure) -> None:
        """Resolve *procedure* and everything it needs; no-op if resolved."""
        if procedure in self._resolved:
            return
        self._resolved.add(procedure)
        # Call chains may be deeper than the interpreter's recursion limit.
        stack: List[Tuple[Procedure, _Frame]] = [
            (procedure, self._resolve(procedure))
        ]
        while stack:
            proc, frame = stack[-1]
            try:
                callee = next(frame)
            except StopIteration:
                stack.pop()
                continue
            except Exception as exc:
                stack.pop()
                self._record_failure(proc, exc)
                continue
            self._resolved.add(callee)
            stack.append((callee, self._resolve(callee)))

    # ------------------------------------------------------------------

    def _resolve(self, proc: Procedure) -> _Frame:
        body = self.program.body(proc)
        if body is None:
            self.store.put(proc, Features(proc))
            logger.debug("No body for %s; resolved as an empty leaf", proc.signature)
            return

        propagated = self.store.local_or_compute(proc).copy()
        self.store.put(proc, propagated)
        depths = self.program.loop_nest_depths(proc)

        for stmt in body:
            if not stmt.contains_invoke:
                continue
            depth = depths.get(stmt, 0)
            for edge in self.callgraph.edges_out_of(stmt):
                target = edge.target
                try:
                    descend = (
                        target not in self._resolved
                        and self.program.is_application_code(target)
                    )
                except Exception as exc:
                    self._record_edge_failure(proc, stmt.index, exc)
                    continue
                if descend:
                    yield target
                try:
                    callee = self.store.get(target)
                except Exception as exc:
                    self._record_edge_failure(proc, stmt.index, exc)
                    continue
                propagated.add_features_from(callee, depth)
                logger.debug(
                    "Propagated from %s to %s [call depth = %d]",
                    target.subsignature, proc.subsignature, depth,
                )

    def _record_edge_failure(self, proc: Procedure, index: int, exc: Exception) -> None:
        self.issues.record(
            ClassificationFailure(
                "call edge skipped during propagation",
                procedure=proc.signature,
                statement_index=index,
                cause=exc,
            ),
            phase="propagate",
        )
        logger.debug("Skipped an edge of %s at stmt %d: %s", proc.signature, index, exc)

    def _record_failure(self, proc: Procedure, exc: Exception) -> None:
        self.issues.record(
            ExtractionFailure(
                "propagation stopped early; keeping partial features",
                procedure=proc.signature,
                cause=exc,
            ),
            phase="propagate",
        )
        logger.warning(
            "Propagation for %s stopped early, due to internal failure: %s",
            proc.signature, exc,
        )
