"""
hotproc.augment
===============

Adds the call edges a naive static call graph misses for thread and executor
dispatch.

``Thread.start()`` and ``ExecutorService.submit(task)`` both end up running
application code (``run()`` of some runnable) that no static call resolves
to.  Without these edges the propagation engine silently under-counts the
work a procedure spawns.

Edges are synthesised by an explicitly enumerated list of
:class:`DispatchPattern` matchers.  For each call site the patterns are tried
in order and the first one that applies decides the targets:

1. :class:`ExecutorSubmitPattern` - task submission whose first argument has
   a concrete runnable type: edge to that type's entry point.
2. :class:`ThreadStartPattern` - ``Thread.start()``: edge to the entry point
   of every application runnable/thread class.
3. :class:`UnresolvedCallFallback` - a call site the host left without
   edges: edge to the method the invoke expression names.

New patterns are added by subclassing :class:`DispatchPattern` and passing
the list to :class:`CallGraphAugmenter`.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from hotproc.callgraph import CallEdge, CallGraph, EdgeKind
from hotproc.config import AnalysisConfig
from hotproc.errors import ClassificationFailure, ExtractionFailure, IssueLog
from hotproc.model import Procedure, ProgramModel, Statement

logger = logging.getLogger(__name__)

__all__ = [
    "AugmentContext",
    "DispatchPattern",
    "ExecutorSubmitPattern",
    "ThreadStartPattern",
    "UnresolvedCallFallback",
    "default_patterns",
    "find_runnable_entries",
    "CallGraphAugmenter",
]


@dataclass
class AugmentContext:
    """What a pattern may consult while matching a call site."""

    program: ProgramModel
    callgraph: CallGraph
    config: AnalysisConfig
    runnable_entries: List[Procedure] = field(default_factory=list)


class DispatchPattern(abc.ABC):
    """A dispatch idiom that implies call edges the host does not see."""

    name: str = "pattern"
    edge_kind: EdgeKind = EdgeKind.STATIC_FALLBACK

    @abc.abstractmethod
    def targets(
        self,
        ctx: AugmentContext,
        caller: Procedure,
        stmt: Statement,
    ) -> Optional[List[Procedure]]:
        """Targets to link *stmt* to.

        Returns ``None`` when the pattern does not apply to *stmt*, so the
        next pattern is tried.  Raises
        :class:`~hotproc.errors.ClassificationFailure` when the pattern
        applies but the targets cannot be determined.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ExecutorSubmitPattern(DispatchPattern):
    name = "executor-submit"
    edge_kind = EdgeKind.EXECUTOR_SUBMIT

    def targets(self, ctx, caller, stmt):
        if stmt.invoked_method() not in ctx.config.submit_signatures:
            return None
        arg_type = stmt.first_arg_type
        if arg_type is None:
            raise ClassificationFailure(
                "task submission without a typed argument",
                procedure=caller.signature,
                statement_index=stmt.index,
            )
        cls = ctx.program.class_info(arg_type)
        if cls is None or cls.is_interface:
            raise ClassificationFailure(
                f"submitted task type {arg_type} is not a concrete class",
                procedure=caller.signature,
                statement_index=stmt.index,
            )
        entry = ctx.program.execution_entry_point(cls)
        if entry is None:
            raise ClassificationFailure(
                f"submitted task type {arg_type} has no "
                f"'{ctx.config.entry_subsignature}'",
                procedure=caller.signature,
                statement_index=stmt.index,
            )
        return [entry]


class ThreadStartPattern(DispatchPattern):
    name = "thread-start"
    edge_kind = EdgeKind.THREAD_START

    def targets(self, ctx, caller, stmt):
        if stmt.invoked_method() not in ctx.config.thread_start_signatures:
            return None
        return [entry for entry in ctx.runnable_entries if entry != caller]


class UnresolvedCallFallback(DispatchPattern):
    name = "static-fallback"
    edge_kind = EdgeKind.STATIC_FALLBACK

    def targets(self, ctx, caller, stmt):
        if ctx.callgraph.edges_out_of(stmt):
            return None
        method = stmt.invoked_method()
        if method is None:
            return None
        return [ctx.program.procedure(method)]


def default_patterns() -> List[DispatchPattern]:
    return [ExecutorSubmitPattern(), ThreadStartPattern(), UnresolvedCallFallback()]


def find_runnable_entries(
    program: ProgramModel,
    config: AnalysisConfig,
    issues: Optional[IssueLog] = None,
) -> List[Procedure]:
    """Entry points of application classes that can run on a thread.

    A class the host fails to classify is recorded on *issues* and left out.
    """
    entries: List[Procedure] = []
    for cls in program.application_classes():
        if cls.is_interface:
            continue
        try:
            runnable = (
                program.implements_runnable(cls)
                or program.is_subclass_of_thread(cls)
            )
            entry = program.execution_entry_point(cls) if runnable else None
        except Exception as exc:
            if issues is not None:
                issues.record(
                    ClassificationFailure(
                        f"class {cls.name} could not be classified as runnable",
                        cause=exc,
                    ),
                    phase="augment",
                )
            logger.debug("Skipping class %s: %s", cls.name, exc)
            continue
        if not runnable:
            continue
        if entry is None:
            logger.debug("Runnable %s has no %s", cls.name, config.entry_subsignature)
            continue
        entries.append(entry)
    return entries


class CallGraphAugmenter:
    """Insert synthetic dispatch edges into a call graph, in place.

    The walk starts at every application procedure not visited yet and
    follows the targets of the edges it adds, as long as they are
    application code.  Procedures without a body are skipped.
    """

    def __init__(
        self,
        program: ProgramModel,
        callgraph: CallGraph,
        config: Optional[AnalysisConfig] = None,
        patterns: Optional[Sequence[DispatchPattern]] = None,
        issues: Optional[IssueLog] = None,
    ) -> None:
        self.program = program
        self.callgraph = callgraph
        self.config = config if config is not None else program.config
        self.patterns: List[DispatchPattern] = list(
            patterns if patterns is not None else default_patterns()
        )
        self.issues = issues if issues is not None else IssueLog()
        self._visited: Set[Procedure] = set()

    def run(self) -> List[CallEdge]:
        """Augment the call graph; return the edges that were added."""
        ctx = AugmentContext(
            program=self.program,
            callgraph=self.callgraph,
            config=self.config,
            runnable_entries=find_runnable_entries(
                self.program, self.config, self.issues
            ),
        )
        logger.info(
            "Augmenting call graph (%d runnable entry points)",
            len(ctx.runnable_entries),
        )
        added: List[CallEdge] = []
        for proc in self.program.application_procedures():
            if proc not in self._visited:
                added.extend(self._extend(ctx, proc))
        logger.info("Added %d synthetic call edges", len(added))
        return added

    def _extend(self, ctx: AugmentContext, root: Procedure) -> List[CallEdge]:
        added: List[CallEdge] = []
        worklist: List[Procedure] = [root]
        while worklist:
            proc = worklist.pop()
            if proc in self._visited:
                continue
            self._visited.add(proc)
            try:
                body = self.program.body(proc)
            except Exception as exc:
                failure = ExtractionFailure(
                    "body could not be retrieved; call sites not augmented",
                    procedure=proc.signature,
                    cause=exc,
                )
                self.issues.record(failure, phase="augment")
                logger.warning("Skipping %s: %s", proc.signature, failure)
                continue
            if body is None:
                logger.debug("Skipping %s: no body", proc.signature)
                continue
            for stmt in body:
                if not stmt.contains_invoke:
                    continue
                for edge in self._augment_call_site(ctx, proc, stmt):
                    added.append(edge)
                    target = edge.target
                    if target not in self._visited and self._is_application(target):
                        worklist.append(target)
        return added

    def _is_application(self, proc: Procedure) -> bool:
        try:
            return self.program.is_application_code(proc)
        except Exception as exc:
            failure = ClassificationFailure(
                "target could not be classified; not descended into",
                procedure=proc.signature,
                cause=exc,
            )
            self.issues.record(failure, phase="augment")
            logger.debug("Not descending: %s", failure)
            return False

    def _augment_call_site(
        self, ctx: AugmentContext, proc: Procedure, stmt: Statement
    ) -> List[CallEdge]:
        added: List[CallEdge] = []
        try:
            for pattern in self.patterns:
                targets = pattern.targets(ctx, proc, stmt)
                if targets is None:
                    continue
                for target in targets:
                    edge = self.callgraph.add_edge(proc, stmt, target, pattern.edge_kind)
                    if edge is not None:
                        added.append(edge)
                        logger.debug(
                            "Added %s edge from %s to %s",
                            pattern.name, proc.signature, target.signature,
                        )
                break
        except ClassificationFailure as exc:
            self.issues.record(exc, phase="augment")
            logger.debug("Ignoring call site: %s", exc)
        except Exception as exc:
            failure = ClassificationFailure(
                "call site could not be classified",
                procedure=proc.signature,
                statement_index=stmt.index,
                cause=exc,
            )
            self.issues.record(failure, phase="augment")
            logger.debug("Ignoring call site: %s", failure)
        return added
