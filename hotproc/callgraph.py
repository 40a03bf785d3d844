"""
hotproc.callgraph
=================

The call graph the propagation engine walks.

The call graph is a directed multigraph where:
- **Nodes** are :class:`~hotproc.model.Procedure` objects.
- **Edges** connect a calling procedure, through one of its call-site
  statements, to a target procedure.  Several edges may share a call site
  (polymorphic dispatch).

Edge kinds
----------
``DIRECT``
    The only statically resolved target of the call site.
``VIRTUAL``
    One of several targets of a polymorphic call site.
``THREAD_START``
    Synthetic: a ``Thread.start()`` call to a runnable's entry point.
``EXECUTOR_SUBMIT``
    Synthetic: an executor submission to the submitted task's entry point.
``STATIC_FALLBACK``
    Synthetic: a call site the host left without edges, linked to the
    method its invoke expression names.

Public API
----------
    EdgeKind                  - enum of edge kinds
    CallEdge                  - a directed edge (call site)
    CallGraph                 - the whole-program call graph
    build_callgraph           - naive static call graph of a ProgramModel
    find_recursive_procedures - recursive cycles of a call graph
    callgraph_summary         - human-readable summary

Typical usage::

    from hotproc.callgraph import build_callgraph

    cg = build_callgraph(program)
    for stmt in program.body(proc):
        for edge in cg.edges_out_of(stmt):
            print(f"{edge.source.name} -> {edge.target.name} [{edge.kind.value}]")
"""

from __future__ import annotations

import enum
import logging
from collections import OrderedDict, defaultdict
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
)

from hotproc.model import Procedure, ProgramModel, Statement

logger = logging.getLogger(__name__)

__all__ = [
    "EdgeKind",
    "CallEdge",
    "CallGraph",
    "build_callgraph",
    "find_recursive_procedures",
    "callgraph_summary",
]


# ---------------------------------------------------------------------------
# Edge kinds
# ---------------------------------------------------------------------------

class EdgeKind(enum.Enum):
    """How a call edge came to be."""

    DIRECT          = "direct"
    VIRTUAL         = "virtual"
    THREAD_START    = "thread-start"
    EXECUTOR_SUBMIT = "executor-submit"
    STATIC_FALLBACK = "static-fallback"

    @property
    def is_synthetic(self) -> bool:
        return self not in (EdgeKind.DIRECT, EdgeKind.VIRTUAL)


# ---------------------------------------------------------------------------
# CallEdge
# ---------------------------------------------------------------------------

class CallEdge:
    """A directed edge in the call graph.

    Attributes
    ----------
    source : Procedure
        The calling procedure.
    statement : Statement
        The call site inside *source*.
    target : Procedure
        The called procedure.
    kind : EdgeKind
    """

    __slots__ = ("source", "statement", "target", "kind")

    def __init__(
        self,
        source: Procedure,
        statement: Statement,
        target: Procedure,
        kind: EdgeKind = EdgeKind.DIRECT,
    ) -> None:
        self.source = source
        self.statement = statement
        self.target = target
        self.kind = kind

    @property
    def is_synthetic(self) -> bool:
        return self.kind.is_synthetic

    def __repr__(self) -> str:
        return (
            f"CallEdge({self.source.signature} -> {self.target.signature}, "
            f"{self.kind.value} @ stmt {self.statement.index})"
        )


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """Whole-program call graph.

    Attributes
    ----------
    nodes : OrderedDict[str, Procedure]
        Every procedure that is the source or target of an edge, keyed by
        signature.
    edges : list[CallEdge]
        All edges, in insertion order.
    """

    def __init__(self) -> None:
        self.nodes: "OrderedDict[str, Procedure]" = OrderedDict()
        self.edges: List[CallEdge] = []
        # Index: call-site statement -> edges
        self._by_statement: Dict[Statement, List[CallEdge]] = defaultdict(list)
        # Index: procedure signature -> outgoing / incoming edges
        self._out: Dict[str, List[CallEdge]] = defaultdict(list)
        self._in: Dict[str, List[CallEdge]] = defaultdict(list)

    # ----- edge management --------------------------------------------------

    def add_edge(
        self,
        source: Procedure,
        statement: Statement,
        target: Procedure,
        kind: EdgeKind = EdgeKind.DIRECT,
    ) -> Optional[CallEdge]:
        """Create a call edge and wire it up.

        Returns ``None`` (and adds nothing) when the call site already has
        an edge to *target*.
        """
        for existing in self._by_statement.get(statement, ()):
            if existing.target == target:
                return None
        edge = CallEdge(source, statement, target, kind)
        self.nodes.setdefault(source.signature, source)
        self.nodes.setdefault(target.signature, target)
        self.edges.append(edge)
        self._by_statement[statement].append(edge)
        self._out[source.signature].append(edge)
        self._in[target.signature].append(edge)
        return edge

    # ----- lookups ----------------------------------------------------------

    def edges_out_of(self, statement: Statement) -> List[CallEdge]:
        """Edges leaving the call site *statement*."""
        return list(self._by_statement.get(statement, ()))

    def edges_from(self, procedure: Procedure) -> List[CallEdge]:
        return list(self._out.get(procedure.signature, ()))

    def edges_into(self, procedure: Procedure) -> List[CallEdge]:
        return list(self._in.get(procedure.signature, ()))

    def callees(self, procedure: Procedure) -> List[Procedure]:
        return [e.target for e in self._out.get(procedure.signature, ())]

    def synthetic_edges(self) -> List[CallEdge]:
        return [e for e in self.edges if e.is_synthetic]

    def __contains__(self, procedure: object) -> bool:
        return isinstance(procedure, Procedure) and procedure.signature in self.nodes

    # ----- whole-graph queries ----------------------------------------------

    def strongly_connected_components(self) -> List[List[Procedure]]:
        """Compute SCCs using Tarjan's algorithm.

        Returns a list of SCCs in reverse topological order (callees before
        callers).  Each SCC with more than one node represents mutual
        recursion.  Runs without recursion so deep call chains are fine.
        """
        counter = 0
        index: Dict[str, int] = {}
        lowlink: Dict[str, int] = {}
        stack: List[str] = []
        on_stack: Set[str] = set()
        result: List[List[Procedure]] = []

        for root in self.nodes:
            if root in index:
                continue
            work: List[Tuple[str, Iterator[CallEdge]]] = []
            index[root] = lowlink[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            work.append((root, iter(self._out.get(root, ()))))
            while work:
                v, it = work[-1]
                advanced = False
                for e in it:
                    w = e.target.signature
                    if w not in index:
                        index[w] = lowlink[w] = counter
                        counter += 1
                        stack.append(w)
                        on_stack.add(w)
                        work.append((w, iter(self._out.get(w, ()))))
                        advanced = True
                        break
                    if w in on_stack:
                        lowlink[v] = min(lowlink[v], index[w])
                if advanced:
                    continue
                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[v])
                if lowlink[v] == index[v]:
                    scc: List[Procedure] = []
                    while True:
                        w = stack.pop()
                        on_stack.discard(w)
                        scc.append(self.nodes[w])
                        if w == v:
                            break
                    result.append(scc)
        return result

    def is_self_recursive(self, procedure: Procedure) -> bool:
        """Does *procedure* call itself directly?"""
        return any(e.target == procedure for e in self._out.get(procedure.signature, ()))

    # ----- statistics -------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        """Return a dict with summary statistics."""
        by_kind = {k: 0 for k in EdgeKind}
        for e in self.edges:
            by_kind[e.kind] += 1
        call_sites = len(self._by_statement)
        polymorphic = sum(1 for es in self._by_statement.values() if len(es) > 1)
        return {
            "procedures": len(self.nodes),
            "edges": len(self.edges),
            "call_sites": call_sites,
            "polymorphic_call_sites": polymorphic,
            "synthetic_edges": sum(n for k, n in by_kind.items() if k.is_synthetic),
            **{f"{k.value}_edges": n for k, n in by_kind.items()},
            "recursive_cycles": len(find_recursive_procedures(self)),
        }

    def __repr__(self) -> str:
        return f"CallGraph(nodes={len(self.nodes)}, edges={len(self.edges)})"


# ===========================================================================
# BUILDER
# ===========================================================================

def build_callgraph(program: ProgramModel) -> CallGraph:
    """Build the naive static call graph of *program*.

    Every call site of every application procedure gets one edge per
    declared target: ``DIRECT`` when there is a single target, ``VIRTUAL``
    when dispatch is polymorphic.  Call sites whose declared targets are
    empty stay without edges.
    """
    cg = CallGraph()
    for proc in program.application_procedures():
        body = program.body(proc)
        if body is None:
            continue
        for stmt in body:
            targets = stmt.declared_targets()
            kind = EdgeKind.DIRECT if len(targets) == 1 else EdgeKind.VIRTUAL
            for sig in targets:
                cg.add_edge(proc, stmt, program.procedure(sig), kind)
    logger.info("Built call graph: %d procedures, %d edges",
                len(cg.nodes), len(cg.edges))
    return cg


# ---------------------------------------------------------------------------
# Convenience utilities
# ---------------------------------------------------------------------------

def find_recursive_procedures(cg: CallGraph) -> List[Set[Procedure]]:
    """Return a list of sets of mutually-recursive procedures.

    Each set contains >= 1 procedure.  Singleton sets indicate direct
    self-recursion.
    """
    result: List[Set[Procedure]] = []
    for scc in cg.strongly_connected_components():
        if len(scc) == 1:
            if cg.is_self_recursive(scc[0]):
                result.append({scc[0]})
        else:
            result.append(set(scc))
    return result


def callgraph_summary(cg: CallGraph) -> str:
    """Return a human-readable multi-line summary."""
    stats = cg.statistics()
    lines = [
        "Call Graph Summary",
        f"  Procedures:             {stats['procedures']}",
        f"  Edges:                  {stats['edges']}",
        f"  Call sites:             {stats['call_sites']}",
        f"  Polymorphic call sites: {stats['polymorphic_call_sites']}",
        f"  Synthetic edges:        {stats['synthetic_edges']}",
        f"  Recursive cycles:       {stats['recursive_cycles']}",
        "",
        "Synthetic edges:",
    ]
    for e in cg.synthetic_edges():
        lines.append(
            f"  {e.source.signature} -> {e.target.signature} [{e.kind.value}]"
        )
    return "\n".join(lines)
