# tests/test_callgraph.py
"""
Tests for the call graph: edge bookkeeping, the static builder, Tarjan
SCCs and the summary statistics.
"""

from hotproc.callgraph import (
    CallGraph,
    EdgeKind,
    build_callgraph,
    callgraph_summary,
    find_recursive_procedures,
)
from hotproc.model import Procedure
from tests.conftest import LEAF, invoke, leaf_class, make_class, make_program, method, plain


def _p(name):
    return Procedure("app.X", f"void {name}()")


# ── Edge bookkeeping ─────────────────────────────────────────────

class TestCallGraphEdges:

    def test_add_edge_indexes_by_statement_and_procedure(self):
        cg = CallGraph()
        a, b = _p("a"), _p("b")
        stmt = invoke(b.signature)
        edge = cg.add_edge(a, stmt, b)
        assert edge is not None
        assert cg.edges_out_of(stmt) == [edge]
        assert cg.edges_from(a) == [edge]
        assert cg.edges_into(b) == [edge]
        assert cg.callees(a) == [b]
        assert a in cg and b in cg

    def test_duplicate_edge_is_ignored(self):
        cg = CallGraph()
        a, b = _p("a"), _p("b")
        stmt = invoke(b.signature)
        cg.add_edge(a, stmt, b)
        assert cg.add_edge(a, stmt, b, EdgeKind.THREAD_START) is None
        assert len(cg.edges) == 1

    def test_same_target_from_two_call_sites(self):
        cg = CallGraph()
        a, b = _p("a"), _p("b")
        cg.add_edge(a, invoke(b.signature), b)
        cg.add_edge(a, invoke(b.signature), b)
        assert len(cg.edges_into(b)) == 2

    def test_statement_without_edges(self):
        assert CallGraph().edges_out_of(plain()) == []

    def test_synthetic_edges(self):
        cg = CallGraph()
        a, b, c = _p("a"), _p("b"), _p("c")
        cg.add_edge(a, invoke(b.signature), b)
        synthetic = cg.add_edge(a, invoke(c.signature), c, EdgeKind.EXECUTOR_SUBMIT)
        assert cg.synthetic_edges() == [synthetic]
        assert EdgeKind.THREAD_START.is_synthetic
        assert EdgeKind.STATIC_FALLBACK.is_synthetic
        assert not EdgeKind.VIRTUAL.is_synthetic


# ── Builder ──────────────────────────────────────────────────────

class TestBuildCallGraph:

    def test_direct_and_virtual_edges(self):
        targets = ["<app.A: void f()>", "<app.B: void f()>"]
        main = method("app.Main", "void main()", [
            invoke(LEAF),
            invoke("<app.I: void f()>", targets=targets),
            plain(),
        ])
        program = make_program(
            make_class("app.Main", [main]),
            make_class("app.A", [method("app.A", "void f()", [])]),
            make_class("app.B", [method("app.B", "void f()", [])]),
            leaf_class(),
        )
        cg = build_callgraph(program)
        assert [e.kind for e in cg.edges_out_of(main.body[0])] == [EdgeKind.DIRECT]
        poly = cg.edges_out_of(main.body[1])
        assert [e.kind for e in poly] == [EdgeKind.VIRTUAL, EdgeKind.VIRTUAL]
        assert {e.target.signature for e in poly} == set(targets)
        assert cg.edges_out_of(main.body[2]) == []

    def test_unresolved_call_site_gets_no_edge(self):
        main = method("app.Main", "void main()", [invoke(LEAF, targets=())])
        cg = build_callgraph(make_program(make_class("app.Main", [main]), leaf_class()))
        assert cg.edges_out_of(main.body[0]) == []

    def test_library_bodies_are_not_scanned(self):
        lib = method("java.util.Lib", "void f()", [invoke(LEAF)])
        cg = build_callgraph(make_program(make_class("java.util.Lib", [lib]), leaf_class()))
        assert cg.edges == []

    def test_unknown_target_becomes_phantom_node(self):
        main = method("app.Main", "void main()", [invoke("<java.lang.Thread: void start()>")])
        cg = build_callgraph(make_program(make_class("app.Main", [main])))
        [edge] = cg.edges
        assert edge.target.is_phantom


# ── Recursion ────────────────────────────────────────────────────

class TestRecursion:

    def test_scc_mutual_recursion(self):
        cg = CallGraph()
        a, b, c = _p("a"), _p("b"), _p("c")
        cg.add_edge(a, invoke(b.signature), b)
        cg.add_edge(b, invoke(a.signature), a)
        cg.add_edge(b, invoke(c.signature), c)
        sccs = cg.strongly_connected_components()
        assert {frozenset(s) for s in sccs} == {frozenset({a, b}), frozenset({c})}
        # callees before callers
        assert sccs[0] == [c]

    def test_find_recursive_procedures(self):
        cg = CallGraph()
        a, b, c, d = _p("a"), _p("b"), _p("c"), _p("d")
        cg.add_edge(a, invoke(b.signature), b)
        cg.add_edge(b, invoke(a.signature), a)
        cg.add_edge(c, invoke(c.signature), c)
        cg.add_edge(c, invoke(d.signature), d)
        cycles = find_recursive_procedures(cg)
        assert sorted(len(s) for s in cycles) == [1, 2]
        assert {c} in cycles
        assert cg.is_self_recursive(c)
        assert not cg.is_self_recursive(d)

    def test_long_chain_does_not_hit_recursion_limit(self):
        cg = CallGraph()
        procs = [_p(f"m{i}") for i in range(5000)]
        for caller, callee in zip(procs, procs[1:]):
            cg.add_edge(caller, invoke(callee.signature), callee)
        assert len(cg.strongly_connected_components()) == 5000
        assert find_recursive_procedures(cg) == []


# ── Statistics ───────────────────────────────────────────────────

class TestStatistics:

    def test_statistics_and_summary(self):
        cg = CallGraph()
        a, b, c = _p("a"), _p("b"), _p("c")
        poly = invoke("<app.I: void f()>")
        cg.add_edge(a, poly, b, EdgeKind.VIRTUAL)
        cg.add_edge(a, poly, c, EdgeKind.VIRTUAL)
        cg.add_edge(b, invoke(c.signature), c, EdgeKind.THREAD_START)
        stats = cg.statistics()
        assert stats["procedures"] == 3
        assert stats["edges"] == 3
        assert stats["call_sites"] == 2
        assert stats["polymorphic_call_sites"] == 1
        assert stats["synthetic_edges"] == 1
        assert stats["virtual_edges"] == 2
        assert stats["thread-start_edges"] == 1
        assert stats["recursive_cycles"] == 0

        text = callgraph_summary(cg)
        assert "Synthetic edges:        1" in text
        assert "<app.X: void b()> -> <app.X: void c()> [thread-start]" in text
