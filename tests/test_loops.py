# tests/test_loops.py
"""
Tests for loop nest trees, per-statement depths and natural loop recovery.
"""

import pytest

from hotproc.loops import (
    Loop,
    LoopNestTree,
    dominators,
    loop_nest_depths,
    natural_loops,
)


# ── Loop / LoopNestTree ──────────────────────────────────────────

class TestLoop:

    def test_header_is_part_of_the_body(self):
        loop = Loop("h", ["a", "b"])
        assert "h" in loop
        assert len(loop) == 3

    def test_encloses_is_strict(self):
        outer = Loop(0, [0, 1, 2])
        inner = Loop(1, [1, 2])
        same = Loop(0, [0, 1, 2])
        assert outer.encloses(inner)
        assert not inner.encloses(outer)
        assert not outer.encloses(same)
        assert not outer.encloses(outer)


class TestLoopNestTree:

    def test_higher_returns_smallest_enclosing_loop(self):
        outer = Loop(0, range(6))
        middle = Loop(1, range(1, 5))
        inner = Loop(2, [2, 3])
        tree = LoopNestTree([outer, inner, middle])
        assert tree.higher(inner) is middle
        assert tree.higher(middle) is outer
        assert tree.higher(outer) is None

    def test_sibling_loops_have_no_parent(self):
        a = Loop(1, [1, 2])
        b = Loop(3, [3, 4, 5])
        tree = LoopNestTree([a, b])
        assert tree.higher(a) is None
        assert tree.higher(b) is None

    def test_duplicate_loops_kept_once(self):
        tree = LoopNestTree([Loop(0, [0, 1]), Loop(0, [1, 0])])
        assert len(tree) == 1

    def test_empty(self):
        assert LoopNestTree().is_empty()
        assert not LoopNestTree([Loop(0, [0])]).is_empty()


# ── Depths ───────────────────────────────────────────────────────

class TestLoopNestDepths:

    def test_no_loops_gives_empty_map(self):
        assert loop_nest_depths(LoopNestTree()) == {}

    def test_single_loop(self):
        depths = loop_nest_depths(LoopNestTree([Loop(1, [1, 2])]))
        assert depths == {1: 1, 2: 1}

    def test_statements_keep_their_deepest_nesting(self):
        tree = LoopNestTree([
            Loop(0, [0, 1, 2, 3]),
            Loop(1, [1, 2]),
            Loop(2, [2]),
        ])
        depths = loop_nest_depths(tree)
        assert depths[0] == 1
        assert depths[3] == 1
        assert depths[1] == 2
        assert depths[2] == 3

    def test_statement_outside_loops_is_absent(self):
        depths = loop_nest_depths(LoopNestTree([Loop(1, [1])]))
        assert 0 not in depths
        assert depths.get(0, 0) == 0

    def test_sibling_loops_are_depth_one(self):
        tree = LoopNestTree([Loop(1, [1, 2]), Loop(3, [3, 4, 5])])
        assert set(loop_nest_depths(tree).values()) == {1}


# ── Natural loops ────────────────────────────────────────────────

class TestNaturalLoops:

    def test_dominators_of_a_diamond(self):
        nodes = [0, 1, 2, 3]
        succ = {0: [1, 2], 1: [3], 2: [3]}
        dom = dominators(nodes, succ, 0)
        assert dom[3] == {0, 3}
        assert dom[1] == {0, 1}

    def test_acyclic_body_has_no_loops(self):
        assert natural_loops([0, 1, 2], {0: [1], 1: [2]}) == []

    def test_empty_body(self):
        assert natural_loops([], {}) == []

    def test_simple_loop(self):
        nodes = [0, 1, 2, 3, 4]
        succ = {0: [1], 1: [2, 4], 2: [3], 3: [1]}
        loops = natural_loops(nodes, succ)
        assert len(loops) == 1
        assert loops[0].header == 1
        assert loops[0].statements == frozenset({1, 2, 3})

    def test_nested_loops_give_nested_depths(self):
        nodes = [0, 1, 2, 3, 4, 5]
        succ = {0: [1], 1: [2, 5], 2: [3], 3: [2, 4], 4: [1]}
        loops = natural_loops(nodes, succ)
        by_header = {loop.header: loop.statements for loop in loops}
        assert by_header == {1: frozenset({1, 2, 3, 4}), 2: frozenset({2, 3})}

        depths = loop_nest_depths(LoopNestTree(loops))
        assert depths == {1: 1, 4: 1, 2: 2, 3: 2}

    def test_back_edges_to_one_header_are_merged(self):
        nodes = [0, 1, 2, 3]
        succ = {0: [1], 1: [2, 3], 2: [1], 3: [1]}
        loops = natural_loops(nodes, succ)
        assert len(loops) == 1
        assert loops[0].statements == frozenset({1, 2, 3})

    @pytest.mark.parametrize("entry", [0, None])
    def test_explicit_entry_matches_default(self, entry):
        succ = {0: [1], 1: [0]}
        loops = natural_loops([0, 1], succ, entry=entry)
        assert [loop.header for loop in loops] == [0]
