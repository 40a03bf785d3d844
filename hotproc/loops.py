"""
hotproc.loops
=============

Loop-nesting information for a single procedure body.

A :class:`LoopNestTree` holds the loops of one body; :func:`loop_nest_depths`
turns it into the per-statement depth map the feature extractor and the
propagation engine consume.  Depth 0 (absent from the map) means "not inside
any loop"; depth *n* means the statement sits inside *n* nested loop bodies.

Loops either come straight from the host (a list of statement sets) or are
recovered from a statement-level successor map with :func:`natural_loops`:

*  dominators are computed with the classic iterative algorithm,
*  a **back edge** is an edge whose destination dominates its source,
*  the **natural loop** of a back edge ``n -> h`` is ``h`` plus every node
   that reaches ``n`` without passing through ``h``.

Natural loops sharing a header are merged into one loop.
"""

from __future__ import annotations

import logging
from typing import (
    Dict,
    FrozenSet,
    Hashable,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Loop",
    "LoopNestTree",
    "loop_nest_depths",
    "natural_loops",
    "dominators",
]


class Loop:
    """A loop: its header statement and every statement of its body."""

    __slots__ = ("header", "statements")

    def __init__(self, header: Hashable, statements: Iterable[Hashable]) -> None:
        self.header = header
        body = set(statements)
        body.add(header)
        self.statements: FrozenSet[Hashable] = frozenset(body)

    def __contains__(self, stmt: object) -> bool:
        return stmt in self.statements

    def __len__(self) -> int:
        return len(self.statements)

    def encloses(self, other: Loop) -> bool:
        """Does this loop strictly contain *other*?"""
        return (
            other is not self
            and other.statements <= self.statements
            and other.statements != self.statements
        )

    def __repr__(self) -> str:
        return f"Loop(header={self.header!r}, size={len(self.statements)})"


class LoopNestTree:
    """The loops of one body, ordered innermost (smallest) first.

    Loops with identical statement sets are kept once.
    """

    def __init__(self, loops: Iterable[Loop] = ()) -> None:
        unique: Dict[FrozenSet[Hashable], Loop] = {}
        for loop in loops:
            unique.setdefault(loop.statements, loop)
        self._loops: List[Loop] = sorted(unique.values(), key=len)

    def __iter__(self) -> Iterator[Loop]:
        return iter(self._loops)

    def __len__(self) -> int:
        return len(self._loops)

    def is_empty(self) -> bool:
        return not self._loops

    def higher(self, loop: Loop) -> Optional[Loop]:
        """Return the innermost loop strictly enclosing *loop*, or ``None``."""
        for candidate in self._loops:
            if len(candidate) > len(loop) and candidate.encloses(loop):
                return candidate
        return None

    def __repr__(self) -> str:
        return f"LoopNestTree({len(self._loops)} loops)"


def loop_nest_depths(tree: LoopNestTree) -> Dict[Hashable, int]:
    """Compute the nesting depth of every statement that sits inside a loop.

    For each loop the depth is one plus the number of loops reached by
    walking :meth:`LoopNestTree.higher` up to the root of its nest; each
    statement of the loop keeps the largest depth seen.

    Returns
    -------
    dict
        ``{statement: depth}``; statements outside every loop are absent.
    """
    depths: Dict[Hashable, int] = {}
    for loop in tree:
        depth = 1
        outer = tree.higher(loop)
        while outer is not None:
            depth += 1
            outer = tree.higher(outer)
        for stmt in loop.statements:
            if depth >= depths.get(stmt, 1):
                depths[stmt] = depth
    return depths


# ---------------------------------------------------------------------------
# Natural loops from a successor map
# ---------------------------------------------------------------------------

def _predecessors(
    nodes: Sequence[Hashable],
    successors: Mapping[Hashable, Iterable[Hashable]],
) -> Dict[Hashable, List[Hashable]]:
    preds: Dict[Hashable, List[Hashable]] = {n: [] for n in nodes}
    for src in nodes:
        for dst in successors.get(src, ()):
            if dst in preds:
                preds[dst].append(src)
    return preds


def dominators(
    nodes: Sequence[Hashable],
    successors: Mapping[Hashable, Iterable[Hashable]],
    entry: Hashable,
) -> Dict[Hashable, Set[Hashable]]:
    """Compute the dominator sets using the iterative algorithm.

    Returns a dict mapping each node to its set of dominators.
    """
    preds = _predecessors(nodes, successors)
    all_nodes = set(nodes)
    dom: Dict[Hashable, Set[Hashable]] = {}
    dom[entry] = {entry}
    for n in nodes:
        if n != entry:
            dom[n] = set(all_nodes)
    changed = True
    while changed:
        changed = False
        for n in nodes:
            if n == entry:
                continue
            if not preds[n]:
                new_dom = {n}
            else:
                new_dom = set.intersection(*(dom[p] for p in preds[n]))
                new_dom = new_dom | {n}
            if new_dom != dom[n]:
                dom[n] = new_dom
                changed = True
    return dom


def natural_loops(
    nodes: Sequence[Hashable],
    successors: Mapping[Hashable, Iterable[Hashable]],
    entry: Optional[Hashable] = None,
) -> List[Loop]:
    """Recover the loops of a body from its successor map.

    Parameters
    ----------
    nodes:
        The statements of the body, in program order.
    successors:
        ``{statement: [successor statements]}``.
    entry:
        The entry statement (defaults to ``nodes[0]``).

    Returns
    -------
    list[Loop]
        One loop per distinct header.
    """
    if not nodes:
        return []
    if entry is None:
        entry = nodes[0]
    dom = dominators(nodes, successors, entry)
    preds = _predecessors(nodes, successors)

    bodies: Dict[Hashable, Set[Hashable]] = {}
    for src in nodes:
        for dst in successors.get(src, ()):
            if dst not in dom.get(src, ()):
                continue
            # back edge src -> dst
            loop_nodes = bodies.setdefault(dst, {dst})
            stack = [src]
            while stack:
                m = stack.pop()
                if m not in loop_nodes:
                    loop_nodes.add(m)
                    stack.extend(preds[m])
    loops = [Loop(header, body) for header, body in bodies.items()]
    logger.debug("Found %d natural loops in %d statements", len(loops), len(nodes))
    return loops
