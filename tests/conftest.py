# tests/conftest.py
"""
Shared builders for hotproc tests.

Programs are assembled from plain statements::

    main = method("app.Main", "void main()", [invoke(LEAF)], loops=[[0]])
    program = make_program(make_class("app.Main", [main]), leaf_class())
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import pytest

from hotproc.config import AnalysisConfig
from hotproc.loops import Loop
from hotproc.model import (
    ClassInfo,
    InMemoryProgram,
    Procedure,
    Statement,
    StatementKind,
    make_signature,
)

THREAD_START = "<java.lang.Thread: void start()>"
SUBMIT = (
    "<java.util.concurrent.ExecutorService: "
    "java.util.concurrent.Future submit(java.lang.Runnable)>"
)
RUNNABLE = "java.lang.Runnable"
THREAD = "java.lang.Thread"

LEAF = "<app.Util: void leaf()>"


# ── Statement builders ───────────────────────────────────────────

def plain() -> Statement:
    return Statement(StatementKind.PLAIN)


def invoke(
    method: str,
    args: Sequence[str] = (),
    targets: Optional[Sequence[str]] = None,
) -> Statement:
    return Statement(StatementKind.INVOKE, method=method, arg_types=args, targets=targets)


def assign_invoke(method: str, nested: bool = False) -> Statement:
    """``x = method(...)``; *nested* wraps the call as an invoke statement."""
    if nested:
        rhs = Statement(StatementKind.INVOKE, method=method)
        return Statement(StatementKind.ASSIGN, rhs=rhs)
    return Statement(StatementKind.ASSIGN, method=method)


# ── Procedure / class / program builders ─────────────────────────

def method(
    class_name: str,
    subsignature: str,
    statements: Optional[List[Statement]] = None,
    loops: Iterable[Sequence[int]] = (),
) -> Procedure:
    """A procedure whose loops are given as lists of statement indices.

    ``statements=None`` gives a phantom procedure.
    """
    if statements is None:
        return Procedure(class_name, subsignature)
    for i, stmt in enumerate(statements):
        stmt.index = i
        if stmt.rhs is not None:
            stmt.rhs.index = i
    loop_objs = [
        Loop(statements[idx[0]], [statements[i] for i in idx]) for idx in loops
    ]
    return Procedure(class_name, subsignature, body=statements, loops=loop_objs)


def make_class(
    name: str,
    methods: Iterable[Procedure] = (),
    superclass: Optional[str] = "java.lang.Object",
    interfaces: Sequence[str] = (),
    is_interface: bool = False,
) -> ClassInfo:
    return ClassInfo(
        name,
        superclass=superclass,
        interfaces=interfaces,
        methods=methods,
        is_interface=is_interface,
    )


def leaf_class() -> ClassInfo:
    """``app.Util`` with a single call-free ``void leaf()``."""
    return make_class("app.Util", [method("app.Util", "void leaf()", [plain()])])


def make_program(
    *classes: ClassInfo,
    config: Optional[AnalysisConfig] = None,
) -> InMemoryProgram:
    return InMemoryProgram(classes, config=config)


def sig(class_name: str, subsignature: str) -> str:
    return make_signature(class_name, subsignature)


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def program_json() -> dict:
    """A small program: main starts a worker thread and submits a task."""
    return {
        "classes": [
            {
                "name": "app.Main",
                "methods": [
                    {
                        "subsignature": "void main()",
                        "statements": [
                            {},
                            {"invoke": "<app.Bench: void benchmark()>"},
                            {"invoke": THREAD_START},
                            {"invoke": SUBMIT, "args": ["app.Task"]},
                        ],
                    },
                ],
            },
            {
                "name": "app.Bench",
                "methods": [
                    {
                        "subsignature": "void benchmark()",
                        "statements": [
                            {},
                            {"assign": True, "invoke": LEAF},
                            {},
                        ],
                        "successors": {"0": [1], "1": [2], "2": [0]},
                    },
                ],
            },
            {
                "name": "app.Worker",
                "superclass": THREAD,
                "methods": [
                    {
                        "subsignature": "void run()",
                        "statements": [{"invoke": LEAF}],
                    },
                ],
            },
            {
                "name": "app.Task",
                "interfaces": [RUNNABLE],
                "methods": [
                    {
                        "subsignature": "void run()",
                        "statements": [
                            {"assign": True, "nested": True, "invoke": LEAF},
                        ],
                    },
                ],
            },
            {
                "name": "app.Util",
                "methods": [
                    {"subsignature": "void leaf()", "statements": [{}]},
                    {"subsignature": "void stub()", "phantom": True},
                ],
            },
        ],
    }
