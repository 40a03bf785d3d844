"""
hotproc.model
=============

The host program model the cost-propagation engine consumes.

The engine never loads bytecode itself.  It talks to a *program model*
through the narrow :class:`ProgramModel` protocol: which procedures belong
to the application, what their bodies look like, how deeply each statement
is nested in loops, and how classes relate to the runtime's thread
abstraction.  :class:`InMemoryProgram` is a complete implementation of that
protocol over plain Python objects; :func:`load_program` builds one from a
JSON description.

Procedures are identified by Soot-style signatures::

    <com.example.Worker: void run()>
    <java.util.concurrent.ExecutorService: java.util.concurrent.Future submit(java.lang.Runnable)>

Public API
----------
    StatementKind       - shape of a statement
    Statement           - one statement of a body (possibly a call site)
    Procedure           - a method/function
    ClassInfo           - a class and its methods
    ProgramModel        - protocol consumed by the engine
    InMemoryProgram     - reference ProgramModel
    iter_call_sites     - (statement, method) pairs of a body
    load_program        - InMemoryProgram from a JSON file
    program_from_dict   - InMemoryProgram from parsed JSON
"""

from __future__ import annotations

import enum
import json
import logging
from collections import OrderedDict
from pathlib import Path
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
    Union,
    runtime_checkable,
)

from hotproc.config import AnalysisConfig
from hotproc.errors import ProgramFormatError
from hotproc.loops import Loop, LoopNestTree, loop_nest_depths, natural_loops

logger = logging.getLogger(__name__)

__all__ = [
    "StatementKind",
    "Statement",
    "Procedure",
    "ClassInfo",
    "ProgramModel",
    "InMemoryProgram",
    "iter_call_sites",
    "make_signature",
    "split_signature",
    "load_program",
    "program_from_dict",
]


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def make_signature(class_name: str, subsignature: str) -> str:
    """``make_signature("a.B", "void run()")`` -> ``"<a.B: void run()>"``."""
    return f"<{class_name}: {subsignature}>"


def split_signature(signature: str) -> Tuple[str, str]:
    """Split ``<cls: subsig>`` into ``(cls, subsig)``.

    Raises
    ------
    ProgramFormatError
        If *signature* is not of that form.
    """
    if not (signature.startswith("<") and signature.endswith(">")):
        raise ProgramFormatError(f"malformed signature {signature!r}")
    class_name, sep, subsig = signature[1:-1].partition(": ")
    if not sep or not class_name or not subsig:
        raise ProgramFormatError(f"malformed signature {signature!r}")
    return class_name, subsig


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

class StatementKind(enum.Enum):
    """Shape of a statement, as far as call detection is concerned."""

    PLAIN  = "plain"    # no invoke expression
    INVOKE = "invoke"   # foo(...);
    ASSIGN = "assign"   # x = ...;  (may hold an invoke)


class Statement:
    """One statement of a procedure body.

    Attributes
    ----------
    kind : StatementKind
    index : int
        Position in the body.
    method : str or None
        Signature named by the statement's invoke expression.
    rhs : Statement or None
        For ``ASSIGN``: the right-hand side when it is itself an invoke
        statement value.
    arg_types : tuple[str, ...]
        Static types of the invoke arguments.
    targets : tuple[str, ...] or None
        Declared dispatch targets.  ``None`` means "the named method";
        an empty tuple means no dispatch targets are known.  The call site
        still names its method and is counted as a call.

    Statements hash by identity: two statements are equal only if they are
    the same object.
    """

    __slots__ = ("kind", "index", "method", "rhs", "arg_types", "targets")

    def __init__(
        self,
        kind: StatementKind = StatementKind.PLAIN,
        index: int = 0,
        method: Optional[str] = None,
        rhs: Optional[Statement] = None,
        arg_types: Sequence[str] = (),
        targets: Optional[Sequence[str]] = None,
    ) -> None:
        self.kind = kind
        self.index = index
        self.method = method
        self.rhs = rhs
        self.arg_types: Tuple[str, ...] = tuple(arg_types)
        self.targets: Optional[Tuple[str, ...]] = (
            tuple(targets) if targets is not None else None
        )

    def invoked_method(self) -> Optional[str]:
        """The signature this statement calls, or ``None``.

        An assignment whose right-hand side is an invoke statement reports
        that invoke once; it is not also counted as an invoke of its own.
        """
        if self.kind is StatementKind.ASSIGN:
            if self.rhs is not None and self.rhs.kind is StatementKind.INVOKE:
                return self.rhs.method
            return self.method
        if self.kind is StatementKind.INVOKE:
            return self.method
        return None

    @property
    def contains_invoke(self) -> bool:
        return self.invoked_method() is not None

    @property
    def first_arg_type(self) -> Optional[str]:
        args = self.arg_types
        if not args and self.rhs is not None:
            args = self.rhs.arg_types
        return args[0] if args else None

    def declared_targets(self) -> Tuple[str, ...]:
        """Targets a naive static call graph would resolve for this call."""
        targets = self.targets
        if targets is None and self.rhs is not None:
            targets = self.rhs.targets
        if targets is not None:
            return targets
        method = self.invoked_method()
        return (method,) if method is not None else ()

    def __repr__(self) -> str:
        m = self.invoked_method()
        return f"Statement({self.index}, {self.kind.value}{', ' + m if m else ''})"


def iter_call_sites(body: Iterable[Statement]) -> Iterator[Tuple[Statement, str]]:
    """Yield ``(statement, method)`` for every call site of *body*, in order."""
    for stmt in body:
        method = stmt.invoked_method()
        if method is not None:
            yield stmt, method


# ---------------------------------------------------------------------------
# Procedures and classes
# ---------------------------------------------------------------------------

class Procedure:
    """A uniquely identified unit of code.

    Attributes
    ----------
    signature : str
        ``<pkg.Class: ret name(args)>``; the identity of the procedure.
    declaring_class : str
    subsignature : str
    body : list[Statement] or None
        ``None`` for phantom, abstract and native procedures.
    loops : LoopNestTree
        Loop nest of the body (empty for phantoms).
    """

    __slots__ = ("signature", "declaring_class", "subsignature", "body", "loops")

    def __init__(
        self,
        declaring_class: str,
        subsignature: str,
        body: Optional[Sequence[Statement]] = None,
        loops: Iterable[Loop] = (),
    ) -> None:
        self.declaring_class = declaring_class
        self.subsignature = subsignature
        self.signature = make_signature(declaring_class, subsignature)
        self.body: Optional[List[Statement]] = list(body) if body is not None else None
        self.loops = LoopNestTree(loops)

    @classmethod
    def phantom(cls, signature: str) -> Procedure:
        """A body-less procedure known only by its signature."""
        class_name, subsig = split_signature(signature)
        return cls(class_name, subsig)

    @property
    def is_phantom(self) -> bool:
        return self.body is None

    @property
    def package(self) -> str:
        return self.declaring_class.rpartition(".")[0]

    @property
    def name(self) -> str:
        head = self.subsignature.partition("(")[0]
        return head.rpartition(" ")[2]

    def __repr__(self) -> str:
        return f"Procedure({self.signature!r})"

    def __hash__(self) -> int:
        return hash(self.signature)

    def __eq__(self, other) -> bool:
        if isinstance(other, Procedure):
            return self.signature == other.signature
        return NotImplemented


class ClassInfo:
    """A class (or interface) of the program and its declared methods."""

    __slots__ = ("name", "superclass", "interfaces", "methods", "is_interface")

    def __init__(
        self,
        name: str,
        superclass: Optional[str] = "java.lang.Object",
        interfaces: Sequence[str] = (),
        methods: Iterable[Procedure] = (),
        is_interface: bool = False,
    ) -> None:
        self.name = name
        self.superclass = superclass if superclass != name else None
        self.interfaces: Tuple[str, ...] = tuple(interfaces)
        self.is_interface = is_interface
        self.methods: "OrderedDict[str, Procedure]" = OrderedDict()
        for proc in methods:
            self.add_method(proc)

    def add_method(self, proc: Procedure) -> None:
        if proc.declaring_class != self.name:
            raise ProgramFormatError(
                f"method {proc.signature} does not belong to class {self.name}"
            )
        self.methods[proc.subsignature] = proc

    def method(self, subsignature: str) -> Optional[Procedure]:
        return self.methods.get(subsignature)

    def __repr__(self) -> str:
        return f"ClassInfo({self.name!r}, methods={len(self.methods)})"


# ---------------------------------------------------------------------------
# Protocol consumed by the engine
# ---------------------------------------------------------------------------

@runtime_checkable
class ProgramModel(Protocol):
    """What the engine needs to know about the analysed program."""

    config: AnalysisConfig

    def is_application_code(self, procedure: Procedure) -> bool: ...

    def body(self, procedure: Procedure) -> Optional[Sequence[Statement]]: ...

    def loop_nest_depths(self, procedure: Procedure) -> Mapping[Statement, int]: ...

    def application_procedures(self) -> Sequence[Procedure]: ...

    def application_classes(self) -> Sequence[ClassInfo]: ...

    def class_info(self, name: str) -> Optional[ClassInfo]: ...

    def procedure(self, signature: str) -> Procedure: ...

    def implements_runnable(self, cls: ClassInfo) -> bool: ...

    def is_subclass_of_thread(self, cls: ClassInfo) -> bool: ...

    def execution_entry_point(self, cls: ClassInfo) -> Optional[Procedure]: ...


# ---------------------------------------------------------------------------
# In-memory reference implementation
# ---------------------------------------------------------------------------

class InMemoryProgram:
    """A :class:`ProgramModel` over plain Python objects.

    Parameters
    ----------
    classes:
        Every class the program knows about, library classes included.
    config:
        Supplies the library prefixes and the names of the runtime's
        runnable interface and thread class.
    """

    def __init__(
        self,
        classes: Iterable[ClassInfo] = (),
        config: Optional[AnalysisConfig] = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self._classes: "OrderedDict[str, ClassInfo]" = OrderedDict()
        self._procedures: Dict[str, Procedure] = {}
        self._depth_cache: Dict[str, Dict[Statement, int]] = {}
        for cls in classes:
            self.add_class(cls)

    # ----- construction -----------------------------------------------------

    def add_class(self, cls: ClassInfo) -> None:
        if cls.name in self._classes:
            raise ProgramFormatError(f"duplicate class {cls.name}")
        self._classes[cls.name] = cls
        for proc in cls.methods.values():
            self._procedures[proc.signature] = proc

    # ----- ProgramModel -----------------------------------------------------

    def is_application_code(self, procedure: Procedure) -> bool:
        return not self.config.is_library_class(procedure.declaring_class)

    def body(self, procedure: Procedure) -> Optional[Sequence[Statement]]:
        return procedure.body

    def loop_nest_depths(self, procedure: Procedure) -> Mapping[Statement, int]:
        depths = self._depth_cache.get(procedure.signature)
        if depths is None:
            depths = loop_nest_depths(procedure.loops)
            self._depth_cache[procedure.signature] = depths
        return depths

    def application_classes(self) -> List[ClassInfo]:
        return [
            c for c in self._classes.values()
            if not self.config.is_library_class(c.name)
        ]

    def application_procedures(self) -> List[Procedure]:
        return [p for c in self.application_classes() for p in c.methods.values()]

    def class_info(self, name: str) -> Optional[ClassInfo]:
        return self._classes.get(name)

    def procedure(self, signature: str) -> Procedure:
        """Return the procedure for *signature*, creating a phantom if unknown."""
        proc = self._procedures.get(signature)
        if proc is None:
            proc = Procedure.phantom(signature)
            self._procedures[signature] = proc
            logger.debug("Created phantom procedure %s", signature)
        return proc

    def implements_runnable(self, cls: ClassInfo) -> bool:
        target = self.config.runnable_interface
        seen: Set[str] = set()
        pending: List[str] = [cls.name]
        while pending:
            name = pending.pop()
            if name in seen:
                continue
            seen.add(name)
            if name == target and name != cls.name:
                return True
            info = self._classes.get(name)
            if info is None:
                continue
            pending.extend(info.interfaces)
            if info.superclass:
                pending.append(info.superclass)
        return False

    def is_subclass_of_thread(self, cls: ClassInfo) -> bool:
        target = self.config.thread_class
        for name in self._superclasses(cls):
            if name == target:
                return True
        return False

    def execution_entry_point(self, cls: ClassInfo) -> Optional[Procedure]:
        subsig = self.config.entry_subsignature
        found = cls.method(subsig)
        if found is not None:
            return found
        for name in self._superclasses(cls):
            info = self._classes.get(name)
            if info is None:
                # library superclass without a model: the entry is a phantom
                if name == self.config.thread_class:
                    return self.procedure(make_signature(name, subsig))
                return None
            found = info.method(subsig)
            if found is not None:
                return found
        return None

    # ----- helpers ----------------------------------------------------------

    def _superclasses(self, cls: ClassInfo) -> Iterator[str]:
        seen: Set[str] = {cls.name}
        name = cls.superclass
        while name and name not in seen:
            seen.add(name)
            yield name
            info = self._classes.get(name)
            name = info.superclass if info is not None else None

    @property
    def classes(self) -> List[ClassInfo]:
        return list(self._classes.values())

    def __repr__(self) -> str:
        return (
            f"InMemoryProgram(classes={len(self._classes)}, "
            f"procedures={len(self._procedures)})"
        )


# ---------------------------------------------------------------------------
# JSON loader
# ---------------------------------------------------------------------------

def _parse_statement(raw: Any, index: int, where: str) -> Statement:
    if raw is None:
        return Statement(StatementKind.PLAIN, index)
    if not isinstance(raw, dict):
        raise ProgramFormatError(f"{where}: statement {index} must be an object")
    method = raw.get("invoke")
    if method is not None:
        split_signature(method)
    args = raw.get("args", ())
    targets = raw.get("targets")
    if not raw.get("assign"):
        kind = StatementKind.INVOKE if method is not None else StatementKind.PLAIN
        return Statement(kind, index, method=method, arg_types=args, targets=targets)
    if raw.get("nested"):
        if method is None:
            raise ProgramFormatError(
                f"{where}: statement {index} is nested but has no invoke"
            )
        rhs = Statement(
            StatementKind.INVOKE, index, method=method,
            arg_types=args, targets=targets,
        )
        return Statement(StatementKind.ASSIGN, index, rhs=rhs)
    return Statement(
        StatementKind.ASSIGN, index, method=method,
        arg_types=args, targets=targets,
    )


def _parse_loops(
    raw: Mapping[str, Any], body: List[Statement], where: str
) -> List[Loop]:
    def stmt_at(i: Any) -> Statement:
        if not isinstance(i, int) or not 0 <= i < len(body):
            raise ProgramFormatError(f"{where}: loop refers to statement {i!r}")
        return body[i]

    if "loops" in raw and "successors" in raw:
        raise ProgramFormatError(f"{where}: give either 'loops' or 'successors'")
    if "successors" in raw:
        succ_raw = raw["successors"]
        if not isinstance(succ_raw, dict):
            raise ProgramFormatError(f"{where}: 'successors' must be an object")
        succ: Dict[Statement, List[Statement]] = {}
        for key, dsts in succ_raw.items():
            try:
                src = stmt_at(int(key))
            except ValueError as exc:
                raise ProgramFormatError(
                    f"{where}: bad successor key {key!r}"
                ) from exc
            succ[src] = [stmt_at(d) for d in dsts]
        return natural_loops(body, succ)
    loops: List[Loop] = []
    for members in raw.get("loops", ()):
        stmts = [stmt_at(i) for i in members]
        if not stmts:
            raise ProgramFormatError(f"{where}: empty loop")
        loops.append(Loop(stmts[0], stmts))
    return loops


def _parse_method(raw: Any, class_name: str) -> Procedure:
    if not isinstance(raw, dict) or "subsignature" not in raw:
        raise ProgramFormatError(
            f"class {class_name}: every method needs a 'subsignature'"
        )
    subsig = raw["subsignature"]
    where = make_signature(class_name, subsig)
    if raw.get("phantom") or "statements" not in raw:
        return Procedure(class_name, subsig)
    body = [
        _parse_statement(s, i, where) for i, s in enumerate(raw["statements"])
    ]
    loops = _parse_loops(raw, body, where)
    return Procedure(class_name, subsig, body=body, loops=loops)


def program_from_dict(
    data: Mapping[str, Any],
    config: Optional[AnalysisConfig] = None,
) -> InMemoryProgram:
    """Build an :class:`InMemoryProgram` from a parsed JSON description.

    Expected shape::

        {"classes": [
            {"name": "app.Main",
             "superclass": "java.lang.Object",
             "interfaces": [],
             "methods": [
                {"subsignature": "void main()",
                 "statements": [{"invoke": "<app.Util: void f()>"}, {}],
                 "loops": [[0, 1]]}]}]}
    """
    classes_raw = data.get("classes")
    if not isinstance(classes_raw, list):
        raise ProgramFormatError("program must have a 'classes' list")
    program = InMemoryProgram(config=config)
    for raw in classes_raw:
        if not isinstance(raw, dict) or not raw.get("name"):
            raise ProgramFormatError("every class needs a 'name'")
        name = raw["name"]
        methods = [_parse_method(m, name) for m in raw.get("methods", ())]
        program.add_class(ClassInfo(
            name,
            superclass=raw.get("superclass", "java.lang.Object"),
            interfaces=raw.get("interfaces", ()),
            methods=methods,
            is_interface=bool(raw.get("interface", False)),
        ))
    logger.info(
        "Loaded %d classes (%d application procedures)",
        len(program.classes), len(program.application_procedures()),
    )
    return program


def load_program(
    path: Union[str, Path],
    config: Optional[AnalysisConfig] = None,
) -> InMemoryProgram:
    """Read a JSON program description from *path*."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ProgramFormatError(f"cannot read program {p}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ProgramFormatError(f"program {p} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ProgramFormatError(f"program {p} must hold a JSON object")
    return program_from_dict(data, config)
