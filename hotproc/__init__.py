"""
hotproc: Static Hot-Procedure Estimation
========================================

Estimates, per procedure, how often it and its transitive callees are likely
to be invoked, using only a call graph and per-procedure loop nesting.  Used
to rank "hot" procedures of a codebase without running it.

Core modules
------------
model
    The host program model: statements, procedures, classes, and the
    ``ProgramModel`` protocol the engine consumes.
loops
    Loop nest trees and per-statement loop depths.
features
    ``Features`` records and the local feature extractor.
store
    The per-run feature store (local / propagated / external).
callgraph
    Call multigraph keyed by call site, with Tarjan SCC detection.
augment
    Synthetic edges for thread start and executor submission.
propagation
    Memoised depth-first propagation of features over the call graph.
analyzer
    One full analysis pass and its result.
report
    Text and JSON summaries.

Quick start
-----------
>>> from hotproc import analyze, load_program
>>> result = analyze(load_program("program.json"))
>>> for proc, features in result.ranking(top=3):
...     print(proc.signature, features.serialize())

Package layout
--------------
::

    hotproc/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── main.py
    ├── config.py
    ├── errors.py
    ├── model.py
    ├── loops.py
    ├── features.py
    ├── store.py
    ├── callgraph.py
    ├── augment.py
    ├── propagation.py
    ├── analyzer.py
    └── report.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.3.0"
__author__ = "hotproc contributors"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "HotprocError",
        "UnresolvableBody",
        "ClassificationFailure",
        "ExtractionFailure",
        "ProgramFormatError",
        "ConfigError",
        "IssueKind",
        "IssueLog",
    ],
    "config": [
        "AnalysisConfig",
        "load_config",
    ],
    "loops": [
        "Loop",
        "LoopNestTree",
        "loop_nest_depths",
        "natural_loops",
    ],
    "model": [
        "Statement",
        "StatementKind",
        "Procedure",
        "ClassInfo",
        "ProgramModel",
        "InMemoryProgram",
        "load_program",
        "program_from_dict",
    ],
    "features": [
        "Features",
        "LocalFeatureExtractor",
        "WEIGHT_BASE",
    ],
    "store": [
        "FeatureStore",
    ],
    "callgraph": [
        "CallGraph",
        "CallEdge",
        "EdgeKind",
        "build_callgraph",
    ],
    "augment": [
        "CallGraphAugmenter",
        "DispatchPattern",
        "ThreadStartPattern",
        "ExecutorSubmitPattern",
        "UnresolvedCallFallback",
    ],
    "propagation": [
        "PropagationEngine",
    ],
    "analyzer": [
        "StaticAnalyzer",
        "AnalysisResult",
        "analyze",
    ],
}

# ---------------------------------------------------------------------------
# Import helper
# ---------------------------------------------------------------------------

def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    Parameters
    ----------
    module_rel_name:
        Module name relative to this package (e.g. ``"features"``).
    names:
        Public symbols to re-export.
    """
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"hotproc: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        if not hasattr(mod, name):
            raise AttributeError(
                f"hotproc.{module_rel_name} does not export '{name}'"
            )
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)

    # Also expose the submodule itself as a package attribute so that
    #   hotproc.features.Features
    # works in addition to
    #   hotproc.Features
    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)
    _log.debug("Loaded %s (%d names)", fq_name, len(names))

# ---------------------------------------------------------------------------
# Eagerly import everything at package load time
# ---------------------------------------------------------------------------

for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

# Clean up loop variables from the module namespace
del _mod, _names


def list_submodules() -> List[str]:
    """Return the names of the core submodules."""
    return sorted(_CORE_MODULES)


def package_info() -> dict:
    """Return a dict of metadata about the package.

    Useful for logging/diagnostics inside drivers.
    """
    loaded = [m for m in list_submodules() if f"{__name__}.{m}" in sys.modules]
    return {
        "package": __name__,
        "version": __version__,
        "python": sys.version,
        "loaded_submodules": loaded,
        "all_exports": list(__all__),
    }


__all__ += ["list_submodules", "package_info", "__version__"]

# ---------------------------------------------------------------------------
# TYPE_CHECKING block
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from .errors import (
        HotprocError as HotprocError,
        UnresolvableBody as UnresolvableBody,
        ClassificationFailure as ClassificationFailure,
        ExtractionFailure as ExtractionFailure,
        ProgramFormatError as ProgramFormatError,
        ConfigError as ConfigError,
        IssueKind as IssueKind,
        IssueLog as IssueLog,
    )
    from .config import (
        AnalysisConfig as AnalysisConfig,
        load_config as load_config,
    )
    from .loops import (
        Loop as Loop,
        LoopNestTree as LoopNestTree,
        loop_nest_depths as loop_nest_depths,
        natural_loops as natural_loops,
    )
    from .model import (
        Statement as Statement,
        StatementKind as StatementKind,
        Procedure as Procedure,
        ClassInfo as ClassInfo,
        ProgramModel as ProgramModel,
        InMemoryProgram as InMemoryProgram,
        load_program as load_program,
        program_from_dict as program_from_dict,
    )
    from .features import (
        Features as Features,
        LocalFeatureExtractor as LocalFeatureExtractor,
        WEIGHT_BASE as WEIGHT_BASE,
    )
    from .store import FeatureStore as FeatureStore
    from .callgraph import (
        CallGraph as CallGraph,
        CallEdge as CallEdge,
        EdgeKind as EdgeKind,
        build_callgraph as build_callgraph,
    )
    from .augment import (
        CallGraphAugmenter as CallGraphAugmenter,
        DispatchPattern as DispatchPattern,
        ThreadStartPattern as ThreadStartPattern,
        ExecutorSubmitPattern as ExecutorSubmitPattern,
        UnresolvedCallFallback as UnresolvedCallFallback,
    )
    from .propagation import PropagationEngine as PropagationEngine
    from .analyzer import (
        StaticAnalyzer as StaticAnalyzer,
        AnalysisResult as AnalysisResult,
        analyze as analyze,
    )
