"""
hotproc.config
==============

Tuning knobs shared by the program model, the call-graph augmenter and the
reporting layer.

The defaults describe a JVM program as seen through a Soot-like front end:
procedures are identified by ``<pkg.Class: ret name(args)>`` signatures and
anything in a ``java.``/``jdk.``/``sun.``/... package is library code.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

from hotproc.errors import ConfigError

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_LIBRARY_PREFIXES",
    "AnalysisConfig",
    "load_config",
]

DEFAULT_LIBRARY_PREFIXES: Tuple[str, ...] = (
    "java.",
    "jdk.",
    "soot.",
    "sun.",
    "oracle.",
    "scala.",
)

_TUPLE_FIELDS = (
    "library_prefixes",
    "thread_start_signatures",
    "submit_signatures",
    "hot_markers",
)


@dataclass
class AnalysisConfig:
    """Settings for one analysis run."""

    library_prefixes: Tuple[str, ...] = DEFAULT_LIBRARY_PREFIXES
    augment_callgraph: bool = True
    runnable_interface: str = "java.lang.Runnable"
    thread_class: str = "java.lang.Thread"
    entry_subsignature: str = "void run()"
    thread_start_signatures: Tuple[str, ...] = (
        "<java.lang.Thread: void start()>",
    )
    submit_signatures: Tuple[str, ...] = (
        "<java.util.concurrent.ExecutorService: "
        "java.util.concurrent.Future submit(java.lang.Runnable)>",
    )
    hot_markers: Tuple[str, ...] = field(
        default=(" benchmark(", " runIteration(")
    )

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if not self.entry_subsignature.strip():
            warnings.append("entry_subsignature must not be empty")
        if any(not p for p in self.library_prefixes):
            warnings.append(
                "empty library prefix classifies every class as library code"
            )
        if self.augment_callgraph and not (
            self.thread_start_signatures or self.submit_signatures
        ):
            warnings.append(
                "augment_callgraph is set but no dispatch signatures are "
                "configured"
            )
        return warnings

    def is_library_class(self, class_name: str) -> bool:
        """Is *class_name* declared in one of the excluded packages?"""
        package = class_name.rpartition(".")[0]
        return any(package.startswith(prefix) for prefix in self.library_prefixes)

    def with_overrides(self, **overrides: Any) -> AnalysisConfig:
        """Return a copy with the given fields replaced."""
        for key in _TUPLE_FIELDS:
            if key in overrides and overrides[key] is not None:
                overrides[key] = tuple(overrides[key])
        return dataclasses.replace(self, **overrides)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AnalysisConfig:
        """Build a config from a plain mapping (e.g. parsed JSON).

        Raises
        ------
        ConfigError
            If *data* contains keys that are not config fields, or a list
            field holds something other than strings.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

        kwargs: Dict[str, Any] = dict(data)
        for key in _TUPLE_FIELDS:
            if key not in kwargs:
                continue
            value = kwargs[key]
            if isinstance(value, str) or not all(
                isinstance(v, str) for v in value
            ):
                raise ConfigError(f"{key} must be a list of strings")
            kwargs[key] = tuple(value)
        return cls(**kwargs)


def load_config(path: Union[str, Path]) -> AnalysisConfig:
    """Read an :class:`AnalysisConfig` from a JSON file."""
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read config {p}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config {p} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {p} must hold a JSON object")
    logger.debug("Loaded config from %s", p)
    return AnalysisConfig.from_dict(data)
