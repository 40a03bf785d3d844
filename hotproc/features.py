"""
hotproc.features
================

Per-procedure invocation features and the local feature extractor.

A :class:`Features` record carries two counters:

``static_invocations``
    Number of call sites with a resolved target.  Summed unweighted when
    callee features are folded in: it is a structural count.
``approx_dynamic_invocations``
    Loop-weighted estimate of how many calls execute.  A call site at loop
    depth *d* counts ``10 ** d``; a callee folded in at call depth *d* is
    multiplied by ``10 ** d``.

Both counters only ever grow: records are merged into with
:meth:`Features.add_features_from`, never reset.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from hotproc.errors import ExtractionFailure, IssueLog, UnresolvableBody
from hotproc.model import Procedure, ProgramModel, iter_call_sites

if TYPE_CHECKING:
    from hotproc.store import FeatureStore

logger = logging.getLogger(__name__)

__all__ = [
    "WEIGHT_BASE",
    "loop_weight",
    "Features",
    "LocalFeatureExtractor",
]

#: One order of magnitude more executions per loop nesting level.
WEIGHT_BASE = 10


def loop_weight(depth: int) -> int:
    """Estimated executions of a statement at loop nesting *depth*."""
    if depth < 0:
        raise ValueError(f"loop depth must be non-negative, got {depth}")
    return WEIGHT_BASE ** depth


class Features:
    """Invocation features of one procedure."""

    __slots__ = ("procedure", "static_invocations", "approx_dynamic_invocations")

    def __init__(
        self,
        procedure: Optional[Procedure] = None,
        static_invocations: int = 0,
        approx_dynamic_invocations: int = 0,
    ) -> None:
        self.procedure = procedure
        self.static_invocations = static_invocations
        self.approx_dynamic_invocations = approx_dynamic_invocations

    def add_features_from(self, other: Features, call_depth: int = 0) -> None:
        """Merge *other* (a callee) into this record.

        Parameters
        ----------
        other:
            Features of the callee.
        call_depth:
            Loop nesting depth of the calling statement in *this*
            procedure.
        """
        multiplier = loop_weight(call_depth)
        self.approx_dynamic_invocations += other.approx_dynamic_invocations * multiplier
        self.static_invocations += other.static_invocations

    def copy(self) -> Features:
        return Features(
            self.procedure,
            self.static_invocations,
            self.approx_dynamic_invocations,
        )

    def as_tuple(self) -> tuple:
        return (self.static_invocations, self.approx_dynamic_invocations)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "procedure": self.procedure.signature if self.procedure else None,
            "static_invocations": self.static_invocations,
            "approx_dynamic_invocations": self.approx_dynamic_invocations,
        }

    def serialize(self) -> str:
        """``"<static> | <approx>"``; for reports only."""
        return f"{self.static_invocations} | {self.approx_dynamic_invocations}"

    def __repr__(self) -> str:
        name = self.procedure.signature if self.procedure else "<none>"
        return (
            f"Features({name}, static={self.static_invocations}, "
            f"approx={self.approx_dynamic_invocations})"
        )


class LocalFeatureExtractor:
    """Compute a procedure's features from its own body only.

    Library procedures are skipped: they get zero features and their body
    is never requested.  A missing body is recorded as
    :class:`~hotproc.errors.UnresolvableBody`, any other failure as
    :class:`~hotproc.errors.ExtractionFailure`; in both cases the features
    gathered so far are returned.
    """

    def __init__(
        self,
        program: ProgramModel,
        issues: Optional[IssueLog] = None,
    ) -> None:
        self.program = program
        self.issues = issues if issues is not None else IssueLog()

    def extract(self, procedure: Procedure) -> Features:
        features = Features(procedure)
        if not self.program.is_application_code(procedure):
            return features
        logger.debug("Collecting invocations for %s", procedure.signature)
        try:
            body = self.program.body(procedure)
            if body is None:
                raise UnresolvableBody(procedure.signature)
            depths = self.program.loop_nest_depths(procedure)
            for stmt, method in iter_call_sites(body):
                depth = depths.get(stmt, 0)
                features.static_invocations += 1
                features.approx_dynamic_invocations += loop_weight(depth)
                logger.debug("  found %s at depth %d", method, depth)
        except UnresolvableBody as exc:
            self.issues.record(exc, phase="extract")
            logger.debug("No body for %s; counted as zero", procedure.signature)
        except Exception as exc:
            self.issues.record(
                ExtractionFailure(
                    "invocations ignored after internal failure",
                    procedure=procedure.signature,
                    cause=exc,
                ),
                phase="extract",
            )
            logger.warning(
                "Invocations for %s were ignored, due to internal failure: %s",
                procedure.signature, exc,
            )
        return features

    def extract_all(
        self,
        procedures: Iterable[Procedure],
        store: FeatureStore,
    ) -> int:
        """Register local features for every procedure; return how many."""
        count = 0
        for proc in procedures:
            if not self.program.is_application_code(proc):
                continue
            store.put_local(proc, self.extract(proc))
            count += 1
        logger.info("Counted local invocations for %d procedures", count)
        return count
