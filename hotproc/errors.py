# hotproc/errors.py
"""
Error types and recovered-failure bookkeeping for hotproc.

Error Hierarchy:
────────────────
    HotprocError (base)
    ├── UnresolvableBody       - procedure has no retrievable body
    ├── ClassificationFailure  - a call site / edge could not be classified
    ├── ExtractionFailure      - internal error while analysing a procedure
    ├── ProgramFormatError     - malformed program description (input)
    └── ConfigError            - malformed configuration (input)

The first three never escape an analysis run.  They are raised close to
their origin, caught at the procedure or call-site boundary and turned into
:class:`AnalysisIssue` records on an :class:`IssueLog`, so a test (or the
CLI) can inspect exactly what was skipped.  The last two are raised to the
caller before any analysis starts.

Example Usage:
──────────────
    issues = IssueLog()
    try:
        ...
    except ClassificationFailure as exc:
        issues.record(exc, phase="augment")

    for issue in issues.by_kind(IssueKind.CLASSIFICATION_FAILURE):
        print(issue)
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

__all__ = [
    "IssueKind",
    "HotprocError",
    "UnresolvableBody",
    "ClassificationFailure",
    "ExtractionFailure",
    "ProgramFormatError",
    "ConfigError",
    "AnalysisIssue",
    "IssueLog",
]


class IssueKind(Enum):
    """Classification of a recovered failure."""

    UNRESOLVABLE_BODY = "unresolvable-body"
    CLASSIFICATION_FAILURE = "classification-failure"
    EXTRACTION_FAILURE = "extraction-failure"
    INPUT = "input"


# ───────────────────────────────────────────────────────────────────────────
# EXCEPTIONS
# ───────────────────────────────────────────────────────────────────────────

class HotprocError(Exception):
    """Base exception for all hotproc errors.

    Parameters
    ----------
    message:
        Human-readable description.
    procedure:
        Signature of the procedure being analysed, if any.
    statement_index:
        Position of the offending statement in the procedure body, if any.
    cause:
        The underlying exception, when this error wraps one.
    """

    kind: IssueKind = IssueKind.INPUT

    def __init__(
        self,
        message: str,
        procedure: Optional[str] = None,
        statement_index: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.procedure = procedure
        self.statement_index = statement_index
        self.cause = cause

    def __str__(self) -> str:
        where = ""
        if self.procedure:
            where = f"{self.procedure}"
            if self.statement_index is not None:
                where += f" @ stmt {self.statement_index}"
            where += ": "
        return f"{where}{self.message}"


class UnresolvableBody(HotprocError):
    """The procedure is phantom, abstract or native: a zero-contribution leaf."""

    kind = IssueKind.UNRESOLVABLE_BODY

    def __init__(self, procedure: str, **kwargs: Any) -> None:
        super().__init__("no retrievable body", procedure=procedure, **kwargs)


class ClassificationFailure(HotprocError):
    """A call site or call-graph edge could not be classified."""

    kind = IssueKind.CLASSIFICATION_FAILURE


class ExtractionFailure(HotprocError):
    """Internal error while extracting or propagating one procedure."""

    kind = IssueKind.EXTRACTION_FAILURE


class ProgramFormatError(HotprocError):
    """The program description handed to the model loader is malformed."""


class ConfigError(HotprocError):
    """The analysis configuration is malformed."""


# ───────────────────────────────────────────────────────────────────────────
# ISSUE LOG
# ───────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AnalysisIssue:
    """A failure that was recovered from during an analysis run."""

    kind: IssueKind
    phase: str
    message: str
    procedure: Optional[str] = None
    statement_index: Optional[int] = None

    def __str__(self) -> str:
        loc = self.procedure or "<program>"
        if self.statement_index is not None:
            loc += f" @ stmt {self.statement_index}"
        return f"[{self.phase}] {self.kind.value}: {loc}: {self.message}"

    def to_json(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "phase": self.phase,
            "message": self.message,
            "procedure": self.procedure,
            "statement_index": self.statement_index,
        }


class IssueLog:
    """Ordered collection of :class:`AnalysisIssue` records."""

    def __init__(self) -> None:
        self._issues: List[AnalysisIssue] = []

    def record(self, error: HotprocError, phase: str) -> AnalysisIssue:
        """Turn *error* into an issue record and keep it."""
        message = error.message
        if error.cause is not None:
            message = f"{message} ({type(error.cause).__name__}: {error.cause})"
        issue = AnalysisIssue(
            kind=error.kind,
            phase=phase,
            message=message,
            procedure=error.procedure,
            statement_index=error.statement_index,
        )
        self._issues.append(issue)
        return issue

    def by_kind(self, kind: IssueKind) -> List[AnalysisIssue]:
        return [i for i in self._issues if i.kind is kind]

    def by_procedure(self, signature: str) -> List[AnalysisIssue]:
        return [i for i in self._issues if i.procedure == signature]

    def counts(self) -> Dict[str, int]:
        """Number of issues per kind, keyed by the kind's value."""
        return dict(Counter(i.kind.value for i in self._issues))

    def __iter__(self) -> Iterator[AnalysisIssue]:
        return iter(self._issues)

    def __len__(self) -> int:
        return len(self._issues)

    def __repr__(self) -> str:
        return f"IssueLog({len(self._issues)} issues)"
