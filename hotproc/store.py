"""
hotproc.store
=============

The registry of per-procedure :class:`~hotproc.features.Features`.

Three partitions:

local
    Features computed from a procedure's own body during the extraction
    pass.
propagated
    Features after call-graph aggregation.
external
    Created lazily for procedures first seen as call targets (library and
    platform code, or anything the extraction pass did not cover), computed
    locally once and cached.

The store hands out the stored objects themselves.  The propagation engine
relies on that: a record registered with :meth:`FeatureStore.put` and then
merged into in place is seen by every later :meth:`FeatureStore.get`.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from hotproc.features import Features, LocalFeatureExtractor
from hotproc.model import Procedure

logger = logging.getLogger(__name__)

__all__ = ["FeatureStore"]


class FeatureStore:
    """Per-run owner of every Features record."""

    def __init__(self, extractor: LocalFeatureExtractor) -> None:
        self.extractor = extractor
        self._local: Dict[Procedure, Features] = {}
        self._propagated: Dict[Procedure, Features] = {}
        self._external: Dict[Procedure, Features] = {}

    def get(self, procedure: Procedure) -> Features:
        """Propagated, else local, else external features of *procedure*.

        When none exist yet, local features are computed now and cached in
        the external partition.
        """
        features = self._propagated.get(procedure)
        if features is not None:
            return features
        features = self._local.get(procedure)
        if features is not None:
            return features
        features = self._external.get(procedure)
        if features is None:
            features = self.extractor.extract(procedure)
            self._external[procedure] = features
            logger.debug("Created external features for %s", procedure.signature)
        return features

    def local_or_compute(self, procedure: Procedure) -> Features:
        """Local (or external) features of *procedure*, ignoring propagation."""
        features = self._local.get(procedure)
        if features is not None:
            return features
        features = self._external.get(procedure)
        if features is None:
            features = self.extractor.extract(procedure)
            self._local[procedure] = features
        return features

    def put(self, procedure: Procedure, features: Features) -> None:
        """Register propagated features, replacing any earlier entry."""
        self._propagated[procedure] = features

    def put_local(self, procedure: Procedure, features: Features) -> None:
        self._local[procedure] = features

    def local(self, procedure: Procedure) -> Optional[Features]:
        return self._local.get(procedure)

    def propagated(self, procedure: Procedure) -> Optional[Features]:
        return self._propagated.get(procedure)

    def is_propagated(self, procedure: Procedure) -> bool:
        return procedure in self._propagated

    def local_items(self) -> List[Tuple[Procedure, Features]]:
        return list(self._local.items())

    def propagated_items(self) -> List[Tuple[Procedure, Features]]:
        return list(self._propagated.items())

    def external_items(self) -> List[Tuple[Procedure, Features]]:
        return list(self._external.items())

    def unpropagated_items(self) -> List[Tuple[Procedure, Features]]:
        """Local entries that never received propagated features."""
        return [
            (p, f) for p, f in self._local.items()
            if p not in self._propagated
        ]

    def __contains__(self, procedure: object) -> bool:
        return (
            procedure in self._propagated
            or procedure in self._local
            or procedure in self._external
        )

    def __len__(self) -> int:
        return len(
            set(self._local) | set(self._propagated) | set(self._external)
        )

    def __repr__(self) -> str:
        return (
            f"FeatureStore(local={len(self._local)}, "
            f"propagated={len(self._propagated)}, "
            f"external={len(self._external)})"
        )
