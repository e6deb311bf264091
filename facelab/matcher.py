"""
Nearest-identity matching over labeled descriptor groups.

A group's distance to a query is the mean Euclidean distance between the query
and each of the group's descriptors. The closest group wins (first group on
ties) if that distance is below the threshold; otherwise the result is
`unknown`.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from facelab.models import MatchResult

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "unknown"
DEFAULT_DISTANCE_THRESHOLD = 0.6


@dataclass
class LabeledDescriptors:
    label: str
    descriptors: np.ndarray  # (K, D)

    @classmethod
    def from_lists(cls, label: str, vectors: Sequence[Sequence[float]]) -> "LabeledDescriptors":
        mat = np.asarray(vectors, dtype=np.float64)
        if mat.ndim != 2:
            raise ValueError(f"Descriptors for {label!r} are not a list of equal-length vectors")
        return cls(label=str(label), descriptors=mat)


class FaceMatcher:
    """Matches a descriptor against every labeled group."""

    def __init__(self, labeled: List[LabeledDescriptors], distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD):
        if not labeled:
            raise ValueError("FaceMatcher needs at least one labeled descriptor group")
        dims = {int(g.descriptors.shape[1]) for g in labeled}
        if len(dims) != 1:
            raise ValueError(f"Labeled descriptors have mixed lengths: {sorted(dims)}")
        self.labeled = labeled
        self.distance_threshold = float(distance_threshold)
        self.dim = dims.pop()

    @property
    def labels(self) -> List[str]:
        return [g.label for g in self.labeled]

    def mean_distance(self, group: LabeledDescriptors, query: np.ndarray) -> float:
        dists = np.linalg.norm(group.descriptors - query, axis=1)
        return float(np.mean(dists))

    def find_best_match(self, descriptor: Sequence[float]) -> MatchResult:
        q = np.asarray(descriptor, dtype=np.float64).reshape(-1)
        if q.shape[0] != self.dim:
            raise ValueError(f"Descriptor length mismatch: {q.shape[0]} vs {self.dim}")

        distances = np.array([self.mean_distance(g, q) for g in self.labeled])
        best_idx = int(np.argmin(distances))
        best = float(distances[best_idx])
        if best < self.distance_threshold:
            return MatchResult(label=self.labeled[best_idx].label, distance=best)
        return MatchResult(label=UNKNOWN_LABEL, distance=best)


def build_matcher(db: Dict[str, List[List[float]]], distance_threshold: float = DEFAULT_DISTANCE_THRESHOLD) -> Optional[FaceMatcher]:
    """
    Build a matcher from an identity database.

    Names with no descriptors are left out; returns None when nothing remains.
    Raises ValueError when vectors are ragged or of mixed length.
    """
    groups = [
        LabeledDescriptors.from_lists(name, vectors)
        for name, vectors in (db or {}).items()
        if vectors
    ]
    if not groups:
        logger.debug("[matcher] no labeled descriptors; matcher absent")
        return None
    logger.debug(f"[matcher] built over {len(groups)} identities threshold={distance_threshold}")
    return FaceMatcher(groups, distance_threshold)
