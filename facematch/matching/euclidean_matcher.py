"""
Euclidean Matcher: linear gallery scan under an L2 distance threshold.

Two policies are supported:
    - "first":   return the first entry, in gallery order, whose distance is
                 strictly below the threshold. The scan stops there, so a
                 closer entry further down the gallery is never examined.
                 This is the default, compatible behavior.
    - "nearest": examine every entry and return the closest one if it is
                 strictly below the threshold. Ties go to the earliest entry.

The scan has no index; it is intended for small galleries.
"""

import logging
import math
from typing import Optional, Sequence

from facematch.config import MATCH_POLICIES
from facematch.descriptor import Descriptor, distance
from facematch.gallery_store import GalleryEntry
from facematch.matching.interfaces import GalleryMatcher, MatchResult

logger = logging.getLogger(__name__)


class EuclideanMatcher(GalleryMatcher):
    """
    Match descriptors by Euclidean distance against a fixed threshold.

    Args:
        threshold: Maximum distance (exclusive) still considered a match.
        policy: "first" or "nearest".

    Raises:
        ValueError: On a non-positive/non-finite threshold or unknown policy.
    """

    def __init__(self, threshold: float = 0.4, policy: str = "first"):
        if not math.isfinite(threshold) or threshold <= 0:
            raise ValueError(f"threshold must be a positive finite number, got {threshold!r}")
        if policy not in MATCH_POLICIES:
            raise ValueError(f"policy must be one of {MATCH_POLICIES}, got {policy!r}")
        self.threshold = float(threshold)
        self.policy = policy

    @classmethod
    def from_config(cls, matching_config) -> "EuclideanMatcher":
        return cls(threshold=matching_config.threshold, policy=matching_config.policy)

    def match(self, query: Descriptor, gallery: Sequence[GalleryEntry]) -> MatchResult:
        if self.policy == "first":
            return self._match_first(query, gallery)
        return self._match_nearest(query, gallery)

    def _match_first(self, query: Descriptor, gallery: Sequence[GalleryEntry]) -> MatchResult:
        closest = None
        for index, entry in enumerate(gallery):
            d = distance(query, entry.descriptor)
            if d < self.threshold:
                logger.debug(f"First match at index {index}: {entry.identity} (d={d:.4f})")
                return MatchResult(
                    identity=entry.identity,
                    distance=d,
                    source=entry.source,
                    index=index,
                    details=self._details(comparisons=index + 1),
                )
            if closest is None or d < closest:
                closest = d

        return MatchResult(distance=closest, details=self._details(comparisons=len(gallery)))

    def _match_nearest(self, query: Descriptor, gallery: Sequence[GalleryEntry]) -> MatchResult:
        best_index = None
        best_distance = None
        for index, entry in enumerate(gallery):
            d = distance(query, entry.descriptor)
            if best_distance is None or d < best_distance:
                best_index, best_distance = index, d

        details = self._details(comparisons=len(gallery))
        if best_index is not None and best_distance < self.threshold:
            entry = gallery[best_index]
            return MatchResult(
                identity=entry.identity,
                distance=best_distance,
                source=entry.source,
                index=best_index,
                details=details,
            )
        return MatchResult(distance=best_distance, details=details)

    def _details(self, comparisons: int) -> dict:
        return {
            "method": "euclidean",
            "policy": self.policy,
            "threshold": self.threshold,
            "comparisons": comparisons,
        }


def find_match(
    query: Descriptor,
    gallery: Sequence[GalleryEntry],
    threshold: float,
    policy: str = "first",
) -> Optional[str]:
    """
    Return the identity matching `query`, or None.

    Functional form of EuclideanMatcher(threshold, policy).match(...).identity.
    """
    return EuclideanMatcher(threshold=threshold, policy=policy).match(query, gallery).identity
