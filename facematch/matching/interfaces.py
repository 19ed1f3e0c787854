"""
Matching Interfaces Module

Defines the result type and the abstract interface for gallery matchers.
A matcher takes one query descriptor and a gallery snapshot and decides
which identity, if any, the query belongs to.

Usage:
    from facematch.matching.interfaces import MatchResult, GalleryMatcher

    class MyMatcher(GalleryMatcher):
        def match(self, query, gallery):
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from facematch.descriptor import Descriptor
from facematch.gallery_store import GalleryEntry


@dataclass
class MatchResult:
    """
    Result of matching one query descriptor against a gallery.

    Attributes:
        identity: Matched identity label, or None when nothing matched.
        distance: Euclidean distance to the reported entry. For a no-match this
                  is the smallest distance examined (None for an empty gallery).
        source: Source reference of the matched entry.
        index: Position of the matched entry in the gallery snapshot.
        details: Algorithm-specific details (policy, threshold, comparisons).
    """

    identity: Optional[str] = None
    distance: Optional[float] = None
    source: Optional[str] = None
    index: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_match(self) -> bool:
        return self.identity is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "distance": round(self.distance, 6) if self.distance is not None else None,
            "source": self.source,
            "is_match": self.is_match,
        }


class GalleryMatcher(ABC):
    """
    Abstract base class for gallery matchers.

    Implementations must not mutate the gallery and must raise
    DimensionMismatch instead of comparing descriptors of unequal length.
    """

    @abstractmethod
    def match(self, query: Descriptor, gallery: Sequence[GalleryEntry]) -> MatchResult:
        """
        Find the identity of a query descriptor.

        Args:
            query: Descriptor of the face to identify.
            gallery: Snapshot of registered entries, in gallery order.

        Returns:
            MatchResult; identity is None when nothing is under threshold.
        """
        pass
