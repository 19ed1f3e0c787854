"""
Matching Module for Face Recognition

Components:
    - interfaces: MatchResult and the abstract GalleryMatcher
    - euclidean_matcher: linear-scan L2 matcher with first/nearest policies

Usage:
    from facematch.matching import EuclideanMatcher, find_match

    matcher = EuclideanMatcher(threshold=0.4, policy="first")
    result = matcher.match(query, gallery)
"""

from facematch.matching.interfaces import MatchResult, GalleryMatcher
from facematch.matching.euclidean_matcher import EuclideanMatcher, find_match

__all__ = [
    "MatchResult",
    "GalleryMatcher",
    "EuclideanMatcher",
    "find_match",
]
