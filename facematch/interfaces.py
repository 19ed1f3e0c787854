"""
Collaborator Interfaces Module

The matching engine consumes two external capabilities it does not
implement itself:

    1. FaceRegionDetector - finds face rectangles in a full image
    2. DescriptorExtractor - turns a cropped face image into a Descriptor

Concrete implementations live in face_detector.py (OpenCV Haar cascade)
and face_embedder.py (ArcFace / FaceNet). The stub implementations below
return fixed results so pipelines can be exercised without any model files.

Usage:
    from facematch.interfaces import StubDescriptorExtractor, FaceRegion

    extractor = StubDescriptorExtractor(dimension=128)
    descriptor = extractor.extract(face_crop)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from facematch.descriptor import Descriptor


@dataclass(frozen=True)
class FaceRegion:
    """
    Axis-aligned face rectangle in pixel coordinates.

    Attributes:
        x, y: Top-left corner.
        width, height: Size in pixels (both > 0).
    """

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"FaceRegion must have positive size, got {self.width}x{self.height}")

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def top_left(self):
        return (self.x, self.y)

    @property
    def bottom_right(self):
        return (self.x + self.width, self.y + self.height)

    def crop(self, image: np.ndarray) -> np.ndarray:
        """
        Return the part of `image` covered by this region.

        The rectangle is clipped to the image bounds; a region lying fully
        outside the image yields an empty array.
        """
        h, w = image.shape[:2]
        x1 = min(max(self.x, 0), w)
        y1 = min(max(self.y, 0), h)
        x2 = min(max(self.x + self.width, 0), w)
        y2 = min(max(self.y + self.height, 0), h)
        return image[y1:y2, x1:x2]

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FaceRegion":
        return cls(int(data["x"]), int(data["y"]), int(data["width"]), int(data["height"]))

    @classmethod
    def full_image(cls, image: np.ndarray) -> "FaceRegion":
        """Region covering the whole image."""
        h, w = image.shape[:2]
        return cls(0, 0, w, h)


class FaceRegionDetector(ABC):
    """
    Abstract base class for face detectors.

    Detected regions lie within the image bounds; they are not guaranteed
    to be non-overlapping.
    """

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[FaceRegion]:
        """
        Find faces in an image.

        Args:
            image: Full BGR image (H, W, 3), uint8.

        Returns:
            Zero or more FaceRegion rectangles.
        """
        pass


class DescriptorExtractor(ABC):
    """
    Abstract base class for descriptor extractors.

    Attributes:
        dimension: Length of every descriptor this extractor produces.
    """

    dimension: int

    @abstractmethod
    def extract(self, region_image: np.ndarray) -> Optional[Descriptor]:
        """
        Compute the descriptor of a cropped face.

        Args:
            region_image: Face crop in BGR format (H, W, 3), uint8.

        Returns:
            Descriptor of length `dimension`, or None when no descriptor can be
            produced (region too small, quality too low, no face found).
        """
        pass


# ============================================================
# Stub Implementations (for tests and demos without models)
# ============================================================


class StubFaceDetector(FaceRegionDetector):
    """Detector that returns a fixed list of regions for any image."""

    def __init__(self, regions: Optional[Sequence[FaceRegion]] = None):
        self.regions = list(regions) if regions is not None else None

    def detect(self, image: np.ndarray) -> List[FaceRegion]:
        """Return the configured regions, or one region covering the image."""
        if self.regions is None:
            return [FaceRegion.full_image(image)]
        return list(self.regions)


class StubDescriptorExtractor(DescriptorExtractor):
    """
    Extractor returning a fixed descriptor, or one computed by a callable.

    Args:
        dimension: Descriptor length.
        value: Either a constant fill value, or a callable
               `f(region_image) -> sequence | Descriptor | None`.
               A callable returning None simulates an extraction failure.
    """

    def __init__(
        self,
        dimension: int = 128,
        value: Union[float, Callable[[np.ndarray], Any]] = 0.0,
    ):
        self.dimension = dimension
        self.value = value
        self.calls = 0

    def extract(self, region_image: np.ndarray) -> Optional[Descriptor]:
        self.calls += 1
        if callable(self.value):
            result = self.value(region_image)
            if result is None or isinstance(result, Descriptor):
                return result
            return Descriptor(result)
        return Descriptor(np.full(self.dimension, self.value, dtype=np.float32))
