"""
Face Detection Module

Finds face rectangles in full images with an OpenCV Haar cascade. The
cascade files ship with opencv-python (cv2.data.haarcascades); a path to a
custom cascade XML can be configured instead.

Usage:
    from facematch.face_detector import HaarFaceDetector

    detector = HaarFaceDetector.from_config(settings.face_detection)
    regions = detector.detect(cv2.imread("group.jpg"))
"""

import logging
import os
from typing import List, Tuple

import cv2
import numpy as np

from facematch.interfaces import FaceRegion, FaceRegionDetector

logger = logging.getLogger(__name__)


def resolve_cascade_path(cascade: str) -> str:
    """
    Locate a cascade file.

    An existing path is used as-is; otherwise the name is looked up in the
    cascade directory bundled with OpenCV.

    Raises:
        FileNotFoundError: If the cascade cannot be found.
    """
    if os.path.isfile(cascade):
        return cascade

    bundled = os.path.join(cv2.data.haarcascades, cascade)
    if os.path.isfile(bundled):
        return bundled

    raise FileNotFoundError(
        f"Haar cascade not found: {cascade} (also looked in {cv2.data.haarcascades})"
    )


class HaarFaceDetector(FaceRegionDetector):
    """
    Multi-face detector based on cv2.CascadeClassifier.

    Args:
        cascade: Cascade file name or path.
        scale_factor: Image pyramid scale step (> 1.0).
        min_neighbors: Neighbor rectangles required to keep a candidate.
        min_size: Smallest face (width, height) in pixels.

    Raises:
        FileNotFoundError: If the cascade file is missing.
        RuntimeError: If OpenCV cannot load the cascade.
    """

    def __init__(
        self,
        cascade: str = "haarcascade_frontalface_alt.xml",
        scale_factor: float = 1.1,
        min_neighbors: int = 3,
        min_size: Tuple[int, int] = (30, 30),
    ):
        self.cascade_path = resolve_cascade_path(cascade)
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = tuple(min_size)

        self._classifier = cv2.CascadeClassifier(self.cascade_path)
        if self._classifier.empty():
            raise RuntimeError(f"Failed to load Haar cascade from: {self.cascade_path}")
        logger.info(f"Haar cascade loaded from: {self.cascade_path}")

    @classmethod
    def from_config(cls, detection_config) -> "HaarFaceDetector":
        return cls(
            cascade=detection_config.cascade,
            scale_factor=detection_config.scale_factor,
            min_neighbors=detection_config.min_neighbors,
            min_size=detection_config.min_size,
        )

    def detect(self, image: np.ndarray) -> List[FaceRegion]:
        """
        Detect faces in a BGR or grayscale image.

        Returns:
            Regions sorted top-to-bottom, left-to-right, so results are
            reproducible between runs.
        """
        if image is None or image.size == 0:
            return []

        if image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = image
        gray = cv2.equalizeHist(gray)

        rects = self._classifier.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=self.min_size,
        )

        regions = [FaceRegion(int(x), int(y), int(w), int(h)) for (x, y, w, h) in rects]
        regions.sort(key=lambda r: (r.y, r.x))
        logger.debug(f"Detected {len(regions)} face(s)")
        return regions
