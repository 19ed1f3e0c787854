"""
Unit Tests for Face Detector Module

This module tests the face region type and the Haar-cascade detector:
- FaceRegion validation, cropping and conversion
- Cascade lookup in the OpenCV data directory
- Detection on images without faces
- Stub detector behavior

Usage:
    pytest tests/test_face_detector.py -v
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from facematch.config import DetectionConfig
from facematch.face_detector import HaarFaceDetector, resolve_cascade_path
from facematch.interfaces import FaceRegion, StubFaceDetector


# ============================================================
# Test FaceRegion Dataclass
# ============================================================

class TestFaceRegion:
    """Tests for FaceRegion dataclass."""

    def test_create_region(self):
        region = FaceRegion(10, 20, 30, 40)
        assert region.area == 1200
        assert region.top_left == (10, 20)
        assert region.bottom_right == (40, 60)

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-5, 10)])
    def test_non_positive_size_rejected(self, width, height):
        with pytest.raises(ValueError):
            FaceRegion(0, 0, width, height)

    def test_crop_inside_image(self):
        image = np.arange(100 * 100, dtype=np.uint16).reshape(100, 100)
        crop = FaceRegion(10, 20, 30, 40).crop(image)
        assert crop.shape == (40, 30)
        assert crop[0, 0] == image[20, 10]

    def test_crop_is_clipped_to_bounds(self):
        image = np.zeros((50, 50, 3), dtype=np.uint8)
        crop = FaceRegion(40, -10, 30, 30).crop(image)
        assert crop.shape == (20, 10, 3)

    def test_crop_outside_image_is_empty(self):
        image = np.zeros((50, 50, 3), dtype=np.uint8)
        assert FaceRegion(100, 100, 10, 10).crop(image).size == 0

    def test_dict_conversion(self):
        region = FaceRegion(1, 2, 3, 4)
        assert FaceRegion.from_dict(region.to_dict()) == region

    def test_full_image(self):
        image = np.zeros((48, 64, 3), dtype=np.uint8)
        assert FaceRegion.full_image(image) == FaceRegion(0, 0, 64, 48)


# ============================================================
# Test Haar Cascade Detector
# ============================================================

class TestHaarFaceDetector:
    """Tests for the OpenCV Haar-cascade detector."""

    @pytest.fixture(scope="class")
    def detector(self):
        return HaarFaceDetector()

    def test_bundled_cascade_found(self):
        path = resolve_cascade_path("haarcascade_frontalface_alt.xml")
        assert Path(path).is_file()

    def test_missing_cascade(self):
        with pytest.raises(FileNotFoundError):
            resolve_cascade_path("no_such_cascade.xml")

    def test_from_config(self):
        detector = HaarFaceDetector.from_config(
            DetectionConfig(scale_factor=1.2, min_neighbors=5, min_size=(40, 40))
        )
        assert detector.scale_factor == 1.2
        assert detector.min_neighbors == 5
        assert detector.min_size == (40, 40)

    def test_blank_image_has_no_faces(self, detector):
        """Test detection on a blank image (should find no face)."""
        image = np.zeros((480, 640, 3), dtype=np.uint8)
        assert detector.detect(image) == []

    def test_noise_image_returns_regions_in_bounds(self, detector):
        image = np.random.default_rng(0).integers(0, 255, (240, 320, 3), dtype=np.uint8)
        for region in detector.detect(image):
            assert region.x >= 0 and region.y >= 0
            assert region.x + region.width <= 320
            assert region.y + region.height <= 240

    def test_grayscale_input(self, detector):
        image = np.zeros((120, 160), dtype=np.uint8)
        assert detector.detect(image) == []

    def test_empty_input(self, detector):
        assert detector.detect(np.zeros((0, 0, 3), dtype=np.uint8)) == []
        assert detector.detect(None) == []


class TestStubFaceDetector:

    def test_fixed_regions(self):
        regions = [FaceRegion(0, 0, 10, 10), FaceRegion(20, 0, 10, 10)]
        detector = StubFaceDetector(regions)
        assert detector.detect(np.zeros((50, 50, 3), np.uint8)) == regions

    def test_default_is_whole_image(self):
        detector = StubFaceDetector()
        assert detector.detect(np.zeros((30, 40, 3), np.uint8)) == [FaceRegion(0, 0, 40, 30)]
