"""
Tests for the RecognitionPipeline.

This test suite verifies:
- The register-then-recognize scenario end to end
- One result per region, in region order
- Extraction failures are reported without calling the matcher
- Storage failures abort a run
- Parallel region processing gives the same results
- Batch recognition of image files and annotated output

Run with: pytest tests/test_recognition.py -v
"""

import os
import shutil
import sys
import tempfile
from unittest.mock import MagicMock

import cv2
import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from facematch.descriptor import Descriptor
from facematch.errors import DimensionMismatch, StorageError
from facematch.gallery_store import GalleryEntry, GalleryStore
from facematch.interfaces import FaceRegion, StubDescriptorExtractor, StubFaceDetector
from facematch.matching import EuclideanMatcher
from facematch.recognition import (
    COLOR_EXTRACTION_FAILED,
    COLOR_MATCHED,
    COLOR_NO_MATCH,
    RecognitionPipeline,
    RegionResult,
    RegionStatus,
    annotate,
    find_images,
)
from facematch.registration import RegistrationPipeline


# Regions of a 120x40 "group photo" holding three 40x40 faces side by side
LEFT = FaceRegion(0, 0, 40, 40)
MIDDLE = FaceRegion(40, 0, 40, 40)
RIGHT = FaceRegion(80, 0, 40, 40)


def color_extractor():
    """
    Descriptor = mean BGR of the crop scaled to [0, 1].

    Crops whose mean is pure white are treated as unusable (None).
    """
    def extract(crop):
        if crop.size == 0:
            return None
        mean = crop.reshape(-1, 3).mean(axis=0) / 255.0
        if np.all(mean == 1.0):
            return None
        return mean
    return StubDescriptorExtractor(dimension=3, value=extract)


def face(color):
    return np.full((40, 40, 3), color, dtype=np.uint8)


@pytest.fixture
def temp_dir():
    temp = tempfile.mkdtemp()
    yield temp
    shutil.rmtree(temp)


@pytest.fixture
def store():
    s = GalleryStore(":memory:", dimension=3)
    yield s
    s.close()


@pytest.fixture
def group_image():
    """Red face, unknown green face, white (unusable) face."""
    return np.hstack([face((0, 0, 200)), face((0, 200, 0)), face((255, 255, 255))])


@pytest.fixture
def pipelines(store):
    extractor = color_extractor()
    registration = RegistrationPipeline(extractor, store)
    recognition = RecognitionPipeline(
        extractor,
        EuclideanMatcher(threshold=0.4),
        store,
        detector=StubFaceDetector([LEFT, MIDDLE, RIGHT]),
    )
    return registration, recognition


class TestRecognizeImage:
    """End-to-end tests over a gallery."""

    def test_register_then_recognize(self, pipelines):
        """A face registered as alice is recognized as alice."""
        registration, recognition = pipelines
        alice = face((0, 0, 200))
        registration.register(alice, "alice", "alice.jpg")

        report = recognition.recognize_image(alice, regions=[FaceRegion.full_image(alice)])

        assert len(report.results) == 1
        assert report.results[0].status == RegionStatus.MATCHED
        assert report.results[0].identity == "alice"
        assert report.results[0].distance == pytest.approx(0.0)
        assert report.gallery_size == 1

    def test_alice_scenario(self):
        """Register alice once (twice from the same source), then query near and far."""
        store = GalleryStore(":memory:", dimension=128)
        queue = [
            Descriptor(np.zeros(128)),
            Descriptor(np.zeros(128)),
            Descriptor(np.r_[0.01, np.zeros(127)]),
            Descriptor(np.full(128, 10.0)),
        ]
        extractor = StubDescriptorExtractor(dimension=128, value=lambda crop: queue.pop(0))
        registration = RegistrationPipeline(extractor, store)
        recognition = RecognitionPipeline(extractor, EuclideanMatcher(threshold=0.4), store)
        image = face((0, 0, 200))

        first = registration.register(image, "alice", "img1")
        second = registration.register(image, "alice", "img1")
        assert first.status.value == "stored"
        assert second.status.value == "already_exists"
        assert len(store.list_all()) == 1

        near = recognition.recognize_image(image).results[0]
        assert near.status == RegionStatus.MATCHED
        assert near.identity == "alice"
        assert near.distance == pytest.approx(0.01, abs=1e-6)

        far = recognition.recognize_image(image).results[0]
        assert far.status == RegionStatus.NO_MATCH
        assert far.identity is None
        store.close()

    def test_empty_gallery_reports_no_match(self, pipelines):
        _, recognition = pipelines
        img = face((0, 0, 200))
        report = recognition.recognize_image(img, regions=[FaceRegion.full_image(img)])

        assert report.results[0].status == RegionStatus.NO_MATCH
        assert report.results[0].identity is None

    def test_one_result_per_region_in_order(self, pipelines, group_image):
        registration, recognition = pipelines
        registration.register(face((0, 0, 200)), "alice", "alice.jpg")

        report = recognition.recognize_image(group_image, source="group.jpg")

        assert [r.region for r in report.results] == [LEFT, MIDDLE, RIGHT]
        assert [r.status for r in report.results] == [
            RegionStatus.MATCHED,
            RegionStatus.NO_MATCH,
            RegionStatus.EXTRACTION_FAILED,
        ]
        assert report.identities == ["alice"]
        assert report.counts() == {"matched": 1, "no_match": 1, "extraction_failed": 1}
        assert report.to_dict()["source"] == "group.jpg"

    def test_extraction_failure_does_not_call_matcher(self, store):
        matcher = MagicMock()
        pipeline = RecognitionPipeline(
            StubDescriptorExtractor(dimension=3, value=lambda _: None), matcher, store
        )
        img = face((10, 20, 30))

        report = pipeline.recognize_image(img)

        assert report.results[0].status == RegionStatus.EXTRACTION_FAILED
        assert report.results[0].distance is None
        matcher.match.assert_not_called()

    def test_whole_image_without_detector(self, store):
        extractor = color_extractor()
        pipeline = RecognitionPipeline(extractor, EuclideanMatcher(0.4), store)
        img = face((1, 2, 3))

        report = pipeline.recognize_image(img)

        assert [r.region for r in report.results] == [FaceRegion(0, 0, 40, 40)]

    def test_no_faces_detected(self, store):
        pipeline = RecognitionPipeline(
            color_extractor(), EuclideanMatcher(0.4), store, detector=StubFaceDetector([])
        )
        report = pipeline.recognize_image(face((1, 2, 3)))
        assert report.results == []

    def test_gallery_read_once_per_image(self, group_image):
        store = MagicMock()
        store.list_all.return_value = [GalleryEntry("alice", Descriptor([0.0, 0.0, 200 / 255]), "a")]
        pipeline = RecognitionPipeline(
            color_extractor(), EuclideanMatcher(0.4), store,
            detector=StubFaceDetector([LEFT, MIDDLE, RIGHT]),
        )

        pipeline.recognize_image(group_image)

        assert store.list_all.call_count == 1

    def test_storage_error_aborts(self, group_image):
        store = MagicMock()
        store.list_all.side_effect = StorageError("database is locked")
        pipeline = RecognitionPipeline(color_extractor(), EuclideanMatcher(0.4), store)

        with pytest.raises(StorageError):
            pipeline.recognize_image(group_image)

    def test_dimension_mismatch_surfaces(self, group_image):
        gallery_store = GalleryStore(":memory:")
        gallery_store.put(GalleryEntry("alice", Descriptor([0.0] * 5), "a.jpg"))
        pipeline = RecognitionPipeline(color_extractor(), EuclideanMatcher(0.4), gallery_store)

        with pytest.raises(DimensionMismatch):
            pipeline.recognize_image(group_image)
        gallery_store.close()

    def test_parallel_matches_sequential(self, store, group_image):
        extractor = color_extractor()
        RegistrationPipeline(extractor, store).register(face((0, 0, 200)), "alice", "alice.jpg")
        regions = [LEFT, MIDDLE, RIGHT] * 4

        sequential = RecognitionPipeline(extractor, EuclideanMatcher(0.4), store, max_workers=1)
        parallel = RecognitionPipeline(extractor, EuclideanMatcher(0.4), store, max_workers=4)

        a = sequential.recognize_image(group_image, regions=regions)
        b = parallel.recognize_image(group_image, regions=regions)

        assert [r.to_dict() for r in a.results] == [r.to_dict() for r in b.results]

    def test_invalid_max_workers(self, store):
        with pytest.raises(ValueError):
            RecognitionPipeline(color_extractor(), EuclideanMatcher(0.4), store, max_workers=0)


class TestRecognizeFiles:
    """Tests for batch recognition of image files."""

    def test_annotated_outputs_written(self, pipelines, group_image, temp_dir):
        registration, recognition = pipelines
        registration.register(face((0, 0, 200)), "alice", "alice.jpg")

        input_path = os.path.join(temp_dir, "group.png")
        cv2.imwrite(input_path, group_image)
        output_dir = os.path.join(temp_dir, "out")

        reports = recognition.recognize_files([input_path], output_dir=output_dir)

        assert len(reports) == 1
        assert reports[0].identities == ["alice"]
        expected = os.path.join(output_dir, "output_group.png")
        assert reports[0].output_path == expected
        assert os.path.isfile(expected)

    def test_unreadable_file_is_isolated(self, pipelines, group_image, temp_dir):
        _, recognition = pipelines
        good = os.path.join(temp_dir, "good.png")
        cv2.imwrite(good, group_image)
        bad = os.path.join(temp_dir, "bad.png")
        with open(bad, "wb") as f:
            f.write(b"not an image")

        reports = recognition.recognize_files([bad, good])

        assert reports[0].error is not None
        assert reports[0].results == []
        assert reports[1].error is None
        assert len(reports[1].results) == 3

    def test_find_images_expands_directories(self, temp_dir):
        for name in ("b.jpg", "a.png", "notes.txt"):
            open(os.path.join(temp_dir, name), "wb").close()

        found = find_images([temp_dir])

        assert [p.name for p in found] == ["a.png", "b.jpg"]


class TestAnnotate:
    """Tests for result annotation."""

    def test_colors_per_status(self):
        img = np.zeros((200, 300, 3), dtype=np.uint8)
        results = [
            RegionResult(FaceRegion(10, 50, 60, 60), RegionStatus.MATCHED, identity="alice", distance=0.1),
            RegionResult(FaceRegion(110, 50, 60, 60), RegionStatus.NO_MATCH),
            RegionResult(FaceRegion(210, 50, 60, 60), RegionStatus.EXTRACTION_FAILED),
        ]

        annotated = annotate(img, results)

        # Left edge of each box, halfway down
        assert tuple(annotated[80, 10]) == COLOR_MATCHED
        assert tuple(annotated[80, 110]) == COLOR_NO_MATCH
        assert tuple(annotated[80, 210]) == COLOR_EXTRACTION_FAILED

    def test_input_is_not_modified(self):
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        annotate(img, [RegionResult(FaceRegion(10, 10, 50, 50), RegionStatus.NO_MATCH)])
        assert img.sum() == 0
