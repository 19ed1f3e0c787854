"""
FaceMatch: embedding-gallery face registration and recognition.

This package contains the matching engine: descriptors and their distance,
the durable gallery, the matcher, and the registration and recognition
pipelines built on top of them.

Main components:
    - descriptor: fixed-length face descriptor and Euclidean distance
    - gallery_store: SQLite-backed gallery of registered faces
    - matching: first-match / nearest gallery matchers
    - interfaces: detector and extractor contracts (plus stubs)
    - face_detector: OpenCV Haar-cascade face detector
    - face_embedder: ArcFace / FaceNet descriptor extractor
    - registration / recognition: the two pipelines
    - engine: builds everything from config.yaml
    - evaluation: threshold calibration

Usage:
    from facematch import FaceMatchEngine, load_settings

    with FaceMatchEngine.from_settings(load_settings()) as engine:
        report = engine.recognition.recognize_image(image)
"""

from facematch.config import (
    Settings,
    load_config,
    load_settings,
    get_section,
    configure_logging,
)

from facematch.errors import (
    FaceMatchError,
    DimensionMismatch,
    ExtractionFailed,
    StorageError,
)

from facematch.descriptor import Descriptor, distance

from facematch.gallery_store import GalleryStore, GalleryEntry

from facematch.matching import (
    MatchResult,
    GalleryMatcher,
    EuclideanMatcher,
    find_match,
)

from facematch.interfaces import (
    FaceRegion,
    FaceRegionDetector,
    DescriptorExtractor,
    StubFaceDetector,
    StubDescriptorExtractor,
)

from facematch.registration import (
    RegistrationPipeline,
    RegistrationRequest,
    RegistrationResult,
    RegistrationStatus,
)

from facematch.recognition import (
    RecognitionPipeline,
    RecognitionReport,
    RegionResult,
    RegionStatus,
    annotate,
)

from facematch.engine import FaceMatchEngine

__all__ = [
    # Configuration
    "Settings",
    "load_config",
    "load_settings",
    "get_section",
    "configure_logging",
    # Errors
    "FaceMatchError",
    "DimensionMismatch",
    "ExtractionFailed",
    "StorageError",
    # Descriptor & Gallery
    "Descriptor",
    "distance",
    "GalleryStore",
    "GalleryEntry",
    # Matching
    "MatchResult",
    "GalleryMatcher",
    "EuclideanMatcher",
    "find_match",
    # Collaborators
    "FaceRegion",
    "FaceRegionDetector",
    "DescriptorExtractor",
    "StubFaceDetector",
    "StubDescriptorExtractor",
    # Pipelines
    "RegistrationPipeline",
    "RegistrationRequest",
    "RegistrationResult",
    "RegistrationStatus",
    "RecognitionPipeline",
    "RecognitionReport",
    "RegionResult",
    "RegionStatus",
    "annotate",
    # Engine
    "FaceMatchEngine",
]
