"""
Engine wiring

Builds the gallery store, detector, extractor, matcher and both pipelines
once from Settings and hands them out explicitly. Entry points (API app,
CLI scripts) own one FaceMatchEngine for their lifetime; nothing is kept in
module-level globals.

Usage:
    from facematch.config import load_settings
    from facematch.engine import FaceMatchEngine

    with FaceMatchEngine.from_settings(load_settings()) as engine:
        engine.registration.register_image(image, "alice", "images/alice.jpg")
        report = engine.recognition.recognize_image(image)
"""

import logging
from typing import Optional

from facematch.config import Settings
from facematch.face_detector import HaarFaceDetector
from facematch.face_embedder import FaceEmbedder
from facematch.gallery_store import GalleryStore
from facematch.interfaces import DescriptorExtractor, FaceRegionDetector, StubDescriptorExtractor
from facematch.matching import EuclideanMatcher, GalleryMatcher
from facematch.recognition import RecognitionPipeline
from facematch.registration import RegistrationPipeline

logger = logging.getLogger(__name__)


def build_extractor(settings: Settings) -> DescriptorExtractor:
    """Create the extractor selected by embedding.backend."""
    embedding = settings.embedding
    if embedding.backend == "stub":
        logger.warning("Using the stub descriptor extractor, recognition results are meaningless")
        return StubDescriptorExtractor(dimension=embedding.dimension)
    return FaceEmbedder.from_config(embedding)


class FaceMatchEngine:
    """
    Container for the collaborating objects of one process.

    Args:
        settings: Loaded configuration.
        store: Gallery store.
        extractor: Descriptor extractor.
        matcher: Gallery matcher.
        detector: Face detector, or None to treat whole images as one face.
    """

    def __init__(
        self,
        settings: Settings,
        store: GalleryStore,
        extractor: DescriptorExtractor,
        matcher: GalleryMatcher,
        detector: Optional[FaceRegionDetector] = None,
    ):
        self.settings = settings
        self.store = store
        self.extractor = extractor
        self.matcher = matcher
        self.detector = detector

        self.registration = RegistrationPipeline(extractor, store, detector=detector)
        self.recognition = RecognitionPipeline(
            extractor,
            matcher,
            store,
            detector=detector,
            max_workers=settings.recognition.max_workers,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        detector: Optional[FaceRegionDetector] = None,
        extractor: Optional[DescriptorExtractor] = None,
        matcher: Optional[GalleryMatcher] = None,
    ) -> "FaceMatchEngine":
        """
        Build every component from settings.

        Components passed explicitly replace the configured ones (tests use
        this to inject stubs).
        """
        if extractor is None:
            extractor = build_extractor(settings)
        if matcher is None:
            matcher = EuclideanMatcher.from_config(settings.matching)
        if detector is None:
            detector = HaarFaceDetector.from_config(settings.face_detection)

        # Must stay last: nothing closes the store if a component above raises
        store = GalleryStore(settings.db_path, dimension=settings.embedding.dimension)

        logger.info(
            f"FaceMatchEngine ready: gallery={settings.db_path}, "
            f"threshold={settings.matching.threshold}, policy={settings.matching.policy}"
        )
        return cls(settings, store, extractor, matcher, detector=detector)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "FaceMatchEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
