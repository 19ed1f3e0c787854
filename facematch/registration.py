"""
Registration Pipeline

Turns a face region plus an identity label into a durable gallery entry:

    region image -> DescriptorExtractor -> GalleryEntry -> GalleryStore.put

A successful register() performs exactly one store write; a failed one
performs none. There are no retries.

Usage:
    from facematch.registration import RegistrationPipeline

    pipeline = RegistrationPipeline(extractor, store)
    result = pipeline.register(face_crop, "alice", "images/alice.jpg")
    print(result.status)   # RegistrationStatus.STORED
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from facematch.errors import ExtractionFailed, StorageError
from facematch.gallery_store import GalleryEntry, GalleryStore
from facematch.interfaces import DescriptorExtractor, FaceRegion, FaceRegionDetector

logger = logging.getLogger(__name__)


class RegistrationStatus(str, Enum):
    STORED = "stored"
    ALREADY_EXISTS = "already_exists"
    EXTRACTION_FAILED = "extraction_failed"
    STORAGE_ERROR = "storage_error"


@dataclass
class RegistrationRequest:
    """One item of a batch registration."""

    region_image: np.ndarray
    identity: str
    source: str


@dataclass
class RegistrationResult:
    """
    Outcome of one registration attempt.

    Attributes:
        status: What happened (see RegistrationStatus).
        identity: The requested identity label.
        source: The requested source reference.
        region: Region that was registered, when taken from a full image.
        error: Human-readable reason for a failed attempt.
    """

    status: RegistrationStatus
    identity: str
    source: str
    region: Optional[FaceRegion] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (RegistrationStatus.STORED, RegistrationStatus.ALREADY_EXISTS)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "status": self.status.value,
            "identity": self.identity,
            "source": self.source,
        }
        if self.region is not None:
            data["region"] = self.region.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data


def _require_text(value: str, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value.strip()


class RegistrationPipeline:
    """
    Register faces into the gallery.

    Args:
        extractor: Produces descriptors from face crops.
        store: Gallery the entries are written to.
        detector: Used by register_image() to locate the face. Optional.
    """

    def __init__(
        self,
        extractor: DescriptorExtractor,
        store: GalleryStore,
        detector: Optional[FaceRegionDetector] = None,
    ):
        self.extractor = extractor
        self.store = store
        self.detector = detector

    def register(self, region_image: np.ndarray, identity: str, source: str) -> RegistrationResult:
        """
        Extract a descriptor from a face region and store it under `identity`.

        Args:
            region_image: Cropped face (BGR).
            identity: Label of the person.
            source: Reference to where the image came from. Registering the
                    same source twice is a no-op reported as ALREADY_EXISTS.

        Returns:
            RegistrationResult with status STORED or ALREADY_EXISTS.

        Raises:
            ValueError: If identity or source is empty.
            ExtractionFailed: If no descriptor could be extracted. Nothing is stored.
            DimensionMismatch: If the descriptor length differs from the gallery's.
            StorageError: If the gallery write failed.
        """
        identity = _require_text(identity, "identity")
        source = _require_text(source, "source")

        descriptor = self.extractor.extract(region_image)
        if descriptor is None:
            logger.warning(f"Extraction failed for {identity} ({source}), nothing stored")
            raise ExtractionFailed(f"No descriptor could be extracted for source {source}")

        created = self.store.put(GalleryEntry(identity, descriptor, source))
        if created:
            logger.info(f"Registered {identity} from {source}")
            status = RegistrationStatus.STORED
        else:
            status = RegistrationStatus.ALREADY_EXISTS

        return RegistrationResult(status=status, identity=identity, source=source)

    def register_many(self, requests: Iterable[RegistrationRequest]) -> List[RegistrationResult]:
        """
        Register several faces, isolating failures per item.

        Extraction and storage failures become results with an error message;
        the remaining requests are still processed. Invalid identity/source
        and DimensionMismatch still raise, since they indicate a caller or
        configuration bug rather than a bad image.
        """
        results = []
        for request in requests:
            try:
                result = self.register(request.region_image, request.identity, request.source)
            except ExtractionFailed as e:
                result = RegistrationResult(
                    status=RegistrationStatus.EXTRACTION_FAILED,
                    identity=request.identity,
                    source=request.source,
                    error=str(e),
                )
            except StorageError as e:
                result = RegistrationResult(
                    status=RegistrationStatus.STORAGE_ERROR,
                    identity=request.identity,
                    source=request.source,
                    error=str(e),
                )
            results.append(result)

        stored = sum(1 for r in results if r.status == RegistrationStatus.STORED)
        logger.info(f"Batch registration: {stored}/{len(results)} stored")
        return results

    def register_image(
        self,
        image: np.ndarray,
        identity: str,
        source: str,
        detector: Optional[FaceRegionDetector] = None,
        detect: bool = True,
    ) -> RegistrationResult:
        """
        Register the largest face found in a full image.

        Without a detector (argument or pipeline default), or with
        detect=False, the whole image is treated as the face region.

        Raises:
            ExtractionFailed: If no face is detected or extraction fails.
            ValueError: If identity or source is blank (checked before detection).
            Plus everything register() raises.
        """
        identity = _require_text(identity, "identity")
        source = _require_text(source, "source")
        detector = (detector or self.detector) if detect else None

        if detector is None:
            region = FaceRegion.full_image(image)
        else:
            regions = detector.detect(image)
            if not regions:
                logger.warning(f"No face detected in {source}")
                raise ExtractionFailed(f"No face detected in {source}")
            # max() keeps the first of equally large regions
            region = max(regions, key=lambda r: r.area)
            if len(regions) > 1:
                logger.info(f"{len(regions)} faces in {source}, registering the largest")

        result = self.register(region.crop(image), identity, source)
        result.region = region
        return result


__all__ = [
    "RegistrationStatus",
    "RegistrationRequest",
    "RegistrationResult",
    "RegistrationPipeline",
]
