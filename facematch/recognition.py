"""
Recognition Pipeline

Identifies every face in an image against the registered gallery:

    image -> FaceRegionDetector -> regions
          -> (per region) crop -> DescriptorExtractor -> GalleryMatcher
          -> RegionResult (matched / no_match / extraction_failed)

The gallery is read once per image and that snapshot is used for every
region, so registrations made while an image is processed are not seen
until the next image. Regions are independent of each other and may be
processed by a thread pool; results always come back in region order.

Usage:
    from facematch.recognition import RecognitionPipeline

    pipeline = RecognitionPipeline(extractor, matcher, store, detector=detector)
    report = pipeline.recognize_image(cv2.imread("group.jpg"), source="group.jpg")
    for result in report.results:
        print(result.status, result.identity)
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import cv2
import numpy as np

from facematch.gallery_store import GalleryEntry, GalleryStore
from facematch.interfaces import DescriptorExtractor, FaceRegion, FaceRegionDetector
from facematch.matching.interfaces import GalleryMatcher

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp")

# BGR colors used by annotate()
COLOR_MATCHED = (0, 255, 0)
COLOR_NO_MATCH = (0, 0, 255)
COLOR_EXTRACTION_FAILED = (0, 191, 255)


class RegionStatus(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    EXTRACTION_FAILED = "extraction_failed"


@dataclass
class RegionResult:
    """
    Outcome for one face region.

    Attributes:
        region: The face rectangle in image coordinates.
        status: matched, no_match or extraction_failed.
        identity: Matched identity (status == matched only).
        distance: Distance to the matched entry, or the closest distance seen
                  for a no_match. None when extraction failed.
        source: Source reference of the matched gallery entry.
    """

    region: FaceRegion
    status: RegionStatus
    identity: Optional[str] = None
    distance: Optional[float] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "region": self.region.to_dict(),
            "status": self.status.value,
            "identity": self.identity,
            "distance": round(self.distance, 6) if self.distance is not None else None,
            "source": self.source,
        }


@dataclass
class RecognitionReport:
    """Results of recognizing one image."""

    source: Optional[str] = None
    results: List[RegionResult] = field(default_factory=list)
    gallery_size: int = 0
    output_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def matched(self) -> List[RegionResult]:
        return [r for r in self.results if r.status == RegionStatus.MATCHED]

    @property
    def identities(self) -> List[str]:
        return [r.identity for r in self.matched]

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in RegionStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "source": self.source,
            "faces": len(self.results),
            "gallery_size": self.gallery_size,
            "counts": self.counts(),
            "results": [r.to_dict() for r in self.results],
        }
        if self.output_path is not None:
            data["output_path"] = self.output_path
        if self.error is not None:
            data["error"] = self.error
        return data


class RecognitionPipeline:
    """
    Recognize faces against a gallery snapshot.

    Args:
        extractor: Produces descriptors from face crops.
        matcher: Decides the identity of a descriptor.
        store: Gallery read once per image.
        detector: Finds face regions when recognize_image() is not given any.
                  Without a detector the whole image is one region.
        max_workers: Regions processed concurrently (1 = sequential).
    """

    def __init__(
        self,
        extractor: DescriptorExtractor,
        matcher: GalleryMatcher,
        store: GalleryStore,
        detector: Optional[FaceRegionDetector] = None,
        max_workers: int = 1,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.extractor = extractor
        self.matcher = matcher
        self.store = store
        self.detector = detector
        self.max_workers = max_workers

    def recognize_regions(
        self,
        image: np.ndarray,
        regions: Sequence[FaceRegion],
        gallery: Sequence[GalleryEntry],
    ) -> List[RegionResult]:
        """
        Identify each region of `image` against `gallery`.

        Returns one RegionResult per region, in the same order. The matcher is
        not called for regions whose extraction failed.

        Raises:
            DimensionMismatch: If the extractor and gallery dimensions differ.
        """
        if self.max_workers == 1 or len(regions) <= 1:
            return [self._recognize_region(image, region, gallery) for region in regions]

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(lambda r: self._recognize_region(image, r, gallery), regions))

    def _recognize_region(
        self,
        image: np.ndarray,
        region: FaceRegion,
        gallery: Sequence[GalleryEntry],
    ) -> RegionResult:
        descriptor = self.extractor.extract(region.crop(image))
        if descriptor is None:
            logger.warning(f"Extraction failed for region {region.to_dict()}")
            return RegionResult(region=region, status=RegionStatus.EXTRACTION_FAILED)

        match = self.matcher.match(descriptor, gallery)
        if match.is_match:
            logger.debug(f"Region {region.to_dict()} matched {match.identity} (d={match.distance:.4f})")
            return RegionResult(
                region=region,
                status=RegionStatus.MATCHED,
                identity=match.identity,
                distance=match.distance,
                source=match.source,
            )

        logger.debug(f"Region {region.to_dict()} has no match")
        return RegionResult(region=region, status=RegionStatus.NO_MATCH, distance=match.distance)

    def recognize_image(
        self,
        image: np.ndarray,
        regions: Optional[Sequence[FaceRegion]] = None,
        source: Optional[str] = None,
    ) -> RecognitionReport:
        """
        Detect (unless regions are given) and identify every face of an image.

        Raises:
            StorageError: If the gallery cannot be read. The run is aborted.
        """
        if regions is None:
            if self.detector is not None:
                regions = self.detector.detect(image)
            else:
                regions = [FaceRegion.full_image(image)]

        gallery = self.store.list_all()
        results = self.recognize_regions(image, list(regions), gallery)

        report = RecognitionReport(source=source, results=results, gallery_size=len(gallery))
        counts = report.counts()
        logger.info(
            f"Recognized {source or 'image'}: {len(results)} face(s), "
            f"{counts['matched']} matched, {counts['no_match']} unknown, "
            f"{counts['extraction_failed']} failed"
        )
        return report

    def recognize_files(
        self,
        paths: Iterable[Union[str, Path]],
        output_dir: Optional[Union[str, Path]] = None,
    ) -> List[RecognitionReport]:
        """
        Recognize faces in a batch of image files.

        An unreadable file yields a report carrying an error and the batch
        continues. When `output_dir` is set, an annotated copy of each image
        is written there as output_<filename>.

        Raises:
            StorageError: If the gallery cannot be read. The batch is aborted.
        """
        if output_dir is not None:
            os.makedirs(output_dir, exist_ok=True)

        reports = []
        for path in paths:
            path = Path(path)
            image = cv2.imread(str(path))
            if image is None:
                logger.error(f"Could not read image: {path}")
                reports.append(RecognitionReport(source=str(path), error="unreadable image"))
                continue

            report = self.recognize_image(image, source=str(path))

            if output_dir is not None:
                output_path = os.path.join(str(output_dir), f"output_{path.name}")
                if cv2.imwrite(output_path, annotate(image, report.results)):
                    report.output_path = output_path
                    logger.info(f"Output image saved: {output_path}")
                else:
                    logger.error(f"Failed to write output image: {output_path}")

            reports.append(report)

        return reports


def find_images(paths: Iterable[Union[str, Path]]) -> List[Path]:
    """
    Expand directories into the image files they contain (sorted by name).

    Files given explicitly are kept as-is, whatever their extension.
    """
    found = []
    for path in paths:
        path = Path(path)
        if path.is_dir():
            found.extend(
                sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS)
            )
        else:
            found.append(path)
    return found


def annotate(image: np.ndarray, results: Sequence[RegionResult]) -> np.ndarray:
    """
    Draw the recognition results onto a copy of `image`.

    Matched faces get a green box labelled with the identity, unknown faces a
    red box and faces whose descriptor could not be extracted an amber box.
    """
    canvas = image.copy()
    if canvas.ndim == 2:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)

    for result in results:
        if result.status == RegionStatus.MATCHED:
            color, label = COLOR_MATCHED, result.identity
        elif result.status == RegionStatus.NO_MATCH:
            color, label = COLOR_NO_MATCH, "unknown"
        else:
            color, label = COLOR_EXTRACTION_FAILED, "?"

        region = result.region
        cv2.rectangle(canvas, region.top_left, region.bottom_right, color, 2)

        text_y = region.y - 8 if region.y > 20 else region.y + region.height + 18
        cv2.putText(canvas, label, (region.x, text_y), cv2.FONT_HERSHEY_SIMPLEX,
                    0.6, color, 2, cv2.LINE_AA)

    return canvas
