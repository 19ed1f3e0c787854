"""
Calibrate the match threshold on the registered gallery.

Every pair of gallery entries is scored: pairs of the same identity are
genuine, pairs of different identities are impostors. The configured
threshold is evaluated (FAR, FRR, EER, AUC) and a FAR/FRR sweep is printed
to help pick a new operating point. Needs at least two identities, one of
them registered at least twice.

Usage:
    python scripts/calibrate_threshold.py
    python scripts/calibrate_threshold.py --threshold 0.5 --save-dir output/calibration
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from facematch.config import configure_logging, load_settings
from facematch.errors import StorageError
from facematch.evaluation import (
    ThresholdCalibrator,
    gallery_pairs,
    plot_calibration,
    sweep_thresholds,
)
from facematch.gallery_store import GalleryStore

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Calibrate the match threshold on the gallery")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Threshold to evaluate (default: matching.threshold)")
    parser.add_argument("--save-dir", default=None, help="Save the calibration report figure to this directory")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings)
    threshold = args.threshold if args.threshold is not None else settings.matching.threshold

    try:
        with GalleryStore(settings.db_path, dimension=settings.embedding.dimension) as store:
            entries = store.list_all()
    except StorageError as e:
        logger.error(f"Gallery unavailable: {e}")
        return 2

    distances, labels = gallery_pairs(entries)
    try:
        result = ThresholdCalibrator(threshold).evaluate(distances, labels)
    except ValueError as e:
        logger.error(f"Cannot calibrate on {len(entries)} gallery entries: {e}")
        return 1

    output = result.to_dict()
    if args.save_dir:
        output["report"] = plot_calibration(result, save_dir=args.save_dir)
    output["sweep"] = sweep_thresholds(distances, labels, np.round(np.arange(0.1, 1.55, 0.05), 2))
    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
