"""
Recognize faces in image files against the registered gallery.

Directories are expanded to the images they contain. Annotated copies
(green = recognized, red = unknown, amber = no descriptor) are written to
the output directory as output_<filename>.

Usage:
    python scripts/recognize_faces.py images/

    python scripts/recognize_faces.py group1.jpg group2.jpg --output-dir results

    # Closest match instead of first match, stricter threshold
    python scripts/recognize_faces.py images/ --policy nearest --threshold 0.35

Exit codes: 0 all images processed, 1 some images unreadable,
2 gallery unavailable.
"""

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from facematch.config import MATCH_POLICIES, configure_logging, load_settings
from facematch.engine import FaceMatchEngine
from facematch.errors import StorageError
from facematch.recognition import find_images

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Recognize faces against the gallery")
    parser.add_argument("paths", nargs="+", help="Image files or directories")
    parser.add_argument("--output-dir", default=None,
                        help="Where annotated images go (default: recognition.output_dir)")
    parser.add_argument("--no-output", action="store_true", help="Do not write annotated images")
    parser.add_argument("--policy", choices=MATCH_POLICIES, default=None,
                        help="Override matching.policy")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Override matching.threshold")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(settings)

    overrides = {}
    if args.policy is not None:
        overrides["policy"] = args.policy
    if args.threshold is not None:
        overrides["threshold"] = args.threshold
    if overrides:
        settings = dataclasses.replace(
            settings, matching=dataclasses.replace(settings.matching, **overrides)
        )

    if args.no_output:
        output_dir = None
    elif args.output_dir is not None:
        output_dir = args.output_dir
    else:
        output_dir = str(settings.resolve_path(settings.recognition.output_dir))

    images = find_images(args.paths)
    if not images:
        logger.error("No images found")
        return 1

    try:
        with FaceMatchEngine.from_settings(settings) as engine:
            reports = engine.recognition.recognize_files(images, output_dir=output_dir)
    except StorageError as e:
        logger.error(f"Recognition aborted, gallery unavailable: {e}")
        return 2
    except ImportError as e:
        logger.error(f"Embedding backend unavailable: {e}")
        return 1

    print(json.dumps([report.to_dict() for report in reports], indent=2))

    failed = [r for r in reports if r.error is not None]
    if failed:
        logger.warning(f"{len(failed)} of {len(reports)} image(s) could not be processed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
