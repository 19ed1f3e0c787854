"""
Register a face into the gallery from an image file.

The largest face detected in the image is registered under the given
identity. The source reference defaults to the image path; registering the
same source again is a no-op.

Usage:
    python scripts/register_face.py --identity alice images/alice.jpg

    # Whole image is the face (pre-cropped input)
    python scripts/register_face.py --identity alice --no-detect crops/alice.png

    # Explicit source reference and config file
    python scripts/register_face.py --identity bob --source capture-0042 \\
        --config config.yaml frames/0042.jpg

Exit codes: 0 registered (or already registered), 1 failure.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import cv2

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from facematch.config import configure_logging, load_settings
from facematch.engine import FaceMatchEngine
from facematch.errors import ExtractionFailed, StorageError

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Register a face into the gallery")
    parser.add_argument("image", help="Path to the image file")
    parser.add_argument("--identity", required=True, help="Identity label, e.g. 'alice'")
    parser.add_argument("--source", default=None, help="Source reference (default: the image path)")
    parser.add_argument("--no-detect", action="store_true",
                        help="Treat the whole image as the face region")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    return parser.parse_args(argv)


def _failed(status: str, identity: str, source: str, error: Exception) -> int:
    logger.error(f"Registration failed: {error}")
    print(json.dumps({"status": status, "identity": identity,
                      "source": source, "error": str(error)}, indent=2))
    return 1


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(settings)

    image = cv2.imread(args.image)
    if image is None:
        logger.error(f"Could not read image: {args.image}")
        return 1

    source = args.source or args.image

    try:
        with FaceMatchEngine.from_settings(settings) as engine:
            result = engine.registration.register_image(
                image, args.identity, source, detect=not args.no_detect
            )
    except ExtractionFailed as e:
        return _failed("extraction_failed", args.identity, source, e)
    except StorageError as e:
        return _failed("storage_error", args.identity, source, e)
    except ValueError as e:
        logger.error(f"Registration rejected: {e}")
        return 1
    except ImportError as e:
        logger.error(f"Embedding backend unavailable: {e}")
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
