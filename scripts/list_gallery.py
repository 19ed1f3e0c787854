"""
List the registered faces of the gallery.

Usage:
    python scripts/list_gallery.py
    python scripts/list_gallery.py --identities-only
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from facematch.config import configure_logging, load_settings
from facematch.errors import StorageError
from facematch.gallery_store import GalleryStore

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="List registered faces")
    parser.add_argument("--identities-only", action="store_true",
                        help="Only print the distinct identity labels")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings)

    try:
        with GalleryStore(settings.db_path, dimension=settings.embedding.dimension) as store:
            if args.identities_only:
                output = {"identities": store.identities()}
            else:
                output = {
                    "stats": store.get_stats(),
                    "entries": [entry.to_dict() for entry in store.list_all()],
                }
    except StorageError as e:
        logger.error(f"Gallery unavailable: {e}")
        return 2

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
