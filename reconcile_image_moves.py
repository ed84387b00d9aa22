#!/usr/bin/env python3
"""
Finish image reorders that were interrupted midway.

    python reconcile_image_moves.py --unit-id 42 --dry-run
    python reconcile_image_moves.py --unit-id 42
"""
import argparse
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from services import unit_image_service as uis  # noqa: E402  (needs .env loaded)
from services.errors import ImageServiceError  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--unit-id", type=int, required=True, help="UnitID whose image folder to repair")
    parser.add_argument("--dry-run", action="store_true", help="only list interrupted reorders")
    args = parser.parse_args(argv)

    try:
        if args.dry_run:
            pending = uis.pending_reorders(args.unit_id)
            for doc in pending:
                logger.info(
                    "pending %s: %s -> %s (%s phase, %d moves, started %s)",
                    doc.get("operationId"), doc.get("oldName"), doc.get("newName"),
                    doc.get("phase"), len(doc.get("moves", [])), doc.get("createdAt"),
                )
            logger.info("%d interrupted reorder(s) for unit %s", len(pending), args.unit_id)
            return 0

        finished = uis.resume_reorders(args.unit_id)
        logger.info("Completed %d interrupted reorder(s) for unit %s: %s", len(finished), args.unit_id, finished)
        return 0
    except ImageServiceError as e:
        logger.error("Reconcile failed for unit %s: %s", args.unit_id, e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
