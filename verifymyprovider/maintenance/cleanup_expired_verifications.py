"""
Delete verification logs that are past their TTL.

Meant to run daily. Plan acceptance records are never deleted; expired ones
are only reported.

Usage:
    python -m verifymyprovider.maintenance.cleanup_expired_verifications            # dry run
    python -m verifymyprovider.maintenance.cleanup_expired_verifications --apply    # delete
"""

import logging
import sqlite3
import sys
from typing import List, Optional

from ..verification.service import VerificationService
from .common import build_parser, load_script_context, print_summary

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for expired verification cleanup."""
    parser = build_parser("Delete verification logs past their expiry")
    parser.add_argument("--batch", type=int, help="Rows deleted per batch")
    parser.add_argument("--stats", action="store_true", help="Also report upcoming expirations")
    args = parser.parse_args(argv)

    try:
        config, database = load_script_context(args, "cleanup_expired_verifications")
        service = VerificationService(database, config)
        result = service.cleanup_expired_verifications(
            dry_run=not args.apply,
            batch_size=args.batch or config["maintenance"]["delete_batch_size"],
        )
        expiration_stats = service.get_expiration_stats() if args.stats else None
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Expired verification cleanup failed: {e}")
        return 1

    print_summary("Expired verification cleanup", result)

    if expiration_stats:
        for table, stats in expiration_stats.items():
            print_summary(f"Expiration stats: {table}", stats)

    return 0


if __name__ == "__main__":
    sys.exit(main())
