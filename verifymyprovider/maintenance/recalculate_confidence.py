"""
Recalculate confidence scores so time-based decay shows up in stored scores.

Scores are otherwise only refreshed when a verification is submitted. This
job rescores every plan acceptance record with at least one verification
and writes the score when it changed.

Usage:
    python -m verifymyprovider.maintenance.recalculate_confidence             # dry run
    python -m verifymyprovider.maintenance.recalculate_confidence --apply     # write scores
"""

import json
import logging
import sqlite3
import sys
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..confidence.scorer import ConfidenceScorer
from ..storage.database import ProviderDatabase, to_db_timestamp, from_db_timestamp
from ..verification.service import PLAN_ACCEPTANCE, ACCEPTED, NOT_ACCEPTED
from .common import build_parser, load_script_context, print_summary

logger = logging.getLogger(__name__)


class ConfidenceRecalculator:
    """
    Batch rescoring of plan acceptance records.
    """

    def __init__(self, database: ProviderDatabase, scorer: Optional[ConfidenceScorer] = None,
                 batch_size: int = 100):
        self.database = database
        self.scorer = scorer or ConfidenceScorer()
        self.batch_size = batch_size

    def _claim_tallies(self, conn: sqlite3.Connection, npi: str, plan_id: str,
                       now: datetime) -> Dict[str, int]:
        """Majority and minority counts among non-expired acceptance claims."""
        rows = conn.execute('''
            SELECT new_value FROM verification_logs
            WHERE provider_npi = ? AND plan_id = ? AND verification_type = ?
              AND (expires_at IS NULL OR expires_at > ?)
        ''', [npi, plan_id, PLAN_ACCEPTANCE, to_db_timestamp(now)]).fetchall()

        counts = {ACCEPTED: 0, NOT_ACCEPTED: 0}
        for row in rows:
            status = (json.loads(row["new_value"]) if row["new_value"] else {}).get("acceptance_status")
            if status in counts:
                counts[status] += 1

        return {
            "agreeing": max(counts.values()),
            "disagreeing": min(counts.values()),
        }

    def rescore_record(self, conn: sqlite3.Connection, record: sqlite3.Row, now: datetime) -> Dict:
        """Confidence result for one acceptance record as of `now`."""
        tallies = self._claim_tallies(conn, record["provider_npi"], record["plan_id"], now)
        return self.scorer.calculate(
            data_source=record["data_source"],
            last_verified_at=from_db_timestamp(record["last_verified"]),
            verification_count=record["verification_count"],
            upvotes=tallies["agreeing"],
            downvotes=tallies["disagreeing"],
            specialty=record["primary_specialty"],
            taxonomy_description=record["taxonomy_description"],
            now=now,
        )

    def run(self, apply: bool = False, limit: Optional[int] = None,
            now: Optional[datetime] = None,
            on_progress: Optional[Callable[[int, int], None]] = None) -> Dict[str, any]:
        """
        Rescore acceptance records in id order.

        Args:
            apply: Write changed scores
            limit: Maximum records to process
            now: Reference time
            on_progress: Called with (processed, updated) after each batch

        Returns:
            Dictionary with processed, updated, unchanged, errors and duration
        """
        now = now or datetime.now()
        start_time = time.time()
        stats = {"processed": 0, "updated": 0, "unchanged": 0, "errors": 0}

        total = self.database.count("provider_plan_acceptance", "verification_count >= 1")
        effective_limit = min(limit, total) if limit else total
        logger.info(f"Recalculating confidence for {effective_limit} of {total} records "
                    f"({'APPLY' if apply else 'DRY RUN'})")

        last_id = 0
        while stats["processed"] < effective_limit:
            take = min(self.batch_size, effective_limit - stats["processed"])

            with self.database.transaction() as conn:
                batch = conn.execute('''
                    SELECT a.id, a.provider_npi, a.plan_id, a.data_source, a.confidence_score,
                           a.last_verified, a.verification_count,
                           p.primary_specialty, p.taxonomy_description
                    FROM provider_plan_acceptance a
                    LEFT JOIN providers p ON p.npi = a.provider_npi
                    WHERE a.verification_count >= 1 AND a.id > ?
                    ORDER BY a.id
                    LIMIT ?
                ''', [last_id, take]).fetchall()

                if not batch:
                    break

                for record in batch:
                    try:
                        result = self.rescore_record(conn, record, now)
                        new_score = round(result["score"], 2)

                        if record["confidence_score"] is None or \
                                round(record["confidence_score"], 2) != new_score:
                            if apply:
                                conn.execute('''
                                    UPDATE provider_plan_acceptance
                                    SET confidence_score = ?, confidence_factors = ?, updated_at = ?
                                    WHERE id = ?
                                ''', [new_score, json.dumps(result["factors"]),
                                      to_db_timestamp(now), record["id"]])
                            stats["updated"] += 1
                        else:
                            stats["unchanged"] += 1
                    except (sqlite3.Error, ValueError) as e:
                        stats["errors"] += 1
                        logger.error(f"Error recalculating confidence for record {record['id']}: {e}")

                    stats["processed"] += 1

            last_id = batch[-1]["id"]
            if on_progress:
                on_progress(stats["processed"], stats["updated"])

        stats["duration_seconds"] = round(time.time() - start_time, 1)
        logger.info(f"Confidence recalculation complete: {stats}")
        return stats


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for confidence recalculation."""
    parser = build_parser("Recalculate confidence scores with time-based decay")
    parser.add_argument("--limit", type=int, default=0, help="Maximum records to process (0 for all)")
    parser.add_argument("--batch", type=int, help="Records per batch")
    args = parser.parse_args(argv)

    try:
        config, database = load_script_context(args, "recalculate_confidence")
        scorer = ConfidenceScorer(config["confidence"], config["freshness"])
        batch_size = args.batch or config["maintenance"]["recalculation_batch_size"]
        stats = ConfidenceRecalculator(database, scorer, batch_size).run(
            apply=args.apply, limit=args.limit or None,
            on_progress=lambda processed, updated: logger.info(
                f"Processed {processed}, updated {updated}"),
        )
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Confidence recalculation failed: {e}")
        return 1

    print_summary("Confidence recalculation", stats)
    return 0


if __name__ == "__main__":
    sys.exit(main())
