"""
Remove duplicate practice location rows.

Rows sharing (npi, address_line1, city, state, zip_code) are duplicates. The
row with the highest id in each group is kept and the rest are deleted, after
clearing any plan acceptance references to them.

Usage:
    python -m verifymyprovider.maintenance.cleanup_duplicate_locations          # dry run
    python -m verifymyprovider.maintenance.cleanup_duplicate_locations --apply  # delete
"""

import logging
import sqlite3
import sys
from typing import Dict, List, Optional
import pandas as pd

from ..storage.database import ProviderDatabase
from .common import build_parser, load_script_context, chunked, print_summary

logger = logging.getLogger(__name__)

GROUP_COLUMNS = ["npi", "address_line1", "city", "state", "zip_code"]


class DuplicateLocationCleaner:
    """
    Finds and deletes duplicate practice_locations rows.
    """

    def __init__(self, database: ProviderDatabase, batch_size: int = 1000):
        self.database = database
        self.batch_size = batch_size

    def find_duplicate_groups(self) -> pd.DataFrame:
        """
        Duplicate groups, largest first.

        Returns:
            DataFrame with the group columns, count, keep_id and delete_ids
        """
        rows_df = self.database.query_df(
            "SELECT id, npi, address_line1, city, state, zip_code "
            "FROM practice_locations WHERE address_line1 IS NOT NULL"
        )

        columns = GROUP_COLUMNS + ["count", "keep_id", "delete_ids"]
        if rows_df.empty:
            return pd.DataFrame(columns=columns)

        groups = []
        for key, group_df in rows_df.groupby(GROUP_COLUMNS, dropna=False, sort=False):
            if len(group_df) < 2:
                continue
            ids = sorted(group_df["id"].astype(int).tolist(), reverse=True)
            groups.append({
                **dict(zip(GROUP_COLUMNS, key)),
                "count": len(ids),
                "keep_id": ids[0],
                "delete_ids": ids[1:],
            })

        if not groups:
            return pd.DataFrame(columns=columns)

        groups_df = pd.DataFrame(groups, columns=columns)
        return groups_df.sort_values("count", ascending=False, kind="stable").reset_index(drop=True)

    @staticmethod
    def summarize(groups_df: pd.DataFrame) -> Dict[str, int]:
        """Group count, affected rows and deletable rows."""
        if groups_df.empty:
            return {"duplicate_groups": 0, "total_affected_rows": 0, "rows_to_delete": 0}
        return {
            "duplicate_groups": len(groups_df),
            "total_affected_rows": int(groups_df["count"].sum()),
            "rows_to_delete": int((groups_df["count"] - 1).sum()),
        }

    def delete_duplicates(self, groups_df: pd.DataFrame) -> Dict[str, int]:
        """
        Delete all but the newest row of each group.

        Returns:
            Dictionary with cleared_acceptances and deleted_rows
        """
        ids_to_delete: List[int] = [
            location_id for delete_ids in groups_df["delete_ids"] for location_id in delete_ids
        ]
        stats = {"cleared_acceptances": 0, "deleted_rows": 0}

        for batch in chunked(ids_to_delete, self.batch_size):
            placeholders = ",".join("?" * len(batch))
            with self.database.transaction() as conn:
                cleared = conn.execute(
                    f"UPDATE provider_plan_acceptance SET location_id = NULL "
                    f"WHERE location_id IN ({placeholders})", batch)
                deleted = conn.execute(
                    f"DELETE FROM practice_locations WHERE id IN ({placeholders})", batch)

            stats["cleared_acceptances"] += cleared.rowcount
            stats["deleted_rows"] += deleted.rowcount
            logger.info(f"Deleted batch of {deleted.rowcount} duplicate location rows")

        if stats["cleared_acceptances"]:
            logger.info(f"Cleared location_id on {stats['cleared_acceptances']} plan acceptance rows")

        return stats

    def run(self, apply: bool = False) -> Dict[str, any]:
        """
        Detect, report and optionally delete duplicates.

        Returns:
            Summary dictionary; remaining_groups is set after a live run
        """
        groups_df = self.find_duplicate_groups()
        summary = self.summarize(groups_df)

        if groups_df.empty:
            logger.info("No duplicate locations found")
            return {**summary, "deleted_rows": 0, "remaining_groups": 0}

        for _, group in groups_df.head(10).iterrows():
            logger.info(
                f"npi={group['npi']} | {group['address_line1']}, {group['city']}, "
                f"{group['state']} {group['zip_code']} | count={group['count']} | "
                f"keep={group['keep_id']} delete={group['delete_ids']}"
            )

        if not apply:
            logger.info("Dry run, no rows deleted. Pass --apply to execute.")
            return {**summary, "deleted_rows": 0, "remaining_groups": summary["duplicate_groups"]}

        stats = self.delete_duplicates(groups_df)
        remaining = len(self.find_duplicate_groups())
        if remaining:
            logger.error(f"{remaining} duplicate groups still remain")
        else:
            logger.info("Verification: no duplicates remain")

        return {**summary, **stats, "remaining_groups": remaining}


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for duplicate location cleanup."""
    parser = build_parser("Delete duplicate practice location rows")
    parser.add_argument("--cleanup", dest="apply", action="store_true", help="Alias for --apply")
    parser.add_argument("--batch", type=int, help="Rows deleted per batch")
    args = parser.parse_args(argv)

    try:
        config, database = load_script_context(args, "cleanup_duplicate_locations")
        batch_size = args.batch or config["maintenance"]["delete_batch_size"]
        result = DuplicateLocationCleaner(database, batch_size).run(apply=args.apply)
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Duplicate location cleanup failed: {e}")
        return 1

    print_summary("Duplicate location cleanup", result)

    if args.apply and result["remaining_groups"]:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
