"""
Populate practice_locations.address_hash and report address duplication.

The hash is SHA-256 of lowercase address and city, uppercase state and ZIP5
joined with "|", so rows at the same physical address share a hash.

Usage:
    python -m verifymyprovider.maintenance.deduplicate_locations            # report only
    python -m verifymyprovider.maintenance.deduplicate_locations --apply    # write hashes
"""

import logging
import sqlite3
import sys
from typing import Dict, List, Optional
import pandas as pd

from ..normalize.address_normalizer import AddressNormalizer
from ..normalize.name_normalizer import provider_display_name
from ..storage.database import ProviderDatabase
from .common import build_parser, load_script_context, print_summary

logger = logging.getLogger(__name__)


class LocationDeduplicator:
    """
    Computes address hashes and builds the duplication report.
    """

    def __init__(self, database: ProviderDatabase, batch_size: int = 1000,
                 normalizer: Optional[AddressNormalizer] = None):
        self.database = database
        self.batch_size = batch_size
        self.normalizer = normalizer or AddressNormalizer()

    def hash_row(self, row) -> str:
        return self.normalizer.address_hash(
            row["address_line1"], row["city"], row["state"], row["zip_code"])

    def apply_hashes(self, limit: Optional[int] = None) -> int:
        """
        Write address hashes for rows that have none.

        Args:
            limit: Maximum rows to hash (all when None)

        Returns:
            Number of rows hashed
        """
        processed = 0

        while True:
            batch_limit = self.batch_size
            if limit:
                batch_limit = min(batch_limit, limit - processed)
            if batch_limit <= 0:
                break

            with self.database.transaction() as conn:
                rows = conn.execute('''
                    SELECT id, address_line1, city, state, zip_code
                    FROM practice_locations
                    WHERE address_hash IS NULL
                    ORDER BY id
                    LIMIT ?
                ''', [batch_limit]).fetchall()

                if not rows:
                    break

                conn.executemany(
                    "UPDATE practice_locations SET address_hash = ? WHERE id = ?",
                    [(self.hash_row(row), row["id"]) for row in rows]
                )

            processed += len(rows)
            logger.info(f"Hashed {processed} locations")

        return processed

    def build_report(self, top_n: int = 10) -> Dict[str, any]:
        """
        Duplication report computed from the current rows.

        Returns:
            Dictionary with totals, duplication ratio, most duplicated
            addresses and providers with the most locations
        """
        locations_df = self.database.query_df(
            "SELECT id, npi, address_line1, city, state, zip_code, address_hash FROM practice_locations"
        )
        total = len(locations_df)

        if total == 0:
            return {
                "total_locations": 0, "already_hashed": 0, "unique_addresses": 0,
                "duplicates": 0, "duplication_ratio": 0.0,
                "top_duplicated_addresses": [], "top_providers": [],
            }

        hashes = locations_df.apply(self.hash_row, axis=1)
        unique_addresses = int(hashes.nunique())

        keys_df = pd.DataFrame({
            "address": locations_df["address_line1"].fillna("").str.strip().str.lower(),
            "city": locations_df["city"].fillna("").str.strip().str.lower(),
            "state": locations_df["state"].fillna("").str.strip().str.upper(),
        })
        address_counts = keys_df.value_counts()
        top_addresses = [
            {"address": address, "city": city, "state": state, "count": int(count)}
            for (address, city, state), count in address_counts[address_counts > 1].head(top_n).items()
        ]

        providers_df = self.database.query_df('''
            SELECT p.npi, p.entity_type, p.first_name, p.last_name, p.credential,
                   p.organization_name, COUNT(pl.id) AS location_count
            FROM providers p
            JOIN practice_locations pl ON p.npi = pl.npi
            GROUP BY p.npi
            ORDER BY location_count DESC, p.npi
            LIMIT ?
        ''', [top_n])
        top_providers = [
            {
                "npi": row["npi"],
                "name": provider_display_name(row["entity_type"], row["first_name"], row["last_name"],
                                              organization_name=row["organization_name"]),
                "location_count": int(row["location_count"]),
            }
            for _, row in providers_df.iterrows()
        ]

        return {
            "total_locations": total,
            "already_hashed": int(locations_df["address_hash"].notna().sum()),
            "unique_addresses": unique_addresses,
            "duplicates": total - unique_addresses,
            "duplication_ratio": round((total - unique_addresses) / total * 100, 1),
            "top_duplicated_addresses": top_addresses,
            "top_providers": top_providers,
        }

    def run(self, apply: bool = False, limit: Optional[int] = None) -> Dict[str, any]:
        hashed = self.apply_hashes(limit) if apply else 0
        report = self.build_report()
        report["hashed"] = hashed
        return report


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for address hashing and duplication report."""
    parser = build_parser("Compute practice location address hashes and report duplicates")
    parser.add_argument("--limit", type=int, default=0, help="Maximum rows to hash (0 for all)")
    parser.add_argument("--batch", type=int, help="Rows hashed per batch")
    args = parser.parse_args(argv)

    try:
        config, database = load_script_context(args, "deduplicate_locations")
        batch_size = args.batch or config["maintenance"]["hash_batch_size"]
        report = LocationDeduplicator(database, batch_size).run(args.apply, args.limit or None)
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Location deduplication failed: {e}")
        return 1

    for entry in report["top_duplicated_addresses"]:
        logger.info(f"{entry['count']}x: {entry['address']}, {entry['city']}, {entry['state']}")
    for entry in report["top_providers"]:
        logger.info(f"{entry['npi']}: {entry['name']} ({entry['location_count']} locations)")

    print_summary("Location deduplication", {
        "total_locations": report["total_locations"],
        "already_hashed": report["already_hashed"],
        "hashed": report["hashed"],
        "unique_addresses": report["unique_addresses"],
        "duplicates": report["duplicates"],
        "duplication_ratio": f"{report['duplication_ratio']}%",
    }, footer=None if args.apply else "Run with --apply to populate address_hash.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
