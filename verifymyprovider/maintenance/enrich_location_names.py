"""
Derive display names for locations from provider organization names.

Usage:
    python -m verifymyprovider.maintenance.enrich_location_names             # dry run, unnamed only
    python -m verifymyprovider.maintenance.enrich_location_names --apply     # update unnamed locations
    python -m verifymyprovider.maintenance.enrich_location_names --all       # preview all locations
"""

import logging
import sqlite3
import sys
from typing import Dict, List, Optional

from ..normalize.name_normalizer import NameNormalizer, HIGH, MEDIUM, LOW
from ..storage.database import ProviderDatabase
from .common import build_parser, load_script_context, print_summary

logger = logging.getLogger(__name__)


class LocationNameEnricher:
    """
    Picks a facility name for each location and optionally writes it.
    """

    def __init__(self, database: ProviderDatabase, normalizer: Optional[NameNormalizer] = None):
        self.database = database
        self.normalizer = normalizer or NameNormalizer()

    def best_name_for_location(self, location_id: int, min_providers: int = 1) -> Optional[Dict]:
        """Best organization name among providers at a location, or None."""
        rows = self.database.fetch_all(
            "SELECT organization_name FROM providers "
            "WHERE location_id = ? AND organization_name IS NOT NULL",
            [location_id]
        )
        return self.normalizer.select_best_name(
            [row["organization_name"] for row in rows], min_providers)

    def run(self, apply: bool = False, only_unnamed: bool = True,
            batch_size: int = 1000, min_providers: int = 1) -> Dict[str, any]:
        """
        Enrich up to `batch_size` locations.

        Args:
            apply: Write names to the database
            only_unnamed: Skip locations that already have a name
            batch_size: Maximum locations processed
            min_providers: Minimum providers sharing the chosen name

        Returns:
            Dictionary with counts, confidence distribution and enrichment results
        """
        query = "SELECT id, name, address_line1, city, state FROM locations"
        if only_unnamed:
            query += " WHERE name IS NULL"
        query += " ORDER BY id LIMIT ?"
        locations = self.database.fetch_all(query, [batch_size])

        logger.info(f"Processing {len(locations)} locations "
                    f"({'unnamed only' if only_unnamed else 'all'})")

        results = []
        stats = {"processed": 0, "enriched": 0, "skipped": 0, "errors": 0}

        for location in locations:
            try:
                best = self.best_name_for_location(location["id"], min_providers)
                stats["processed"] += 1

                if best is None:
                    stats["skipped"] += 1
                    continue

                if apply:
                    with self.database.transaction() as conn:
                        conn.execute("UPDATE locations SET name = ? WHERE id = ?",
                                     [best["name"], location["id"]])

                results.append({
                    "location_id": location["id"],
                    "address": location["address_line1"] or "",
                    "city": location["city"] or "",
                    "state": location["state"] or "",
                    "previous_name": location["name"],
                    "new_name": best["name"],
                    "provider_count": best["count"],
                    "confidence": best["confidence"],
                })
                stats["enriched"] += 1

            except sqlite3.Error as e:
                stats["errors"] += 1
                logger.error(f"Error processing location {location['id']}: {e}")

        by_confidence = {
            level: sum(1 for result in results if result["confidence"] == level)
            for level in (HIGH, MEDIUM, LOW)
        }

        for result in results[:20]:
            logger.info(f"[{result['confidence'].upper():<6}] {result['address']}, {result['city']}, "
                        f"{result['state']} -> \"{result['new_name']}\" ({result['provider_count']} providers)")

        return {**stats, "by_confidence": by_confidence, "results": results}


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for location name enrichment."""
    parser = build_parser("Populate location names from provider organization names")
    parser.add_argument("--all", action="store_true", help="Process all locations, not just unnamed ones")
    parser.add_argument("--batch", type=int, help="Maximum locations to process")
    parser.add_argument("--min", type=int, default=1, help="Minimum providers needed to derive a name")
    args = parser.parse_args(argv)

    try:
        config, database = load_script_context(args, "enrich_location_names")
        normalizer = NameNormalizer(config.get("enrichment", {}))
        result = LocationNameEnricher(database, normalizer).run(
            apply=args.apply,
            only_unnamed=not args.all,
            batch_size=args.batch or config["maintenance"]["enrichment_batch_size"],
            min_providers=args.min,
        )
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Location name enrichment failed: {e}")
        return 1

    footer = None
    if not args.apply and result["enriched"]:
        footer = "This was a dry run. Pass --apply to update locations."

    print_summary("Location name enrichment", {
        "locations_processed": result["processed"],
        "locations_enriched": result["enriched"],
        "locations_skipped": result["skipped"],
        "errors": result["errors"],
        "high_confidence": result["by_confidence"][HIGH],
        "medium_confidence": result["by_confidence"][MEDIUM],
        "low_confidence": result["by_confidence"][LOW],
    }, footer=footer)
    return 0


if __name__ == "__main__":
    sys.exit(main())
