"""
Match locations against a health-system facility directory.

The directory is a JSON file of the form
{"organizations": [{"healthSystem": ..., "facilities": [{"name", "address",
"city", "state", "zipCode", "facilityType"}]}]}. Matching locations get the
facility name, health system and facility type.

Usage:
    python -m verifymyprovider.maintenance.match_facilities --facilities facilities.json
    python -m verifymyprovider.maintenance.match_facilities --facilities facilities.json --apply
"""

import json
import logging
import sqlite3
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

from ..normalize.address_normalizer import AddressNormalizer
from ..storage.database import ProviderDatabase
from .common import build_parser, load_script_context, print_summary

logger = logging.getLogger(__name__)

EXACT = "exact"
FUZZY = "fuzzy"


def load_facilities(path: str) -> List[Dict]:
    """
    Flatten a facility directory into one dictionary per facility.

    Raises:
        FileNotFoundError: Directory file does not exist
        ValueError: File is not valid JSON
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid facility directory {path}: {e}") from e

    facilities = []
    for organization in data.get("organizations", []):
        for facility in organization.get("facilities", []):
            facilities.append({
                "name": facility.get("name", ""),
                "address": facility.get("address", ""),
                "city": facility.get("city", ""),
                "state": facility.get("state", ""),
                "zip_code": str(facility.get("zipCode", "") or ""),
                "facility_type": facility.get("facilityType"),
                "health_system": organization.get("healthSystem"),
            })

    logger.info(f"Loaded {len(facilities)} facilities from "
                f"{len(data.get('organizations', []))} health systems")
    return facilities


class FacilityMatcher:
    """
    Matches locations to facilities by normalized address.

    Exact normalized-address keys match first; otherwise the street lines of
    facilities in the same city, state and ZIP are compared with a fuzzy
    token-sort ratio.
    """

    def __init__(self, database: ProviderDatabase, facilities: List[Dict],
                 min_ratio: int = 92, normalizer: Optional[AddressNormalizer] = None):
        self.database = database
        self.min_ratio = min_ratio
        self.normalizer = normalizer or AddressNormalizer()

        self.by_key: Dict[str, Dict] = {}
        self.by_area: Dict[str, List[Dict]] = defaultdict(list)

        for facility in facilities:
            if facility["address"] and not facility["city"]:
                parsed = self.normalizer.parse_address(facility["address"])
                facility = {
                    **facility,
                    "address": parsed["address_line1"] or facility["address"],
                    "city": parsed["city"],
                    "state": facility["state"] or parsed["state"],
                    "zip_code": facility["zip_code"] or parsed["zip_code"],
                }

            key = self.normalizer.address_key(
                facility["address"], facility["city"], facility["state"], facility["zip_code"])
            self.by_key[key] = facility
            self.by_area[self._area_key(facility["city"], facility["state"], facility["zip_code"])].append(facility)

    def _area_key(self, city, state, zip_code) -> str:
        return "|".join([
            self.normalizer.normalize_city(city),
            self.normalizer.normalize_state(state),
            self.normalizer.normalize_zipcode(zip_code),
        ])

    def match_location(self, location: Dict) -> Optional[Dict]:
        """
        Find the facility at a location's address.

        Returns:
            Dictionary with facility, match_type and ratio, or None
        """
        key = self.normalizer.address_key(
            location["address_line1"], location["city"], location["state"], location["zip_code"])
        facility = self.by_key.get(key)
        if facility:
            return {"facility": facility, "match_type": EXACT, "ratio": 100}

        candidates = self.by_area.get(
            self._area_key(location["city"], location["state"], location["zip_code"]), [])
        best, best_ratio = None, 0
        for candidate in candidates:
            ratio = self.normalizer.street_similarity(location["address_line1"], candidate["address"])
            if ratio > best_ratio:
                best, best_ratio = candidate, ratio

        if best is not None and best_ratio >= self.min_ratio:
            return {"facility": best, "match_type": FUZZY, "ratio": best_ratio}
        return None

    def run(self, apply: bool = False, state: Optional[str] = None) -> Dict[str, any]:
        """
        Match locations and optionally update them.

        Args:
            apply: Write facility details to matched locations
            state: Only consider locations in this state

        Returns:
            Dictionary with match counts, per health system summary and matches
        """
        query = ("SELECT id, address_line1, city, state, zip_code, name, health_system, "
                 "facility_type, provider_count FROM locations")
        params = []
        if state:
            query += " WHERE state = ?"
            params.append(state.upper())
        locations = self.database.fetch_all(query, params)

        logger.info(f"Matching {len(locations)} locations against {len(self.by_key)} facilities")

        matches = []
        for location in locations:
            match = self.match_location(location)
            if match is None:
                continue

            facility = match["facility"]
            changes = {}
            for column, value in (("name", facility["name"]),
                                  ("health_system", facility["health_system"]),
                                  ("facility_type", facility["facility_type"])):
                if location[column] != value:
                    changes[column] = {"from": location[column], "to": value}

            matches.append({
                "location_id": location["id"],
                "address": location["address_line1"],
                "city": location["city"],
                "provider_count": location["provider_count"] or 0,
                "match_type": match["match_type"],
                "ratio": match["ratio"],
                "health_system": facility["health_system"],
                "changes": changes,
            })

        by_health_system = defaultdict(lambda: {"locations": 0, "providers": 0})
        for match in matches:
            summary = by_health_system[match["health_system"]]
            summary["locations"] += 1
            summary["providers"] += match["provider_count"]

        needs_update = [match for match in matches if match["changes"]]

        for match in sorted(matches, key=lambda m: m["provider_count"], reverse=True)[:30]:
            if match["changes"]:
                described = "; ".join(
                    f"{column}: \"{change['from'] or '(none)'}\" -> \"{change['to']}\""
                    for column, change in match["changes"].items()
                )
                logger.info(f"[{match['provider_count']} providers] {match['address']}, {match['city']} "
                            f"({match['match_type']}) {described}")
            else:
                logger.info(f"[{match['provider_count']} providers] {match['address']}, "
                            f"{match['city']} (no changes needed)")

        updated = 0
        if apply and needs_update:
            with self.database.transaction() as conn:
                for match in needs_update:
                    facility_values = {column: change["to"] for column, change in match["changes"].items()}
                    assignments = ", ".join(f"{column} = ?" for column in facility_values)
                    conn.execute(f"UPDATE locations SET {assignments} WHERE id = ?",
                                 list(facility_values.values()) + [match["location_id"]])
                    updated += 1
            logger.info(f"Updated {updated} locations")

        return {
            "locations_considered": len(locations),
            "total_matches": len(matches),
            "exact_matches": sum(1 for match in matches if match["match_type"] == EXACT),
            "fuzzy_matches": sum(1 for match in matches if match["match_type"] == FUZZY),
            "needs_update": len(needs_update),
            "updated": updated,
            "providers_affected": sum(match["provider_count"] for match in matches),
            "by_health_system": dict(by_health_system),
            "matches": matches,
        }


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for facility matching."""
    parser = build_parser("Match locations to health-system facilities")
    parser.add_argument("--facilities", required=True, help="Facility directory JSON file")
    parser.add_argument("--state", help="Only match locations in this state (e.g. NY)")
    parser.add_argument("--min-ratio", type=int, help="Minimum fuzzy street similarity (0-100)")
    args = parser.parse_args(argv)

    if not Path(args.facilities).exists():
        print(f"ERROR: Could not find {args.facilities}", file=sys.stderr)
        return 1

    try:
        config, database = load_script_context(args, "match_facilities")
        facilities = load_facilities(args.facilities)
        min_ratio = args.min_ratio if args.min_ratio is not None else config["maintenance"]["fuzzy_min_ratio"]
        matcher = FacilityMatcher(database, facilities, min_ratio)
        result = matcher.run(apply=args.apply, state=args.state)
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Facility matching failed: {e}")
        return 1

    for health_system, summary in result["by_health_system"].items():
        logger.info(f"{health_system}: {summary['locations']} locations, {summary['providers']} providers")

    footer = None
    if not args.apply and result["needs_update"]:
        footer = "This was a dry run. Pass --apply to update locations."

    print_summary("Facility matching", {
        key: result[key] for key in ("locations_considered", "total_matches", "exact_matches",
                                     "fuzzy_matches", "needs_update", "updated", "providers_affected")
    }, footer=footer)
    return 0


if __name__ == "__main__":
    sys.exit(main())
