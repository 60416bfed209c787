"""
Report health-system coverage of locations and providers.

Read only; --apply is accepted for a uniform CLI but has no effect.

Usage:
    python -m verifymyprovider.maintenance.analyze_health_systems --state NY
"""

import logging
import sqlite3
import sys
from typing import Dict, List, Optional

from ..storage.database import ProviderDatabase
from .common import build_parser, load_script_context, print_summary

logger = logging.getLogger(__name__)

NYC_CITIES = ["NEW YORK", "BROOKLYN", "BRONX", "QUEENS", "STATEN ISLAND"]


class HealthSystemAnalyzer:
    """
    Builds health-system coverage reports with SQL and pandas.
    """

    def __init__(self, database: ProviderDatabase):
        self.database = database

    def locations_by_health_system(self) -> Dict[str, int]:
        df = self.database.query_df('''
            SELECT health_system, COUNT(*) AS location_count
            FROM locations
            WHERE health_system IS NOT NULL
            GROUP BY health_system
            ORDER BY location_count DESC, health_system
        ''')
        return {row["health_system"]: int(row["location_count"]) for _, row in df.iterrows()}

    def providers_by_health_system(self) -> Dict[str, int]:
        df = self.database.query_df('''
            SELECT l.health_system, COUNT(DISTINCT p.npi) AS provider_count
            FROM providers p
            JOIN locations l ON p.location_id = l.id
            WHERE l.health_system IS NOT NULL
            GROUP BY l.health_system
            ORDER BY provider_count DESC, l.health_system
        ''')
        return {row["health_system"]: int(row["provider_count"]) for _, row in df.iterrows()}

    def top_locations(self, state: str, limit: int = 20) -> List[Dict]:
        """Locations in a state with the most providers, labeled or not."""
        df = self.database.query_df('''
            SELECT id, name, health_system, address_line1, city, state, provider_count
            FROM locations
            WHERE state = ?
            ORDER BY provider_count DESC, id
            LIMIT ?
        ''', [state, limit])
        return [
            {
                "id": int(row["id"]),
                "label": row["health_system"] or "UNLABELED",
                "name": row["name"] or row["address_line1"],
                "city": row["city"],
                "provider_count": int(row["provider_count"] or 0),
            }
            for _, row in df.iterrows()
        ]

    def analyze(self, state: str = "NY", cities: Optional[List[str]] = None) -> Dict[str, any]:
        """
        Health-system coverage for a state and a set of cities in it.

        Args:
            state: Two-letter state code
            cities: City names (case-insensitive) forming the metro area

        Returns:
            Dictionary with per-system counts, totals and coverage percentages
        """
        state = state.upper()
        cities = [city.upper() for city in (cities or NYC_CITIES)]

        providers_by_system = self.providers_by_health_system()
        tagged = sum(providers_by_system.values())

        state_count = self.database.count("providers", "state = ?", [state])
        placeholders = ",".join("?" * len(cities))
        city_count = self.database.count(
            "providers", f"state = ? AND UPPER(city) IN ({placeholders})", [state] + cities)

        return {
            "locations_by_health_system": self.locations_by_health_system(),
            "providers_by_health_system": providers_by_system,
            "providers_at_labeled_locations": tagged,
            "state_providers": state_count,
            "city_providers": city_count,
            "state_coverage_pct": round(tagged / state_count * 100, 1) if state_count else 0.0,
            "city_coverage_pct": round(tagged / city_count * 100, 1) if city_count else 0.0,
            "top_locations": self.top_locations(state),
        }


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for health-system analysis."""
    parser = build_parser("Analyze health-system coverage of locations and providers")
    parser.add_argument("--state", default="NY", help="State to analyze")
    parser.add_argument("--cities", help="Comma-separated metro-area cities (default: NYC boroughs)")
    args = parser.parse_args(argv)

    cities = [city.strip() for city in args.cities.split(",")] if args.cities else None

    try:
        _, database = load_script_context(args, "analyze_health_systems")
        report = HealthSystemAnalyzer(database).analyze(args.state, cities)
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Health system analysis failed: {e}")
        return 1

    print_summary("Locations by health system", report["locations_by_health_system"] or
                  {"none": "No locations have health_system labels yet"})
    print_summary("Providers by health system", report["providers_by_health_system"] or
                  {"none": "No providers are at health system locations yet"})

    for location in report["top_locations"]:
        logger.info(f"[{location['label']}] {location['name']}, {location['city']} - "
                    f"{location['provider_count']} providers")

    print_summary("Health system coverage", {
        "providers_at_labeled_locations": report["providers_at_labeled_locations"],
        "state_providers": report["state_providers"],
        "city_providers": report["city_providers"],
        "state_coverage": f"{report['state_coverage_pct']}%",
        "city_coverage": f"{report['city_coverage_pct']}%",
    })
    return 0


if __name__ == "__main__":
    sys.exit(main())
