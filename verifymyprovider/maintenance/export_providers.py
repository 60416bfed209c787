"""
Export providers to one CSV file per specialty.

Usage:
    python -m verifymyprovider.maintenance.export_providers --zip-prefixes nyc            # preview
    python -m verifymyprovider.maintenance.export_providers --zip-prefixes nyc --apply    # write CSVs
"""

import logging
import re
import sqlite3
import sys
from pathlib import Path
from typing import Dict, List, Optional
import pandas as pd

from ..normalize.address_normalizer import AddressNormalizer
from ..normalize.name_normalizer import provider_display_name
from ..storage.database import ProviderDatabase
from .common import build_parser, load_script_context, print_summary

logger = logging.getLogger(__name__)

# Manhattan, Bronx, Queens, Brooklyn, Staten Island
NYC_ZIP_PREFIXES = ["100", "101", "102", "103", "104", "110", "111", "112", "113", "114", "116"]

ZIP_PRESETS = {"nyc": NYC_ZIP_PREFIXES}

CSV_COLUMNS = ["NPI", "Provider Name", "Specialty", "Address", "City", "State", "ZIP", "Phone"]

UNKNOWN_SPECIALTY = "Unknown"


def sanitize_filename(specialty: str) -> str:
    """Lowercase file stem with runs of non-alphanumerics replaced by '-'."""
    stem = re.sub(r"[^a-z0-9]+", "-", (specialty or "").lower()).strip("-")
    return stem[:100] or "unknown"


def parse_zip_prefixes(value: Optional[str]) -> List[str]:
    """Comma-separated ZIP prefixes, or a preset name such as 'nyc'."""
    if not value:
        return []
    if value.lower() in ZIP_PRESETS:
        return list(ZIP_PRESETS[value.lower()])
    return [prefix.strip() for prefix in value.split(",") if prefix.strip()]


class ProviderExporter:
    """
    Groups providers by specialty and writes CSV files.
    """

    def __init__(self, database: ProviderDatabase, normalizer: Optional[AddressNormalizer] = None):
        self.database = database
        self.normalizer = normalizer or AddressNormalizer()

    def load_providers(self, state: Optional[str] = None,
                       zip_prefixes: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Providers in export layout, ordered by specialty and last name.
        """
        query = '''
            SELECT npi, entity_type, first_name, last_name, credential, organization_name,
                   primary_specialty, address_line1, city, state, zip_code, phone
            FROM providers
            WHERE 1=1
        '''
        params = []
        if state:
            query += " AND state = ?"
            params.append(state.upper())
        if zip_prefixes:
            query += " AND (" + " OR ".join("zip_code LIKE ?" for _ in zip_prefixes) + ")"
            params.extend(f"{prefix}%" for prefix in zip_prefixes)
        query += " ORDER BY primary_specialty, last_name, npi"

        providers_df = self.database.query_df(query, params)

        export_df = pd.DataFrame({
            "NPI": providers_df["npi"],
            "Provider Name": [
                provider_display_name(row["entity_type"], row["first_name"], row["last_name"],
                                      row["credential"], row["organization_name"])
                for _, row in providers_df.iterrows()
            ],
            "Specialty": providers_df["primary_specialty"].fillna(UNKNOWN_SPECIALTY),
            "Address": providers_df["address_line1"].fillna(""),
            "City": providers_df["city"].fillna(""),
            "State": providers_df["state"].fillna(""),
            "ZIP": providers_df["zip_code"].apply(self.normalizer.normalize_zipcode),
            "Phone": providers_df["phone"].apply(self.normalizer.normalize_phone),
        }, columns=CSV_COLUMNS)

        return export_df

    def export(self, output_dir: str, apply: bool = False, state: Optional[str] = None,
               zip_prefixes: Optional[List[str]] = None) -> Dict[str, any]:
        """
        Write one CSV per specialty.

        Args:
            output_dir: Directory for the CSV files
            apply: Write files (otherwise only report)
            state: Only export providers in this state
            zip_prefixes: Only export providers whose ZIP starts with one of these

        Returns:
            Dictionary with totals, file names and specialty counts
        """
        export_df = self.load_providers(state, zip_prefixes)
        logger.info(f"Found {len(export_df):,} providers")

        output_path = Path(output_dir)
        if apply:
            output_path.mkdir(parents=True, exist_ok=True)

        files = {}
        filenames = export_df["Specialty"].apply(lambda specialty: f"{sanitize_filename(specialty)}.csv")
        for filename, group_df in export_df.groupby(filenames, sort=True):
            if apply:
                group_df.to_csv(output_path / filename, index=False)
            files[filename] = len(group_df)
            if len(group_df) >= 100:
                logger.info(f"{filename}: {len(group_df):,} providers")

        specialty_counts = export_df["Specialty"].value_counts()

        return {
            "total_providers": len(export_df),
            "files": files,
            "output_dir": str(output_path),
            "top_specialties": {
                specialty: int(count) for specialty, count in specialty_counts.head(20).items()
            },
        }


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for provider CSV export."""
    parser = build_parser("Export providers to CSV files grouped by specialty")
    parser.add_argument("--state", help="Only export providers in this state")
    parser.add_argument("--zip-prefixes", help="Comma-separated ZIP prefixes or a preset ('nyc')")
    parser.add_argument("--output-dir", help="Directory for CSV files")
    args = parser.parse_args(argv)

    try:
        config, database = load_script_context(args, "export_providers")
        normalizer = AddressNormalizer(config.get("export", {}))
        result = ProviderExporter(database, normalizer).export(
            output_dir=args.output_dir or config["export"]["output_dir"],
            apply=args.apply,
            state=args.state,
            zip_prefixes=parse_zip_prefixes(args.zip_prefixes),
        )
    except (sqlite3.Error, OSError, ValueError) as e:
        logger.error(f"Provider export failed: {e}")
        return 1

    for specialty, count in result["top_specialties"].items():
        logger.info(f"{count:>6,} - {specialty}")

    print_summary("Provider export", {
        "total_providers_exported": result["total_providers"],
        "csv_files": len(result["files"]),
        "output_directory": result["output_dir"],
    }, footer=None if args.apply else "This was a dry run. Pass --apply to write CSV files.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
