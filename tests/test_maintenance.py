"""
Tests for the data maintenance scripts.
"""

import json
import pytest
import pandas as pd
import tempfile
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from verifymyprovider.storage.database import ProviderDatabase
from verifymyprovider.verification.service import VerificationService
from verifymyprovider.maintenance.common import chunked, print_summary
from verifymyprovider.maintenance import (
    analyze_health_systems, cleanup_duplicate_locations, export_providers, match_facilities,
)
from verifymyprovider.maintenance.cleanup_duplicate_locations import DuplicateLocationCleaner
from verifymyprovider.maintenance.deduplicate_locations import LocationDeduplicator
from verifymyprovider.maintenance.enrich_location_names import LocationNameEnricher
from verifymyprovider.maintenance.match_facilities import FacilityMatcher, load_facilities
from verifymyprovider.maintenance.recalculate_confidence import ConfidenceRecalculator
from verifymyprovider.maintenance.analyze_health_systems import HealthSystemAnalyzer
from verifymyprovider.maintenance.export_providers import (
    ProviderExporter, sanitize_filename, parse_zip_prefixes, CSV_COLUMNS, NYC_ZIP_PREFIXES,
)


def create_database(temp_dir: str) -> ProviderDatabase:
    return ProviderDatabase(str(Path(temp_dir) / "test.db"))


def add_providers(database: ProviderDatabase, rows):
    database.insert_dataframe(pd.DataFrame(rows), "providers")


FACILITY_DIRECTORY = {
    "organizations": [
        {
            "healthSystem": "Mount Sinai",
            "facilities": [
                {"name": "Mount Sinai Hospital", "address": "1184 Fifth Avenue",
                 "city": "New York", "state": "NY", "zipCode": "10029", "facilityType": "Hospital"},
                {"name": "Mount Sinai Madison", "address": "1468 Madison Avenue",
                 "city": "New York", "state": "NY", "zipCode": "10029", "facilityType": "Clinic"},
            ]
        },
        {
            "healthSystem": "Johns Hopkins",
            "facilities": [
                {"name": "Johns Hopkins Hospital", "address": "600 N Wolfe St, Baltimore, MD 21287",
                 "facilityType": "Hospital"},
            ]
        },
    ]
}


class TestCommon:
    """Test cases for shared script helpers."""

    def test_chunked(self):
        """Test list chunking."""
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(chunked([], 3)) == []
        with pytest.raises(ValueError):
            list(chunked([1], 0))

    def test_print_summary(self, capsys):
        """Test boxed summary output."""
        print_summary("Cleanup", {"deleted_rows": 12345, "dry_run": True}, footer="done")
        output = capsys.readouterr().out

        assert "CLEANUP" in output
        assert "Deleted rows: 12,345" in output
        assert "Dry run: True" in output
        assert "done" in output


class TestDuplicateLocationCleaner:
    """Test cases for duplicate practice location cleanup."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.database = create_database(self.temp_dir)
        self.database.insert_dataframe(pd.DataFrame({
            "npi": ["111", "111", "111", "222", "111"],
            "address_line1": ["1 Main St", "1 Main St", "1 Main St", "1 Main St", "2 Main St"],
            "city": ["New York"] * 5,
            "state": ["NY"] * 5,
            "zip_code": ["10001"] * 5,
        }), "practice_locations")
        self.database.insert_dataframe(pd.DataFrame({
            "provider_npi": ["111"],
            "plan_id": ["PLAN-A"],
            "location_id": [1],
        }), "provider_plan_acceptance")
        self.cleaner = DuplicateLocationCleaner(self.database, batch_size=1)

    def test_find_duplicate_groups(self):
        """Test duplicate detection keeps the highest id."""
        groups = self.cleaner.find_duplicate_groups()

        assert len(groups) == 1
        assert groups.loc[0, "count"] == 3
        assert groups.loc[0, "keep_id"] == 3
        assert groups.loc[0, "delete_ids"] == [2, 1]
        assert DuplicateLocationCleaner.summarize(groups) == {
            "duplicate_groups": 1, "total_affected_rows": 3, "rows_to_delete": 2,
        }

    def test_dry_run(self):
        """Test dry run deletes nothing."""
        result = self.cleaner.run(apply=False)
        assert result["deleted_rows"] == 0
        assert result["remaining_groups"] == 1
        assert self.database.count("practice_locations") == 5

    def test_apply(self):
        """Test duplicates are deleted and references cleared."""
        result = self.cleaner.run(apply=True)

        assert result["deleted_rows"] == 2
        assert result["cleared_acceptances"] == 1
        assert result["remaining_groups"] == 0
        assert self.database.count("practice_locations") == 3
        assert self.database.count("provider_plan_acceptance", "location_id IS NULL") == 1

    def test_main(self):
        """Test command-line entry point."""
        db_path = self.database.db_path
        assert cleanup_duplicate_locations.main(["--db", db_path]) == 0
        assert self.database.count("practice_locations") == 5
        assert cleanup_duplicate_locations.main(["--db", db_path, "--cleanup", "--batch", "10"]) == 0
        assert self.database.count("practice_locations") == 3


class TestLocationDeduplicator:
    """Test cases for address hashing."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.database = create_database(self.temp_dir)
        add_providers(self.database, {
            "npi": ["111", "222"],
            "entity_type": ["1", "2"],
            "first_name": ["Jane", None],
            "last_name": ["Smith", None],
            "organization_name": [None, "Harbor Clinic"],
        })
        self.database.insert_dataframe(pd.DataFrame({
            "npi": ["111", "111", "111", "222", "111"],
            "address_line1": ["1 Main St", "1 MAIN ST ", "1 main st", "1 Main St", "2 Main St"],
            "city": ["New York", "NEW YORK", "new york", "New York", "New York"],
            "state": ["NY", "ny", "NY", "NY", "NY"],
            "zip_code": ["10001", "10001-2345", "10001", "10001", "10001"],
        }), "practice_locations")
        self.deduplicator = LocationDeduplicator(self.database, batch_size=2)

    def test_report_without_hashing(self):
        """Test report computed from current rows."""
        report = self.deduplicator.run(apply=False)

        assert report["hashed"] == 0
        assert report["already_hashed"] == 0
        assert report["total_locations"] == 5
        assert report["unique_addresses"] == 2
        assert report["duplicates"] == 3
        assert report["duplication_ratio"] == 60.0
        assert report["top_duplicated_addresses"][0] == {
            "address": "1 main st", "city": "new york", "state": "NY", "count": 4,
        }
        assert report["top_providers"][0] == {"npi": "111", "name": "Jane Smith", "location_count": 4}

    def test_apply_hashes(self):
        """Test hashes are written in batches."""
        assert self.deduplicator.apply_hashes(limit=3) == 3
        assert self.database.count("practice_locations", "address_hash IS NULL") == 2

        report = self.deduplicator.run(apply=True)
        assert report["hashed"] == 2
        assert report["already_hashed"] == 5

        hashes = self.database.fetch_all("SELECT DISTINCT address_hash FROM practice_locations")
        assert len(hashes) == 2


class TestLocationNameEnricher:
    """Test cases for location name enrichment."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.database = create_database(self.temp_dir)
        self.database.insert_dataframe(pd.DataFrame({
            "address_line1": ["1 Gustave L Levy Pl", "2 Main St", "3 Elm St"],
            "city": ["New York"] * 3,
            "state": ["NY"] * 3,
            "zip_code": ["10029"] * 3,
            "name": [None, "Existing Name", None],
        }), "locations")
        add_providers(self.database, {
            "npi": ["1", "2", "3", "4"],
            "organization_name": ["Mount Sinai Hospital", "Mount  Sinai Hospital", "Dr. Smith", "Other Clinic"],
            "location_id": [1, 1, 1, 2],
        })
        self.enricher = LocationNameEnricher(self.database)

    def test_dry_run(self):
        """Test names are chosen but not written."""
        result = self.enricher.run(apply=False)

        assert result["processed"] == 2
        assert result["enriched"] == 1
        assert result["skipped"] == 1
        assert result["results"][0]["new_name"] == "Mount Sinai Hospital"
        assert result["results"][0]["provider_count"] == 2
        assert result["by_confidence"]["medium"] == 1
        assert self.database.count("locations", "name IS NULL") == 2

    def test_apply(self):
        """Test names are written."""
        self.enricher.run(apply=True)
        location = self.database.fetch_one("SELECT name FROM locations WHERE id = 1")
        assert location["name"] == "Mount Sinai Hospital"

    def test_all_locations(self):
        """Test named locations are included with only_unnamed off."""
        result = self.enricher.run(apply=False, only_unnamed=False)
        assert result["processed"] == 3
        assert {r["new_name"] for r in result["results"]} == {"Mount Sinai Hospital", "Other Clinic"}

    def test_min_providers(self):
        """Test minimum provider threshold."""
        result = self.enricher.run(apply=False, only_unnamed=False, min_providers=2)
        assert result["enriched"] == 1


class TestFacilityMatcher:
    """Test cases for facility matching."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.database = create_database(self.temp_dir)
        self.database.insert_dataframe(pd.DataFrame({
            "address_line1": ["1184 5th Ave", "1468 Madison Avnue", "1 Main St"],
            "city": ["New York", "New York", "Boston"],
            "state": ["NY", "NY", "MA"],
            "zip_code": ["10029", "10029", "02115"],
            "provider_count": [40, 10, 3],
        }), "locations")

        self.facilities_path = str(Path(self.temp_dir) / "facilities.json")
        with open(self.facilities_path, "w") as f:
            json.dump(FACILITY_DIRECTORY, f)

        self.facilities = load_facilities(self.facilities_path)
        self.matcher = FacilityMatcher(self.database, self.facilities, min_ratio=92)

    def test_load_facilities(self):
        """Test facility directory flattening."""
        assert len(self.facilities) == 3
        assert self.facilities[0]["health_system"] == "Mount Sinai"
        assert self.facilities[0]["zip_code"] == "10029"

    def test_load_invalid_directory(self):
        """Test invalid JSON raises ValueError."""
        bad_path = Path(self.temp_dir) / "bad.json"
        bad_path.write_text("{not json")
        with pytest.raises(ValueError):
            load_facilities(str(bad_path))

    def test_single_line_facility_address(self):
        """Test facilities without a city are parsed from the address line."""
        assert "600 north wolfe street|baltimore|MD|21287" in self.matcher.by_key

    def test_match_types(self):
        """Test exact and fuzzy matching."""
        exact = self.matcher.match_location({
            "address_line1": "1184 Fifth Ave", "city": "New York", "state": "NY", "zip_code": "10029"})
        assert exact["match_type"] == "exact"
        assert exact["facility"]["name"] == "Mount Sinai Hospital"

        fuzzy = self.matcher.match_location({
            "address_line1": "1468 Madison Avnue", "city": "New York", "state": "NY", "zip_code": "10029"})
        assert fuzzy["match_type"] == "fuzzy"
        assert fuzzy["ratio"] >= 92

        assert self.matcher.match_location({
            "address_line1": "1 Main St", "city": "Boston", "state": "MA", "zip_code": "02115"}) is None

    def test_dry_run_and_apply(self):
        """Test matches are reported, then written."""
        result = self.matcher.run(apply=False)

        assert result["locations_considered"] == 3
        assert result["total_matches"] == 2
        assert result["exact_matches"] == 1
        assert result["fuzzy_matches"] == 1
        assert result["needs_update"] == 2
        assert result["updated"] == 0
        assert result["providers_affected"] == 50
        assert result["by_health_system"]["Mount Sinai"] == {"locations": 2, "providers": 50}

        result = self.matcher.run(apply=True)
        assert result["updated"] == 2

        location = self.database.fetch_one("SELECT * FROM locations WHERE id = 1")
        assert location["name"] == "Mount Sinai Hospital"
        assert location["health_system"] == "Mount Sinai"
        assert location["facility_type"] == "Hospital"

        assert self.matcher.run(apply=False)["needs_update"] == 0

    def test_state_filter(self):
        """Test only locations in the given state are considered."""
        result = self.matcher.run(apply=False, state="ma")
        assert result["locations_considered"] == 1
        assert result["total_matches"] == 0

    def test_main(self):
        """Test command-line entry point."""
        db_path = self.database.db_path
        missing = str(Path(self.temp_dir) / "missing.json")
        assert match_facilities.main(["--db", db_path, "--facilities", missing]) == 1
        assert match_facilities.main(["--db", db_path, "--facilities", self.facilities_path,
                                      "--apply"]) == 0
        assert self.database.count("locations", "health_system = 'Mount Sinai'") == 2


class TestConfidenceRecalculator:
    """Test cases for confidence decay recalculation."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.database = create_database(self.temp_dir)
        add_providers(self.database, {"npi": ["111"], "primary_specialty": ["Psychiatry"]})
        self.database.insert_dataframe(pd.DataFrame({"plan_id": ["PLAN-A", "PLAN-B"]}), "insurance_plans")

        self.now = datetime(2025, 6, 1, 12, 0, 0)
        service = VerificationService(self.database)
        for i in range(3):
            service.submit_verification("111", "PLAN-A", True, source_ip=f"10.0.0.{i}",
                                        now=self.now - timedelta(days=90))

        # never verified records are skipped
        self.database.insert_dataframe(pd.DataFrame({
            "provider_npi": ["111"], "plan_id": ["PLAN-B"], "verification_count": [0],
        }), "provider_plan_acceptance")

        self.recalculator = ConfidenceRecalculator(self.database, batch_size=1)

    def stored_score(self) -> float:
        return self.database.fetch_one(
            "SELECT confidence_score FROM provider_plan_acceptance WHERE plan_id = 'PLAN-A'")["confidence_score"]

    def test_dry_run(self):
        """Test decayed scores are detected but not written."""
        assert self.stored_score() == 80

        stats = self.recalculator.run(apply=False, now=self.now)
        assert stats["processed"] == 1
        assert stats["updated"] == 1
        assert stats["errors"] == 0
        assert self.stored_score() == 80

    def test_apply(self):
        """Test decayed scores are written and a rerun changes nothing."""
        progress = []
        self.recalculator.run(apply=True, now=self.now,
                              on_progress=lambda processed, updated: progress.append(processed))

        # crowdsource 15 + recency 15 + three verifications 15 + full agreement 20
        assert self.stored_score() == 65
        assert progress == [1]

        stats = self.recalculator.run(apply=True, now=self.now)
        assert stats["updated"] == 0
        assert stats["unchanged"] == 1

    def test_limit(self):
        """Test the record limit."""
        assert self.recalculator.run(apply=False, limit=0, now=self.now)["processed"] == 1


class TestHealthSystemAnalyzer:
    """Test cases for health-system coverage reporting."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.database = create_database(self.temp_dir)
        self.database.insert_dataframe(pd.DataFrame({
            "address_line1": ["1 Gustave L Levy Pl", "2 Court St", "43 New Scotland Ave"],
            "city": ["New York", "Brooklyn", "Albany"],
            "state": ["NY", "NY", "NY"],
            "zip_code": ["10029", "11201", "12208"],
            "health_system": ["Mount Sinai", None, "Albany Med"],
            "provider_count": [10, 5, 2],
        }), "locations")
        add_providers(self.database, {
            "npi": ["1", "2", "3", "4", "5"],
            "city": ["NEW YORK", "New York", "BROOKLYN", "ALBANY", "HOBOKEN"],
            "state": ["NY", "NY", "NY", "NY", "NJ"],
            "location_id": [1, 1, 2, 3, None],
        })
        self.analyzer = HealthSystemAnalyzer(self.database)

    def test_analyze(self):
        """Test coverage report."""
        report = self.analyzer.analyze("ny")

        assert report["locations_by_health_system"] == {"Albany Med": 1, "Mount Sinai": 1}
        assert report["providers_by_health_system"] == {"Mount Sinai": 2, "Albany Med": 1}
        assert report["providers_at_labeled_locations"] == 3
        assert report["state_providers"] == 4
        assert report["city_providers"] == 3
        assert report["state_coverage_pct"] == 75.0
        assert [location["label"] for location in report["top_locations"]] == \
            ["Mount Sinai", "UNLABELED", "Albany Med"]

    def test_custom_cities(self):
        """Test metro area from a custom city list."""
        report = self.analyzer.analyze("NY", ["Albany"])
        assert report["city_providers"] == 1

    def test_main(self):
        """Test command-line entry point."""
        assert analyze_health_systems.main(["--db", self.database.db_path, "--cities", "Albany"]) == 0


class TestProviderExporter:
    """Test cases for CSV export."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.output_dir = str(Path(self.temp_dir) / "exports")
        self.database = create_database(self.temp_dir)
        add_providers(self.database, {
            "npi": ["1", "2", "3", "4"],
            "entity_type": ["1", "2", "1", "1"],
            "first_name": ["Jane", None, "Ann", "Bob"],
            "last_name": ["Smith", None, "Lee", "Ray"],
            "credential": ["MD", None, None, "DO"],
            "organization_name": [None, "Harbor Clinic", None, None],
            "primary_specialty": ["Psychiatry", "Family Medicine", None, "Cardiology"],
            "address_line1": ["1 A St", "2 B St", "3 C St", "4 D St"],
            "city": ["New York", "Brooklyn", "New York", "Hoboken"],
            "state": ["NY", "NY", "NY", "NJ"],
            "zip_code": ["10029", "11201-1234", "10001", "07030"],
            "phone": ["(410) 955-5000", None, "123", "2014200000"],
        })
        self.exporter = ProviderExporter(self.database)

    def test_helpers(self):
        """Test filename and ZIP prefix helpers."""
        assert sanitize_filename("Obstetrics & Gynecology") == "obstetrics-gynecology"
        assert sanitize_filename("") == "unknown"
        assert len(sanitize_filename("x" * 300)) == 100
        assert parse_zip_prefixes("nyc") == NYC_ZIP_PREFIXES
        assert parse_zip_prefixes("100, 112") == ["100", "112"]
        assert parse_zip_prefixes(None) == []

    def test_dry_run(self):
        """Test nothing is written without apply."""
        result = self.exporter.export(self.output_dir, zip_prefixes=parse_zip_prefixes("nyc"))

        assert result["total_providers"] == 3
        assert result["files"] == {"family-medicine.csv": 1, "psychiatry.csv": 1, "unknown.csv": 1}
        assert not Path(self.output_dir).exists()

    def test_apply(self):
        """Test CSV files are written per specialty."""
        result = self.exporter.export(self.output_dir, apply=True, state="NY")
        assert result["total_providers"] == 3

        psychiatry = pd.read_csv(Path(self.output_dir) / "psychiatry.csv", dtype=str, keep_default_na=False)
        assert list(psychiatry.columns) == CSV_COLUMNS
        assert psychiatry.loc[0, "Provider Name"] == "Jane Smith, MD"
        assert psychiatry.loc[0, "Phone"] == "+14109555000"

        family = pd.read_csv(Path(self.output_dir) / "family-medicine.csv", dtype=str, keep_default_na=False)
        assert family.loc[0, "Provider Name"] == "Harbor Clinic"
        assert family.loc[0, "ZIP"] == "11201"

        unknown = pd.read_csv(Path(self.output_dir) / "unknown.csv", dtype=str, keep_default_na=False)
        assert unknown.loc[0, "Specialty"] == "Unknown"
        assert unknown.loc[0, "Phone"] == ""

    def test_main(self):
        """Test command-line entry point."""
        assert export_providers.main(["--db", self.database.db_path, "--output-dir", self.output_dir,
                                      "--apply"]) == 0
        assert (Path(self.output_dir) / "cardiology.csv").exists()


if __name__ == "__main__":
    pytest.main([__file__])
