"""
Tests for dashboard metrics.
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

from verifymyprovider.confidence.freshness import FreshnessEvaluator
from verifymyprovider.confidence.scorer import ConfidenceScorer, HIGH, LOW
from verifymyprovider.reporting.dashboard import (
    ReportingDashboard, confidence_badge, freshness_warning,
)
from verifymyprovider.storage.database import ProviderDatabase
from verifymyprovider.verification.service import VerificationService, ACCEPTED, PENDING


class TestBadges:
    """Test cases for confidence badges and freshness warnings."""

    def setup_method(self):
        """Setup test fixtures."""
        self.now = datetime(2025, 6, 1, 12, 0, 0)

    def test_confidence_badge(self):
        """Test badge text and color."""
        result = ConfidenceScorer().calculate(
            data_source="CMS_NPPES", last_verified_at=self.now - timedelta(days=12),
            verification_count=3, upvotes=7, downvotes=3, now=self.now)
        badge = confidence_badge(result)

        assert badge["text"] == "High confidence (82%)"
        assert badge["level"] == HIGH
        assert badge["color"].startswith("#")

    def test_freshness_warning(self):
        """Test warnings only for warning and stale levels."""
        evaluator = FreshnessEvaluator()

        fresh = evaluator.evaluate(self.now - timedelta(days=5), "Psychiatry", now=self.now)
        assert freshness_warning(fresh) is None

        stale = evaluator.evaluate(None, "Psychiatry", provider_npi="111", now=self.now)
        warning = freshness_warning(stale)
        assert warning["level"] == "stale"
        assert warning["verify_url"] == "/verify?npi=111"


class TestDashboardMetrics:
    """Test cases for dashboard metric computation."""

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.database = ProviderDatabase(str(Path(self.temp_dir) / "test.db"))
        self.now = datetime(2025, 6, 1, 12, 0, 0)

        self.database.insert_dataframe(pd.DataFrame({
            "npi": ["111", "222"],
            "primary_specialty": ["Family Medicine", "Psychiatry"],
        }), "providers")
        self.database.insert_dataframe(pd.DataFrame({"plan_id": ["PLAN-A"]}), "insurance_plans")

        self.dashboard = ReportingDashboard(str(Path(self.temp_dir) / "missing.yaml"), self.database)
        self.dashboard.metrics_path = str(Path(self.temp_dir) / "metrics")

    def add_verifications(self):
        service = VerificationService(self.database)
        for i in range(3):
            service.submit_verification("111", "PLAN-A", True, source_ip=f"10.0.0.{i}",
                                        now=self.now - timedelta(days=10))
        service.submit_verification("222", "PLAN-A", False, source_ip="10.0.1.1",
                                    now=self.now - timedelta(days=100))

    def test_empty_metrics(self):
        """Test metrics with no acceptance records."""
        metrics = self.dashboard.get_confidence_metrics(now=self.now)
        assert metrics["total_records"] == 0
        assert metrics["stale_records"] == 0

    def test_confidence_metrics(self):
        """Test confidence and freshness distribution."""
        self.add_verifications()
        metrics = self.dashboard.get_confidence_metrics(now=self.now)

        assert metrics["total_records"] == 2
        assert metrics["level_distribution"][HIGH] == 1
        assert metrics["level_distribution"][LOW] == 1
        assert metrics["stale_records"] == 1
        assert metrics["freshness_distribution"] == {"fresh": 1, "stale": 1}
        assert metrics["status_distribution"] == {ACCEPTED: 1, PENDING: 1}

    def test_score_records_uses_claim_tallies(self):
        """Test agreement comes from non-expired acceptance claims."""
        self.add_verifications()
        scored = self.dashboard.score_records(self.dashboard.load_acceptance_records("111"), self.now)

        assert len(scored) == 1
        assert scored.loc[0, "upvotes"] == 3
        assert scored.loc[0, "downvotes"] == 0
        assert scored.loc[0, "agreement_score"] == 20

    def test_attach_claim_tallies(self):
        """Test tallies are attached without scoring."""
        self.add_verifications()
        records = self.dashboard.load_acceptance_records()
        tallied = self.dashboard.attach_claim_tallies(records, self.now).set_index("provider_npi")

        assert tallied.loc["111", "upvotes"] == 3
        assert tallied.loc["222", "upvotes"] == 1
        assert tallied.loc["222", "downvotes"] == 0
        assert "confidence_score" not in tallied.columns

    def test_attach_claim_tallies_ignores_expired(self):
        """Test claims past their expiry are not counted."""
        self.add_verifications()
        later = self.now + timedelta(days=200)
        tallied = self.dashboard.attach_claim_tallies(self.dashboard.load_acceptance_records("111"), later)

        assert tallied.loc[0, "upvotes"] == 0
        assert tallied.loc[0, "downvotes"] == 0

    def test_data_quality_metrics(self):
        """Test directory data-quality metrics."""
        self.database.insert_dataframe(pd.DataFrame({
            "address_line1": ["1 A St", "2 B St"],
            "city": ["New York", "New York"],
            "state": ["NY", "NY"],
            "zip_code": ["10001", "10002"],
            "name": ["Harbor Clinic", None],
            "health_system": [None, None],
        }), "locations")
        self.database.insert_dataframe(pd.DataFrame({
            "npi": ["111", "111", "222"],
            "address_line1": ["1 A St", "1 A St", "1 A St"],
            "city": ["New York"] * 3,
            "state": ["NY"] * 3,
            "zip_code": ["10001"] * 3,
            "address_hash": ["abc", None, None],
        }), "practice_locations")

        quality = self.dashboard.get_data_quality_metrics()

        assert quality["total_providers"] == 2
        assert quality["total_locations"] == 2
        assert quality["named_location_rate"] == 0.5
        assert quality["health_system_rate"] == 0.0
        assert quality["hashed_practice_location_rate"] == pytest.approx(1 / 3)
        assert quality["duplicate_location_groups"] == 1

    def test_export_metrics_report(self):
        """Test JSON and CSV export."""
        self.add_verifications()

        json_path = self.dashboard.export_metrics_report("json")
        with open(json_path) as f:
            report = json.load(f)
        assert report["confidence"]["total_records"] == 2
        assert "data_quality" in report

        csv_path = self.dashboard.export_metrics_report("csv")
        exported = pd.read_csv(csv_path)
        assert set(exported["metric_category"]) == {"confidence", "data_quality"}
        assert "level_distribution.HIGH" in set(exported["metric_name"])


if __name__ == "__main__":
    pytest.main([__file__])
