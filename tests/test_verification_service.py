"""
Tests for the crowdsourced verification service.
"""

import pytest
import pandas as pd
import tempfile
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from verifymyprovider.storage.database import ProviderDatabase
from verifymyprovider.verification.service import (
    VerificationService, determine_acceptance_status,
    NotFoundError, ConflictError, ValidationError,
    ACCEPTED, NOT_ACCEPTED, PENDING, UNKNOWN, PLAN_ACCEPTANCE, VOTE_UP, VOTE_DOWN,
)


def create_test_database() -> ProviderDatabase:
    """Temporary database with two providers and two plans."""
    temp_dir = tempfile.mkdtemp()
    database = ProviderDatabase(str(Path(temp_dir) / "test.db"))

    database.insert_dataframe(pd.DataFrame({
        "npi": ["1234567890", "1987654321"],
        "entity_type": ["1", "2"],
        "first_name": ["Jane", None],
        "last_name": ["Smith", None],
        "organization_name": [None, "Harbor Health Clinic"],
        "primary_specialty": ["Psychiatry", "Family Medicine"],
        "state": ["NY", "NY"],
    }), "providers")

    database.insert_dataframe(pd.DataFrame({
        "plan_id": ["PLAN-A", "PLAN-B"],
        "plan_name": ["Gold PPO", "Silver HMO"],
        "issuer_name": ["Acme Insurance", "Acme Insurance"],
    }), "insurance_plans")

    return database


class TestSubmitVerification:
    """Test cases for verification submission."""

    def setup_method(self):
        """Setup test fixtures."""
        self.database = create_test_database()
        self.service = VerificationService(self.database)
        self.now = datetime(2025, 6, 1, 12, 0, 0)

    def submit(self, ip, accepts=True, npi="1234567890", plan_id="PLAN-A", **kwargs):
        return self.service.submit_verification(
            npi, plan_id, accepts, source_ip=ip, now=kwargs.pop("now", self.now), **kwargs)

    def test_first_submission_creates_pending_acceptance(self):
        """Test first claim creates a PENDING acceptance record."""
        result = self.submit("10.0.0.1", accepts_new_patients=True,
                             submitted_by="jane@example.com", user_agent="pytest")

        verification = result["verification"]
        acceptance = result["acceptance"]

        assert verification["verification_type"] == PLAN_ACCEPTANCE
        assert verification["new_value"]["acceptance_status"] == ACCEPTED
        assert verification["previous_value"] is None
        assert verification["acceptance_id"] == acceptance["id"]
        assert verification["expires_at"] == "2025-11-28 12:00:00"
        for field in ("source_ip", "user_agent", "submitted_by"):
            assert field not in verification

        assert acceptance["acceptance_status"] == PENDING
        assert acceptance["verification_count"] == 1
        assert acceptance["accepts_new_patients"] == 1
        # crowdsource 15 + recency 30 + one verification 5 + no agreement
        assert acceptance["confidence_score"] == 50
        assert acceptance["confidence_factors"]["agreement_score"] == 0

    def test_unknown_provider_or_plan(self):
        """Test submissions for unknown entities are rejected."""
        with pytest.raises(NotFoundError):
            self.submit("10.0.0.1", npi="0000000000")
        with pytest.raises(NotFoundError):
            self.submit("10.0.0.1", plan_id="NOPE")
        assert self.database.count("verification_logs") == 0

    def test_sybil_window_by_ip(self):
        """Test the same IP cannot verify the same pair twice within the window."""
        self.submit("10.0.0.1")

        with pytest.raises(ConflictError):
            self.submit("10.0.0.1", accepts=False, now=self.now + timedelta(days=5))

        # Different pair and later submissions are allowed
        self.submit("10.0.0.1", plan_id="PLAN-B")
        self.submit("10.0.0.1", now=self.now + timedelta(days=31))
        assert self.database.count("verification_logs") == 3

    def test_sybil_window_by_email(self):
        """Test the same e-mail cannot verify the same pair twice within the window."""
        self.submit("10.0.0.1", submitted_by="jane@example.com")
        with pytest.raises(ConflictError):
            self.submit("10.0.0.2", submitted_by="jane@example.com")

    def test_consensus_flips_status(self):
        """Test three agreeing claims move the status to ACCEPTED."""
        self.submit("10.0.0.1")
        second = self.submit("10.0.0.2")
        assert second["acceptance"]["acceptance_status"] == PENDING
        assert second["acceptance"]["verification_count"] == 2
        assert second["verification"]["previous_value"]["acceptance_status"] == PENDING

        third = self.submit("10.0.0.3")
        acceptance = third["acceptance"]

        assert acceptance["verification_count"] == 3
        assert acceptance["confidence_score"] == 80
        assert acceptance["acceptance_status"] == ACCEPTED
        assert self.database.count("provider_plan_acceptance") == 1

    def test_split_claims_stay_pending(self):
        """Test claims without a 2:1 majority keep the status."""
        self.submit("10.0.0.1")
        self.submit("10.0.0.2")
        result = self.submit("10.0.0.3", accepts=False)

        acceptance = result["acceptance"]
        assert acceptance["acceptance_status"] == PENDING
        assert acceptance["confidence_factors"]["agreement_score"] == pytest.approx(13.33, abs=0.01)

    def test_location_specific_acceptance(self):
        """Test location-specific claims use their own acceptance record."""
        general = self.submit("10.0.0.1")
        located = self.submit("10.0.0.2", location_id=7)

        assert located["acceptance"]["id"] != general["acceptance"]["id"]
        assert located["acceptance"]["location_id"] == 7
        assert self.database.count("provider_plan_acceptance") == 2


class TestVotingAndReview:
    """Test cases for voting and admin review."""

    def setup_method(self):
        """Setup test fixtures."""
        self.database = create_test_database()
        self.service = VerificationService(self.database)
        self.now = datetime(2025, 6, 1, 12, 0, 0)
        result = self.service.submit_verification(
            "1234567890", "PLAN-A", True, source_ip="10.0.0.1", now=self.now)
        self.verification_id = result["verification"]["id"]

    def test_vote_and_flip(self):
        """Test voting once and flipping the vote."""
        voted = self.service.vote_on_verification(self.verification_id, VOTE_UP, "10.0.0.9", now=self.now)
        assert voted["upvotes"] == 1
        assert voted["downvotes"] == 0
        assert voted["vote_changed"] is False
        assert "source_ip" not in voted

        with pytest.raises(ConflictError):
            self.service.vote_on_verification(self.verification_id, VOTE_UP, "10.0.0.9", now=self.now)

        flipped = self.service.vote_on_verification(self.verification_id, VOTE_DOWN, "10.0.0.9", now=self.now)
        assert flipped["upvotes"] == 0
        assert flipped["downvotes"] == 1
        assert flipped["vote_changed"] is True
        assert self.database.count("vote_logs") == 1

    def test_vote_rescores_acceptance(self):
        """Test votes refresh the acceptance confidence score."""
        self.service.vote_on_verification(self.verification_id, VOTE_UP, "10.0.0.9", now=self.now)
        acceptance = self.database.fetch_one("SELECT * FROM provider_plan_acceptance")
        # a single verification cannot earn agreement points
        assert acceptance["confidence_score"] == 50

    def test_vote_validation(self):
        """Test invalid votes are rejected."""
        with pytest.raises(ValidationError):
            self.service.vote_on_verification(self.verification_id, "sideways", "10.0.0.9")
        with pytest.raises(ValidationError):
            self.service.vote_on_verification(self.verification_id, VOTE_UP, None)
        with pytest.raises(NotFoundError):
            self.service.vote_on_verification("missing", VOTE_UP, "10.0.0.9")

    def test_review_once(self):
        """Test a verification can only be reviewed once."""
        reviewed = self.service.review_verification(self.verification_id, True, reviewer="moderator",
                                                    now=self.now)
        assert reviewed["is_approved"] is True
        assert reviewed["reviewed_by"] == "moderator"

        with pytest.raises(ConflictError):
            self.service.review_verification(self.verification_id, False)
        with pytest.raises(NotFoundError):
            self.service.review_verification("missing", True)

    def test_verification_stats(self):
        """Test verification totals."""
        self.service.review_verification(self.verification_id, True, now=self.now)
        self.service.submit_verification("1987654321", "PLAN-B", False, source_ip="10.0.0.2",
                                         now=self.now - timedelta(days=3))

        stats = self.service.get_verification_stats(now=self.now)
        assert stats["total"] == 2
        assert stats["approved"] == 1
        assert stats["pending"] == 1
        assert stats["by_type"][PLAN_ACCEPTANCE] == 2
        assert stats["recent_count"] == 1


class TestQueries:
    """Test cases for verification queries."""

    def setup_method(self):
        """Setup test fixtures."""
        self.database = create_test_database()
        self.service = VerificationService(self.database, {"verification": {"max_recent_results": 2}})
        self.now = datetime(2025, 6, 1, 12, 0, 0)

        for i, npi in enumerate(["1234567890", "1234567890", "1987654321"]):
            self.service.submit_verification(npi, "PLAN-A", True, source_ip=f"10.0.0.{i}",
                                             submitted_by=f"user{i}@example.com",
                                             now=self.now - timedelta(hours=i))

    def test_recent_verifications(self):
        """Test recent verifications are capped, joined and PII-free."""
        recent = self.service.get_recent_verifications(limit=50, now=self.now)

        assert len(recent) == 2
        assert recent[0]["first_name"] == "Jane"
        assert recent[0]["plan_name"] == "Gold PPO"
        assert all("submitted_by" not in verification for verification in recent)

    def test_recent_verifications_filters(self):
        """Test provider filter and expiry filter."""
        assert len(self.service.get_recent_verifications(npi="1987654321", now=self.now)) == 1
        assert self.service.get_recent_verifications(npi="0000000000", now=self.now) == []

        later = self.now + timedelta(days=200)
        assert self.service.get_recent_verifications(now=later) == []
        assert len(self.service.get_recent_verifications(include_expired=True, now=later)) == 2

    def test_verifications_for_pair(self):
        """Test pair lookup with summary."""
        pair = self.service.get_verifications_for_pair("1234567890", "PLAN-A", now=self.now)

        assert pair["acceptance"]["verification_count"] == 2
        assert pair["is_acceptance_expired"] is False
        assert pair["summary"]["total_verifications"] == 2
        assert pair["summary"]["total_upvotes"] == 0

        assert self.service.get_verifications_for_pair("0000000000", "PLAN-A") is None
        assert self.service.get_verifications_for_pair("1234567890", "NOPE") is None

    def test_pair_without_acceptance(self):
        """Test pair lookup for a pair with no claims."""
        pair = self.service.get_verifications_for_pair("1987654321", "PLAN-B", now=self.now)
        assert pair["acceptance"] is None
        assert pair["is_acceptance_expired"] is False
        assert pair["verifications"] == []


class TestExpiry:
    """Test cases for TTL cleanup."""

    def setup_method(self):
        """Setup test fixtures."""
        self.database = create_test_database()
        self.service = VerificationService(self.database)
        self.now = datetime(2025, 6, 1, 12, 0, 0)

        old = self.service.submit_verification("1234567890", "PLAN-A", True, source_ip="10.0.0.1",
                                               now=self.now - timedelta(days=200))
        self.service.vote_on_verification(old["verification"]["id"], VOTE_UP, "10.0.0.9",
                                          now=self.now - timedelta(days=199))
        self.service.submit_verification("1987654321", "PLAN-A", True, source_ip="10.0.0.2",
                                         now=self.now - timedelta(days=10))

    def test_dry_run_counts_only(self):
        """Test dry run does not delete."""
        result = self.service.cleanup_expired_verifications(dry_run=True, now=self.now)

        assert result["dry_run"] is True
        assert result["expired_verification_logs"] == 1
        assert result["expired_plan_acceptances"] == 1
        assert result["deleted_verification_logs"] == 0
        assert self.database.count("verification_logs") == 2

    def test_cleanup_deletes_logs_and_votes(self):
        """Test expired logs and their votes are deleted, acceptances kept."""
        result = self.service.cleanup_expired_verifications(batch_size=1, now=self.now)

        assert result["deleted_verification_logs"] == 1
        assert result["deleted_vote_logs"] == 1
        assert result["deleted_plan_acceptances"] == 0
        assert self.database.count("verification_logs") == 1
        assert self.database.count("vote_logs") == 0
        assert self.database.count("provider_plan_acceptance") == 2

    def test_expired_acceptance_flag(self):
        """Test pair lookup reports an expired acceptance."""
        pair = self.service.get_verifications_for_pair("1234567890", "PLAN-A", now=self.now)
        assert pair["is_acceptance_expired"] is True
        assert pair["verifications"] == []

    def test_expiration_stats(self):
        """Test TTL statistics."""
        stats = self.service.get_expiration_stats(now=self.now)

        assert stats["verification_logs"]["total"] == 2
        assert stats["verification_logs"]["with_ttl"] == 2
        assert stats["verification_logs"]["expired"] == 1
        assert stats["verification_logs"]["expiring_within_30_days"] == 0
        assert stats["plan_acceptances"]["expired"] == 1


class TestAcceptanceStatus:
    """Test cases for the status decision."""

    def test_needs_clear_majority(self):
        """Test status only changes with enough agreeing claims."""
        assert determine_acceptance_status(PENDING, 3, 80, 3, 0) == ACCEPTED
        assert determine_acceptance_status(PENDING, 3, 80, 0, 3) == NOT_ACCEPTED
        assert determine_acceptance_status(PENDING, 3, 80, 2, 1) == PENDING
        assert determine_acceptance_status(ACCEPTED, 4, 80, 2, 2) == ACCEPTED

    def test_needs_count_and_score(self):
        """Test minimum verifications and confidence."""
        assert determine_acceptance_status(UNKNOWN, 2, 90, 2, 0) == PENDING
        assert determine_acceptance_status(None, 5, 40, 5, 0) == PENDING
        assert determine_acceptance_status(NOT_ACCEPTED, 5, 40, 5, 0) == NOT_ACCEPTED


if __name__ == "__main__":
    pytest.main([__file__])
