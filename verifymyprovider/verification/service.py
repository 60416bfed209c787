"""
Crowdsourced verification service for VerifyMyProvider.

Records user claims about whether a provider accepts an insurance plan,
guards against repeat submissions (Sybil window), keeps the plan acceptance
record in step with community consensus and handles voting, review and
TTL expiry of verification logs.
"""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..config import get_default_config, merge_configs
from ..confidence.scorer import ConfidenceScorer
from ..storage.database import ProviderDatabase, to_db_timestamp, from_db_timestamp

logger = logging.getLogger(__name__)

# Acceptance statuses
ACCEPTED = "ACCEPTED"
NOT_ACCEPTED = "NOT_ACCEPTED"
PENDING = "PENDING"
UNKNOWN = "UNKNOWN"

# Verification types
PLAN_ACCEPTANCE = "PLAN_ACCEPTANCE"
PROVIDER_INFO = "PROVIDER_INFO"
CONTACT_INFO = "CONTACT_INFO"
STATUS_CHANGE = "STATUS_CHANGE"
NEW_PLAN = "NEW_PLAN"
VERIFICATION_TYPES = [PLAN_ACCEPTANCE, PROVIDER_INFO, CONTACT_INFO, STATUS_CHANGE, NEW_PLAN]

CROWDSOURCE = "CROWDSOURCE"

VOTE_UP = "up"
VOTE_DOWN = "down"

PII_FIELDS = ("source_ip", "user_agent", "submitted_by")

PAIR_VERIFICATION_LIMIT = 50


class VerificationError(Exception):
    """Base error for verification operations."""


class NotFoundError(VerificationError):
    """Provider, plan or verification does not exist."""


class ConflictError(VerificationError):
    """Duplicate submission, vote or review."""


class ValidationError(VerificationError):
    """Request is missing or has invalid fields."""


def strip_pii(verification: Dict) -> Dict:
    """Copy of a verification without source IP, user agent and submitter."""
    return {key: value for key, value in verification.items() if key not in PII_FIELDS}


def _decode_verification(row: Dict) -> Dict:
    verification = dict(row)
    for field in ("previous_value", "new_value"):
        raw = verification.get(field)
        verification[field] = json.loads(raw) if raw else None
    if verification.get("is_approved") is not None:
        verification["is_approved"] = bool(verification["is_approved"])
    return verification


def _decode_acceptance(row: Optional[Dict]) -> Optional[Dict]:
    if row is None:
        return None
    acceptance = dict(row)
    factors = acceptance.get("confidence_factors")
    acceptance["confidence_factors"] = json.loads(factors) if factors else None
    return acceptance


def determine_acceptance_status(current_status: Optional[str], verification_count: int,
                                confidence_score: float, accepted_count: int,
                                not_accepted_count: int,
                                min_verifications: int = 3,
                                min_confidence: float = 60) -> str:
    """
    Acceptance status after a new claim.

    The status only flips to ACCEPTED / NOT_ACCEPTED with enough
    verifications, a high enough score and a clear 2:1 majority. Otherwise
    the current status is kept, with UNKNOWN moving to PENDING.

    Args:
        current_status: Status before this claim
        verification_count: Verification count including this claim
        confidence_score: Score including this claim
        accepted_count: Non-expired claims saying ACCEPTED
        not_accepted_count: Non-expired claims saying NOT_ACCEPTED
        min_verifications: Verifications needed for consensus
        min_confidence: Score needed for a status change

    Returns:
        New acceptance status
    """
    has_clear_majority = (accepted_count > not_accepted_count * 2 or
                          not_accepted_count > accepted_count * 2)

    if (verification_count >= min_verifications and
            confidence_score >= min_confidence and has_clear_majority):
        return ACCEPTED if accepted_count > not_accepted_count else NOT_ACCEPTED

    if not current_status or current_status == UNKNOWN:
        return PENDING
    return current_status


class VerificationService:
    """
    Verification submission, voting and lifecycle management.
    """

    def __init__(self, database: ProviderDatabase, config: Optional[Dict] = None,
                 scorer: Optional[ConfidenceScorer] = None):
        """
        Initialize verification service.

        Args:
            database: Provider database
            config: Full configuration dictionary (verification, confidence and
                freshness sections are used)
            scorer: Confidence scorer; built from config when omitted
        """
        config = merge_configs(get_default_config(), config or {})
        self.database = database
        self.config = config["verification"]
        self.scorer = scorer or ConfidenceScorer(config["confidence"], config["freshness"])

        self.ttl = timedelta(days=self.config["ttl_days"])
        self.sybil_window = timedelta(days=self.config["sybil_window_days"])
        self.min_verifications = self.config["min_verifications_for_consensus"]
        self.min_confidence = self.config["min_confidence_for_status_change"]
        self.max_recent_results = self.config["max_recent_results"]

        logger.debug("Initialized VerificationService")

    # Submission

    def _require_provider_and_plan(self, conn: sqlite3.Connection, npi: str, plan_id: str):
        if conn.execute("SELECT 1 FROM providers WHERE npi = ?", [npi]).fetchone() is None:
            raise NotFoundError(f"Provider with NPI {npi} not found")
        if conn.execute("SELECT 1 FROM insurance_plans WHERE plan_id = ?", [plan_id]).fetchone() is None:
            raise NotFoundError(f"Plan with ID {plan_id} not found")

    def _check_sybil(self, conn: sqlite3.Connection, npi: str, plan_id: str,
                     source_ip: Optional[str], submitted_by: Optional[str], now: datetime):
        cutoff = to_db_timestamp(now - self.sybil_window)
        days = self.sybil_window.days

        if source_ip:
            existing = conn.execute('''
                SELECT 1 FROM verification_logs
                WHERE provider_npi = ? AND plan_id = ? AND source_ip = ? AND created_at >= ?
                LIMIT 1
            ''', [npi, plan_id, source_ip, cutoff]).fetchone()
            if existing:
                raise ConflictError(
                    f"You have already submitted a verification for this provider-plan pair "
                    f"within the last {days} days.")

        if submitted_by:
            existing = conn.execute('''
                SELECT 1 FROM verification_logs
                WHERE provider_npi = ? AND plan_id = ? AND submitted_by = ? AND created_at >= ?
                LIMIT 1
            ''', [npi, plan_id, submitted_by, cutoff]).fetchone()
            if existing:
                raise ConflictError(
                    f"This email has already submitted a verification for this provider-plan pair "
                    f"within the last {days} days.")

    def _count_consensus(self, conn: sqlite3.Connection, npi: str, plan_id: str,
                         now: datetime) -> Dict[str, int]:
        rows = conn.execute('''
            SELECT new_value FROM verification_logs
            WHERE provider_npi = ? AND plan_id = ? AND verification_type = ?
              AND (expires_at IS NULL OR expires_at > ?)
        ''', [npi, plan_id, PLAN_ACCEPTANCE, to_db_timestamp(now)]).fetchall()

        counts = {ACCEPTED: 0, NOT_ACCEPTED: 0}
        for row in rows:
            value = json.loads(row["new_value"]) if row["new_value"] else {}
            status = value.get("acceptance_status")
            if status in counts:
                counts[status] += 1
        return counts

    def submit_verification(self, npi: str, plan_id: str, accepts_insurance: bool,
                            accepts_new_patients: Optional[bool] = None,
                            location_id: Optional[int] = None,
                            phone_reached: Optional[bool] = None,
                            phone_correct: Optional[bool] = None,
                            scheduled_appointment: Optional[bool] = None,
                            notes: Optional[str] = None,
                            evidence_url: Optional[str] = None,
                            submitted_by: Optional[str] = None,
                            source_ip: Optional[str] = None,
                            user_agent: Optional[str] = None,
                            now: Optional[datetime] = None) -> Dict:
        """
        Submit a plan acceptance claim for a provider.

        Args:
            npi: Provider NPI
            plan_id: Insurance plan ID
            accepts_insurance: Whether the provider accepts the plan
            accepts_new_patients: Whether the provider takes new patients
            location_id: Practice location the claim applies to
            phone_reached: Whether the submitter reached the office by phone
            phone_correct: Whether the listed phone number was correct
            scheduled_appointment: Whether an appointment was scheduled
            notes: Free-text notes
            evidence_url: Link to supporting evidence
            submitted_by: Submitter e-mail
            source_ip: Submitter IP
            user_agent: Submitter user agent
            now: Reference time

        Returns:
            Dictionary with the verification (PII removed) and the acceptance record

        Raises:
            NotFoundError: Unknown provider or plan
            ConflictError: Same IP or e-mail verified this pair within the Sybil window
        """
        now = now or datetime.now()
        new_status = ACCEPTED if accepts_insurance else NOT_ACCEPTED
        verification_id = uuid.uuid4().hex

        with self.database.transaction() as conn:
            self._require_provider_and_plan(conn, npi, plan_id)
            self._check_sybil(conn, npi, plan_id, source_ip, submitted_by, now)

            existing = conn.execute('''
                SELECT * FROM provider_plan_acceptance
                WHERE provider_npi = ? AND plan_id = ? AND location_id IS ?
                ORDER BY id LIMIT 1
            ''', [npi, plan_id, location_id]).fetchone()
            existing = dict(existing) if existing else None

            previous_value = None
            if existing:
                previous_value = {
                    "acceptance_status": existing["acceptance_status"],
                    "confidence_score": existing["confidence_score"],
                }

            new_value = {
                "acceptance_status": new_status,
                "accepts_new_patients": accepts_new_patients,
                "phone_reached": phone_reached,
                "phone_correct": phone_correct,
                "scheduled_appointment": scheduled_appointment,
            }

            conn.execute('''
                INSERT INTO verification_logs
                (id, provider_npi, plan_id, acceptance_id, verification_type, verification_source,
                 previous_value, new_value, source_ip, user_agent, submitted_by, notes,
                 evidence_url, upvotes, downvotes, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 0, ?, ?)
            ''', [
                verification_id, npi, plan_id, existing["id"] if existing else None,
                PLAN_ACCEPTANCE, CROWDSOURCE,
                json.dumps(previous_value) if previous_value else None,
                json.dumps(new_value), source_ip, user_agent, submitted_by, notes,
                evidence_url, to_db_timestamp(now), to_db_timestamp(now + self.ttl)
            ])

            counts = self._count_consensus(conn, npi, plan_id, now)
            majority = max(counts[ACCEPTED], counts[NOT_ACCEPTED])
            minority = min(counts[ACCEPTED], counts[NOT_ACCEPTED])
            verification_count = (existing["verification_count"] or 0) + 1 if existing else 1

            result = self.scorer.calculate(
                data_source=CROWDSOURCE,
                last_verified_at=now,
                verification_count=verification_count,
                upvotes=majority,
                downvotes=minority,
                now=now,
            )

            if existing:
                status = determine_acceptance_status(
                    existing["acceptance_status"], verification_count, result["score"],
                    counts[ACCEPTED], counts[NOT_ACCEPTED],
                    self.min_verifications, self.min_confidence)

                conn.execute('''
                    UPDATE provider_plan_acceptance
                    SET acceptance_status = ?, accepts_new_patients = COALESCE(?, accepts_new_patients),
                        verification_count = ?, confidence_score = ?, confidence_factors = ?,
                        last_verified = ?, expires_at = ?, updated_at = ?
                    WHERE id = ?
                ''', [
                    status, accepts_new_patients, verification_count, result["score"],
                    json.dumps(result["factors"]), to_db_timestamp(now),
                    to_db_timestamp(now + self.ttl), to_db_timestamp(now), existing["id"]
                ])
                acceptance_id = existing["id"]
            else:
                cursor = conn.execute('''
                    INSERT INTO provider_plan_acceptance
                    (provider_npi, plan_id, location_id, acceptance_status, accepts_new_patients,
                     data_source, confidence_score, confidence_factors, verification_count,
                     last_verified, expires_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
                ''', [
                    npi, plan_id, location_id, PENDING, accepts_new_patients, CROWDSOURCE,
                    result["score"], json.dumps(result["factors"]), to_db_timestamp(now),
                    to_db_timestamp(now + self.ttl), to_db_timestamp(now), to_db_timestamp(now)
                ])
                acceptance_id = cursor.lastrowid
                conn.execute("UPDATE verification_logs SET acceptance_id = ? WHERE id = ?",
                             [acceptance_id, verification_id])

            verification = conn.execute("SELECT * FROM verification_logs WHERE id = ?",
                                        [verification_id]).fetchone()
            acceptance = conn.execute("SELECT * FROM provider_plan_acceptance WHERE id = ?",
                                      [acceptance_id]).fetchone()

        logger.info(f"Recorded {new_status} verification {verification_id} for NPI {npi}, plan {plan_id}")

        return {
            "verification": strip_pii(_decode_verification(dict(verification))),
            "acceptance": _decode_acceptance(dict(acceptance)),
        }

    # Voting and review

    def vote_on_verification(self, verification_id: str, vote: str,
                             source_ip: Optional[str] = None,
                             now: Optional[datetime] = None) -> Dict:
        """
        Up- or down-vote a verification, once per source IP.

        Voting again in the other direction flips the vote.

        Args:
            verification_id: Verification ID
            vote: "up" or "down"
            source_ip: Voter IP
            now: Reference time

        Returns:
            Updated verification (PII removed) with a vote_changed flag

        Raises:
            ValidationError: Missing source IP or bad vote direction
            NotFoundError: Unknown verification
            ConflictError: Same vote from the same IP
        """
        if vote not in (VOTE_UP, VOTE_DOWN):
            raise ValidationError(f"Vote must be '{VOTE_UP}' or '{VOTE_DOWN}', got {vote!r}")
        if not source_ip:
            raise ValidationError("Source IP is required for voting")

        now = now or datetime.now()
        vote_changed = False

        with self.database.transaction() as conn:
            if conn.execute("SELECT 1 FROM verification_logs WHERE id = ?",
                            [verification_id]).fetchone() is None:
                raise NotFoundError("Verification not found")

            existing_vote = conn.execute('''
                SELECT vote FROM vote_logs WHERE verification_id = ? AND source_ip = ?
            ''', [verification_id, source_ip]).fetchone()

            if existing_vote:
                if existing_vote["vote"] == vote:
                    raise ConflictError("You have already voted on this verification")

                vote_changed = True
                conn.execute('''
                    UPDATE vote_logs SET vote = ?, created_at = ?
                    WHERE verification_id = ? AND source_ip = ?
                ''', [vote, to_db_timestamp(now), verification_id, source_ip])

                if vote == VOTE_UP:
                    adjustment = "upvotes = upvotes + 1, downvotes = MAX(downvotes - 1, 0)"
                else:
                    adjustment = "upvotes = MAX(upvotes - 1, 0), downvotes = downvotes + 1"
            else:
                conn.execute('''
                    INSERT INTO vote_logs (verification_id, source_ip, vote, created_at)
                    VALUES (?, ?, ?, ?)
                ''', [verification_id, source_ip, vote, to_db_timestamp(now)])

                adjustment = "upvotes = upvotes + 1" if vote == VOTE_UP else "downvotes = downvotes + 1"

            conn.execute(f"UPDATE verification_logs SET {adjustment} WHERE id = ?", [verification_id])

            verification = dict(conn.execute("SELECT * FROM verification_logs WHERE id = ?",
                                             [verification_id]).fetchone())

            if verification["acceptance_id"] is not None:
                acceptance = conn.execute("SELECT * FROM provider_plan_acceptance WHERE id = ?",
                                          [verification["acceptance_id"]]).fetchone()
                if acceptance:
                    result = self.scorer.calculate(
                        data_source=CROWDSOURCE,
                        last_verified_at=from_db_timestamp(acceptance["last_verified"]),
                        verification_count=acceptance["verification_count"] or 0,
                        upvotes=verification["upvotes"],
                        downvotes=verification["downvotes"],
                        now=now,
                    )
                    conn.execute('''
                        UPDATE provider_plan_acceptance
                        SET confidence_score = ?, confidence_factors = ?, updated_at = ?
                        WHERE id = ?
                    ''', [result["score"], json.dumps(result["factors"]),
                          to_db_timestamp(now), acceptance["id"]])

        logger.info(f"Recorded {vote} vote on verification {verification_id}"
                    f"{' (changed)' if vote_changed else ''}")

        return {**strip_pii(_decode_verification(verification)), "vote_changed": vote_changed}

    def review_verification(self, verification_id: str, approved: bool,
                            reviewer: str = "admin", now: Optional[datetime] = None) -> Dict:
        """
        Approve or reject a verification. The decision can only be made once.

        Raises:
            NotFoundError: Unknown verification
            ConflictError: Verification already reviewed
        """
        now = now or datetime.now()

        with self.database.transaction() as conn:
            row = conn.execute("SELECT is_approved FROM verification_logs WHERE id = ?",
                               [verification_id]).fetchone()
            if row is None:
                raise NotFoundError("Verification not found")
            if row["is_approved"] is not None:
                raise ConflictError("Verification has already been reviewed")

            conn.execute('''
                UPDATE verification_logs SET is_approved = ?, reviewed_by = ?, reviewed_at = ?
                WHERE id = ?
            ''', [1 if approved else 0, reviewer, to_db_timestamp(now), verification_id])

            verification = dict(conn.execute("SELECT * FROM verification_logs WHERE id = ?",
                                             [verification_id]).fetchone())

        logger.info(f"Verification {verification_id} {'approved' if approved else 'rejected'} by {reviewer}")
        return strip_pii(_decode_verification(verification))

    # Queries

    def get_verification_stats(self, now: Optional[datetime] = None) -> Dict[str, any]:
        """
        Verification totals for monitoring.

        Returns:
            Dictionary with total, approved, pending, by_type and recent_count (24h)
        """
        now = now or datetime.now()
        db = self.database

        type_counts = {
            row["verification_type"]: int(row["n"])
            for row in db.fetch_all('''
                SELECT verification_type, COUNT(*) AS n FROM verification_logs
                GROUP BY verification_type
            ''')
        }

        return {
            "total": db.count("verification_logs"),
            "approved": db.count("verification_logs", "is_approved = 1"),
            "pending": db.count("verification_logs", "is_approved IS NULL"),
            "by_type": {vtype: type_counts.get(vtype, 0) for vtype in VERIFICATION_TYPES},
            "recent_count": db.count("verification_logs", "created_at >= ?",
                                     [to_db_timestamp(now - timedelta(hours=24))]),
        }

    def get_recent_verifications(self, limit: int = 20, npi: Optional[str] = None,
                                 plan_id: Optional[str] = None, include_expired: bool = False,
                                 now: Optional[datetime] = None) -> List[Dict]:
        """
        Most recent verifications with provider and plan names, PII removed.

        Args:
            limit: Maximum results (capped at max_recent_results)
            npi: Filter by provider NPI
            plan_id: Filter by plan ID
            include_expired: Include verifications past their TTL
            now: Reference time

        Returns:
            List of verification dictionaries, newest first
        """
        now = now or datetime.now()
        limit = max(0, min(int(limit), self.max_recent_results))

        query = '''
            SELECT v.*, p.first_name, p.last_name, p.organization_name, p.entity_type,
                   ip.plan_name, ip.issuer_name
            FROM verification_logs v
            LEFT JOIN providers p ON p.npi = v.provider_npi
            LEFT JOIN insurance_plans ip ON ip.plan_id = v.plan_id
            WHERE 1=1
        '''
        params = []

        if not include_expired:
            query += " AND (v.expires_at IS NULL OR v.expires_at > ?)"
            params.append(to_db_timestamp(now))
        if npi:
            query += " AND v.provider_npi = ?"
            params.append(npi)
        if plan_id:
            query += " AND v.plan_id = ?"
            params.append(plan_id)

        query += " ORDER BY v.created_at DESC LIMIT ?"
        params.append(limit)

        return [strip_pii(_decode_verification(row)) for row in self.database.fetch_all(query, params)]

    def get_verifications_for_pair(self, npi: str, plan_id: str, include_expired: bool = False,
                                   now: Optional[datetime] = None) -> Optional[Dict]:
        """
        Acceptance record and verifications for one provider/plan pair.

        Returns:
            Dictionary with acceptance, is_acceptance_expired, verifications and
            summary, or None when the provider or plan does not exist
        """
        now = now or datetime.now()
        db = self.database

        if db.count("providers", "npi = ?", [npi]) == 0 or \
                db.count("insurance_plans", "plan_id = ?", [plan_id]) == 0:
            return None

        acceptance = _decode_acceptance(db.fetch_one('''
            SELECT * FROM provider_plan_acceptance
            WHERE provider_npi = ? AND plan_id = ? AND location_id IS NULL
            ORDER BY id LIMIT 1
        ''', [npi, plan_id]))

        query = "SELECT * FROM verification_logs WHERE provider_npi = ? AND plan_id = ?"
        params = [npi, plan_id]
        if not include_expired:
            query += " AND (expires_at IS NULL OR expires_at > ?)"
            params.append(to_db_timestamp(now))
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(PAIR_VERIFICATION_LIMIT)

        verifications = [strip_pii(_decode_verification(row)) for row in db.fetch_all(query, params)]

        expires_at = from_db_timestamp(acceptance["expires_at"]) if acceptance else None

        return {
            "acceptance": acceptance,
            "is_acceptance_expired": expires_at is not None and expires_at < now,
            "verifications": verifications,
            "summary": {
                "total_verifications": len(verifications),
                "total_upvotes": sum(v["upvotes"] or 0 for v in verifications),
                "total_downvotes": sum(v["downvotes"] or 0 for v in verifications),
            },
        }

    # Expiry

    def cleanup_expired_verifications(self, dry_run: bool = False,
                                      batch_size: Optional[int] = None,
                                      now: Optional[datetime] = None) -> Dict[str, any]:
        """
        Delete verification logs past their expiry.

        Expired acceptance records are counted but never deleted; they keep
        their last known status and simply score lower on recency.

        Args:
            dry_run: Only count, do not delete
            batch_size: Rows deleted per commit
            now: Reference time

        Returns:
            Cleanup statistics
        """
        now = now or datetime.now()
        batch_size = batch_size or get_default_config()["maintenance"]["delete_batch_size"]
        cutoff = to_db_timestamp(now)
        expired_where = "expires_at IS NOT NULL AND expires_at < ?"

        result = {
            "dry_run": dry_run,
            "expired_verification_logs": self.database.count("verification_logs", expired_where, [cutoff]),
            "expired_plan_acceptances": self.database.count("provider_plan_acceptance", expired_where, [cutoff]),
            "deleted_verification_logs": 0,
            "deleted_vote_logs": 0,
            "deleted_plan_acceptances": 0,
        }

        if dry_run:
            logger.info(f"Dry run: {result['expired_verification_logs']} expired verification logs")
            return result

        while True:
            with self.database.transaction() as conn:
                doomed = [row["id"] for row in conn.execute(
                    f"SELECT id FROM verification_logs WHERE {expired_where} LIMIT ?",
                    [cutoff, batch_size]).fetchall()]
                if not doomed:
                    break

                placeholders = ",".join("?" * len(doomed))
                votes = conn.execute(f"DELETE FROM vote_logs WHERE verification_id IN ({placeholders})", doomed)
                logs = conn.execute(f"DELETE FROM verification_logs WHERE id IN ({placeholders})", doomed)

            result["deleted_vote_logs"] += votes.rowcount
            result["deleted_verification_logs"] += logs.rowcount
            logger.info(f"Deleted batch of {logs.rowcount} expired verification logs")

            if len(doomed) < batch_size:
                break

        logger.info(f"Deleted {result['deleted_verification_logs']} expired verification logs")
        return result

    def get_expiration_stats(self, now: Optional[datetime] = None) -> Dict[str, Dict[str, int]]:
        """
        TTL statistics for verification logs and acceptance records.

        Returns:
            Per table: total, with_ttl, expired, expiring_within_7_days,
            expiring_within_30_days
        """
        now = now or datetime.now()
        now_ts = to_db_timestamp(now)
        in_7_days = to_db_timestamp(now + timedelta(days=7))
        in_30_days = to_db_timestamp(now + timedelta(days=30))

        def _table_stats(table: str) -> Dict[str, int]:
            db = self.database
            return {
                "total": db.count(table),
                "with_ttl": db.count(table, "expires_at IS NOT NULL"),
                "expired": db.count(table, "expires_at IS NOT NULL AND expires_at < ?", [now_ts]),
                "expiring_within_7_days": db.count(
                    table, "expires_at >= ? AND expires_at < ?", [now_ts, in_7_days]),
                "expiring_within_30_days": db.count(
                    table, "expires_at >= ? AND expires_at < ?", [now_ts, in_30_days]),
            }

        return {
            "verification_logs": _table_stats("verification_logs"),
            "plan_acceptances": _table_stats("provider_plan_acceptance"),
        }
