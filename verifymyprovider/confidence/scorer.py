"""
Confidence scorer for VerifyMyProvider.

Combines four bounded sub-scores (data source, recency, verification count,
community agreement) into a 0-100 confidence score for a provider's claimed
insurance-plan acceptance, plus a categorical level and explanation.
"""

import logging
from datetime import datetime
from typing import Dict, Optional
import numpy as np
import pandas as pd

from ..config import load_config, get_default_config, merge_configs, DEFAULT_CONFIG_PATH
from .freshness import (
    FreshnessEvaluator, categorize_specialty, classify_freshness, days_since,
    MENTAL_HEALTH, PRIMARY_CARE, HOSPITAL_BASED,
)

logger = logging.getLogger(__name__)

# Sub-score bounds; their sum is the confidence score
FACTOR_BOUNDS = {
    "data_source_score": 25.0,
    "recency_score": 30.0,
    "verification_score": 25.0,
    "agreement_score": 20.0,
}

MAX_SCORE = 100.0

VERY_HIGH = "VERY_HIGH"
HIGH = "HIGH"
MEDIUM = "MEDIUM"
LOW = "LOW"
VERY_LOW = "VERY_LOW"

LEVEL_LABELS = {
    VERY_HIGH: "Very high confidence",
    HIGH: "High confidence",
    MEDIUM: "Medium confidence",
    LOW: "Low confidence",
    VERY_LOW: "Very low confidence",
}

LEVEL_DESCRIPTIONS = {
    VERY_HIGH: "Verified through multiple authoritative sources with expert-level accuracy.",
    HIGH: "Verified through authoritative sources or multiple community verifications.",
    MEDIUM: "Some verification exists, but may need confirmation.",
    LOW: "Limited verification data. Call provider to confirm before visiting.",
    VERY_LOW: "Unverified or potentially inaccurate. Always call to confirm.",
}

RESEARCH_NOTES = {
    MENTAL_HEALTH: ("Mental health providers show high network turnover. "
                    "Research shows only 43% accept Medicaid."),
    PRIMARY_CARE: "Based on research showing 12% annual provider turnover in primary care.",
    HOSPITAL_BASED: "Hospital-based providers typically have more stable network participation.",
}

DEFAULT_RESEARCH_NOTE = ("Specialist network participation changes regularly. "
                         "Research shows 12% annual turnover.")

EXPERT_LEVEL_NOTE = "Research shows 3 verifications achieve expert-level accuracy (κ=0.58)."


def _clamp(value: float, low: float, high: float) -> float:
    if value is None or pd.isna(value):
        return low
    return max(low, min(high, float(value)))


# Counts beyond this are treated as this many
MAX_COUNT = 1_000_000


def _as_int(value) -> int:
    if value is None or pd.isna(value):
        return 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    if not np.isfinite(value):
        return MAX_COUNT if value > 0 else 0
    return int(_clamp(value, 0, MAX_COUNT))


def combine_factors(factors: Dict[str, float]) -> float:
    """
    Sum sub-scores into the confidence score.

    Each sub-score is clamped to its bound, the sum is clamped to [0, 100]
    and rounded to 2 decimals.

    Args:
        factors: Dictionary with the four sub-scores

    Returns:
        Confidence score
    """
    total = sum(
        _clamp(factors.get(name, 0.0), 0.0, bound)
        for name, bound in FACTOR_BOUNDS.items()
    )
    return round(_clamp(total, 0.0, MAX_SCORE), 2)


class ConfidenceScorer:
    """
    Confidence scorer for provider/plan acceptance records.

    Stateless apart from configuration; every method is a pure function of
    its inputs and the injected reference time.
    """

    def __init__(self, config: Optional[Dict] = None, freshness_config: Optional[Dict] = None):
        """
        Initialize confidence scorer with configuration.

        Args:
            config: Confidence configuration section
            freshness_config: Freshness configuration section
        """
        config = merge_configs(get_default_config()["confidence"], config or {})
        self.config = config
        self.data_source_scores = config.get("data_source_scores", {})
        self.default_data_source_score = config.get("default_data_source_score", 10)
        self.recency_max_age_days = config.get("recency_max_age_days", 180)
        self.points_per_check = config.get("verification_points_per_check", 5)
        self.verification_saturation = config.get("verification_saturation", 5)
        self.min_verifications_for_high = config.get("min_verifications_for_high_confidence", 3)

        self.level_thresholds = {VERY_HIGH: 91, HIGH: 76, MEDIUM: 51, LOW: 26}
        self.level_thresholds.update(config.get("level_thresholds", {}))

        self.freshness = FreshnessEvaluator(freshness_config)

        logger.debug("Initialized ConfidenceScorer")

    def data_source_score(self, source: Optional[str]) -> float:
        """
        Data source score (0-25). Authoritative registry data scores highest.
        """
        if not source or not isinstance(source, str):
            score = self.default_data_source_score
        else:
            score = self.data_source_scores.get(source.upper(), self.default_data_source_score)
        return _clamp(score, 0.0, FACTOR_BOUNDS["data_source_score"])

    def recency_score(self, last_verified_at: Optional[datetime],
                      now: Optional[datetime] = None) -> float:
        """
        Recency score (0-30).

        Full points for a verification made today, decaying linearly to zero
        at the configured maximum age. Never verified scores zero.
        """
        age = days_since(last_verified_at, now)
        if age is None:
            return 0.0
        bound = FACTOR_BOUNDS["recency_score"]
        remaining = 1.0 - age / float(self.recency_max_age_days)
        return round(_clamp(bound * remaining, 0.0, bound), 2)

    def verification_score(self, verification_count: int) -> float:
        """
        Verification count score (0-25).

        Saturates once enough independent confirmations exist; three are
        already expert-level (Mortensen et al. 2015).
        """
        count = min(_as_int(verification_count), self.verification_saturation)
        return _clamp(count * self.points_per_check, 0.0, FACTOR_BOUNDS["verification_score"])

    def agreement_score(self, agreeing: int, disagreeing: int, verification_count: int) -> float:
        """
        Agreement score (0-20).

        Proportional to the share of tallies that agree with the majority
        claim. A single verification cannot agree with anything, so it scores 0.
        """
        agreeing = _as_int(agreeing)
        disagreeing = _as_int(disagreeing)
        total = agreeing + disagreeing

        if _as_int(verification_count) <= 1 or total == 0:
            return 0.0

        bound = FACTOR_BOUNDS["agreement_score"]
        return round(_clamp(bound * agreeing / total, 0.0, bound), 2)

    def get_confidence_level(self, score: float, verification_count: int) -> str:
        """
        Confidence level for a score.

        With fewer than three verifications the level is capped at MEDIUM.
        """
        count = _as_int(verification_count)

        if score >= self.level_thresholds[VERY_HIGH]:
            level = VERY_HIGH
        elif score >= self.level_thresholds[HIGH]:
            level = HIGH
        elif score >= self.level_thresholds[MEDIUM]:
            level = MEDIUM
        elif score >= self.level_thresholds[LOW]:
            level = LOW
        else:
            level = VERY_LOW

        if 0 < count < self.min_verifications_for_high and level in (VERY_HIGH, HIGH):
            level = MEDIUM

        return level

    def get_level_description(self, level: str, verification_count: int) -> str:
        description = LEVEL_DESCRIPTIONS.get(level, "Unknown confidence level")
        if _as_int(verification_count) < self.min_verifications_for_high:
            description += " Research shows 3 verifications achieve expert-level accuracy."
        return description

    def _build_explanation(self, score: float, factors: Dict[str, float],
                           verification_count: int, age: Optional[int],
                           category: str) -> str:
        parts = []

        source_points = factors["data_source_score"]
        if source_points >= 25:
            parts.append("verified through official CMS data")
        elif source_points >= 20:
            parts.append("verified through insurance carrier data")
        elif source_points >= 15:
            parts.append("verified through community submissions")
        else:
            parts.append("limited authoritative data")

        recency_points = factors["recency_score"]
        if age is None:
            parts.append("never verified - needs community verification")
        elif recency_points >= 25:
            parts.append(f"very recent verification ({age} days ago)")
        elif recency_points >= 15:
            parts.append(f"recent verification ({age} days ago)")
        elif recency_points > 0:
            parts.append(f"aging data ({age} days old)")
        else:
            parts.append(f"very stale data ({age}+ days old) - needs re-verification")

        if verification_count == 0:
            parts.append("no patient verifications yet")
        elif verification_count == 1:
            parts.append("only 1 verification (research shows 3 achieve expert-level accuracy)")
        elif verification_count < self.min_verifications_for_high:
            needed = self.min_verifications_for_high - verification_count
            parts.append(f"{verification_count} verifications ({needed} more needed for expert-level accuracy)")
        else:
            parts.append(f"{verification_count} verifications (expert-level accuracy achieved)")

        agreement_points = factors["agreement_score"]
        if verification_count > 1:
            if agreement_points >= 20:
                parts.append("complete community consensus")
            elif agreement_points >= 15:
                parts.append("strong community consensus")
            elif agreement_points >= 12:
                parts.append("moderate community consensus")
            else:
                parts.append("conflicting community data")

        explanation = f"This {score:g}% confidence score is based on: {', '.join(parts)}."

        if category in RESEARCH_NOTES:
            explanation += " " + RESEARCH_NOTES[category]

        return explanation

    def calculate(self, data_source: Optional[str] = None,
                  last_verified_at: Optional[datetime] = None,
                  verification_count: int = 0,
                  upvotes: int = 0,
                  downvotes: int = 0,
                  specialty: Optional[str] = None,
                  taxonomy_description: Optional[str] = None,
                  now: Optional[datetime] = None) -> Dict:
        """
        Calculate confidence score and metadata for a provider/plan pair.

        Args:
            data_source: Source of the acceptance data (e.g. CMS_NPPES, CROWDSOURCE)
            last_verified_at: Last verification timestamp
            verification_count: Number of verifications
            upvotes: Tallies agreeing with the majority claim
            downvotes: Tallies disagreeing with the majority claim
            specialty: Provider specialty (freshness metadata only)
            taxonomy_description: Taxonomy description (freshness metadata only)
            now: Reference time (defaults to current time)

        Returns:
            Dictionary with score, level, label, description, factors and metadata
        """
        now = now or datetime.now()
        count = _as_int(verification_count)

        factors = {
            "data_source_score": self.data_source_score(data_source),
            "recency_score": self.recency_score(last_verified_at, now),
            "verification_score": self.verification_score(count),
            "agreement_score": self.agreement_score(upvotes, downvotes, count),
        }

        score = combine_factors(factors)
        level = self.get_confidence_level(score, count)

        category = categorize_specialty(specialty, taxonomy_description)
        threshold = self.freshness.get_threshold(category)
        age = days_since(last_verified_at, now)

        is_stale = age is not None and age > threshold
        research_note = RESEARCH_NOTES.get(category, DEFAULT_RESEARCH_NOTE)
        if count < self.min_verifications_for_high:
            research_note += " " + EXPERT_LEVEL_NOTE

        return {
            "score": score,
            "level": level,
            "label": LEVEL_LABELS[level],
            "description": self.get_level_description(level, count),
            "factors": factors,
            "metadata": {
                "days_since_verification": age,
                "freshness_threshold": threshold,
                "freshness_level": classify_freshness(age, threshold),
                "is_stale": is_stale,
                "days_until_stale": max(0, threshold - age) if age is not None else threshold,
                "recommend_reverification": age is None or is_stale or age > threshold * 0.8,
                "research_note": research_note,
                "explanation": self._build_explanation(score, factors, count, age, category),
            },
        }

    def score_acceptance_records(self, records_df: pd.DataFrame,
                                 now: Optional[datetime] = None) -> pd.DataFrame:
        """
        Score a DataFrame of acceptance records.

        Expected columns (missing ones default to empty): data_source,
        last_verified, verification_count, upvotes, downvotes, specialty,
        taxonomy_description.

        Args:
            records_df: Acceptance records
            now: Reference time

        Returns:
            Copy of the input with factor, score, level and freshness columns
        """
        now = now or datetime.now()
        result_df = records_df.copy()

        if result_df.empty:
            for column in list(FACTOR_BOUNDS) + ["confidence_score", "confidence_level", "freshness_level"]:
                result_df[column] = pd.Series(dtype=object)
            return result_df

        def _value(row, column):
            value = row.get(column)
            if value is None:
                return None
            if not isinstance(value, str) and pd.isna(value):
                return None
            return value

        results = []
        for _, row in result_df.iterrows():
            last_verified = _value(row, "last_verified")
            if last_verified is not None:
                # Unparseable timestamps count as never verified
                last_verified = pd.to_datetime(last_verified, errors="coerce")
                last_verified = None if pd.isna(last_verified) else last_verified.to_pydatetime()

            result = self.calculate(
                data_source=_value(row, "data_source"),
                last_verified_at=last_verified,
                verification_count=_value(row, "verification_count") or 0,
                upvotes=_value(row, "upvotes") or 0,
                downvotes=_value(row, "downvotes") or 0,
                specialty=_value(row, "specialty"),
                taxonomy_description=_value(row, "taxonomy_description"),
                now=now,
            )
            results.append({
                **result["factors"],
                "confidence_score": result["score"],
                "confidence_level": result["level"],
                "freshness_level": result["metadata"]["freshness_level"],
            })

        scored_df = pd.DataFrame(results, index=result_df.index)
        for column in scored_df.columns:
            result_df[column] = scored_df[column]

        logger.info(f"Scored {len(result_df)} acceptance records")
        return result_df

    def get_scoring_statistics(self, scored_df: pd.DataFrame) -> Dict[str, any]:
        """
        Calculate scoring statistics.

        Args:
            scored_df: DataFrame with confidence_score and confidence_level columns

        Returns:
            Dictionary with scoring statistics
        """
        if "confidence_score" not in scored_df.columns or scored_df.empty:
            return {"total_records": 0}

        scores = scored_df["confidence_score"].astype(float).to_numpy()

        score_stats = {
            "mean_score": float(np.mean(scores)),
            "median_score": float(np.median(scores)),
            "std_score": float(np.std(scores)),
            "min_score": float(np.min(scores)),
            "max_score": float(np.max(scores)),
        }

        level_counts = scored_df["confidence_level"].value_counts().to_dict()

        statistics = {
            "total_records": len(scored_df),
            "score_statistics": score_stats,
            "level_distribution": {level: int(level_counts.get(level, 0)) for level in LEVEL_LABELS},
        }

        if "freshness_level" in scored_df.columns:
            statistics["freshness_distribution"] = {
                k: int(v) for k, v in scored_df["freshness_level"].value_counts().to_dict().items()
            }

        return statistics


def create_confidence_scorer(config_path: str = DEFAULT_CONFIG_PATH) -> ConfidenceScorer:
    """
    Convenience function to create a confidence scorer from a config file.

    Args:
        config_path: Path to configuration file

    Returns:
        Initialized confidence scorer
    """
    config = load_config(config_path)
    return ConfidenceScorer(config.get("confidence", {}), config.get("freshness", {}))


def calculate_confidence_score(**kwargs) -> Dict:
    """
    Convenience function to score one record with default configuration.

    Accepts the keyword arguments of ConfidenceScorer.calculate.
    """
    return ConfidenceScorer().calculate(**kwargs)
