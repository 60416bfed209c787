"""
Streamlit reporting dashboard for VerifyMyProvider.

Shows confidence badges and freshness warnings for provider/plan acceptance
records, plus data-quality metrics for the provider directory.

Run with:
    streamlit run verifymyprovider/reporting/dashboard.py
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional
import pandas as pd
import streamlit as st
import plotly.express as px

from verifymyprovider.config import load_config, DEFAULT_CONFIG_PATH
from verifymyprovider.confidence.freshness import FreshnessEvaluator, FRESH, WARNING, STALE
from verifymyprovider.confidence.scorer import (
    ConfidenceScorer, VERY_HIGH, HIGH, MEDIUM, LOW, VERY_LOW, LEVEL_LABELS,
)
from verifymyprovider.storage.database import ProviderDatabase, from_db_timestamp, to_db_timestamp
from verifymyprovider.verification.service import PLAN_ACCEPTANCE, ACCEPTED, NOT_ACCEPTED

logger = logging.getLogger(__name__)

LEVEL_COLORS = {
    VERY_HIGH: "#15803d",
    HIGH: "#22c55e",
    MEDIUM: "#eab308",
    LOW: "#f97316",
    VERY_LOW: "#dc2626",
}

FRESHNESS_COLORS = {FRESH: "#22c55e", WARNING: "#eab308", STALE: "#dc2626"}


def confidence_badge(result: Dict) -> Dict[str, str]:
    """
    Badge for a confidence result.

    Args:
        result: Output of ConfidenceScorer.calculate

    Returns:
        Dictionary with text, level and color
    """
    level = result["level"]
    return {
        "text": f"{LEVEL_LABELS[level]} ({result['score']:g}%)",
        "level": level,
        "color": LEVEL_COLORS[level],
    }


def freshness_warning(evaluation: Dict) -> Optional[Dict[str, str]]:
    """
    Warning banner for a freshness evaluation, or None when fresh.

    Args:
        evaluation: Output of FreshnessEvaluator.evaluate
    """
    if evaluation["level"] == FRESH:
        return None
    return {
        "level": evaluation["level"],
        "message": evaluation["message"],
        "detail": evaluation["research_explanation"],
        "verify_url": evaluation["verify_url"],
        "color": FRESHNESS_COLORS[evaluation["level"]],
    }


class ReportingDashboard:
    """
    Streamlit-based reporting dashboard for VerifyMyProvider.
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH,
                 database: Optional[ProviderDatabase] = None):
        """
        Initialize dashboard with configuration.

        Args:
            config_path: Path to configuration file
            database: Provider database (opened from config when omitted)
        """
        self.config = load_config(config_path)
        self.database = database or ProviderDatabase(self.config["database"]["path"])
        self.scorer = ConfidenceScorer(self.config["confidence"], self.config["freshness"])
        self.freshness = FreshnessEvaluator(self.config["freshness"])
        self.metrics_path = "data/metrics"

        logger.info("Initialized ReportingDashboard")

    def load_acceptance_records(self, npi: Optional[str] = None) -> pd.DataFrame:
        """Acceptance records joined with provider and plan details."""
        query = '''
            SELECT a.id, a.provider_npi, a.plan_id, a.acceptance_status, a.data_source,
                   a.confidence_score AS stored_score, a.verification_count,
                   a.last_verified, a.expires_at,
                   p.first_name, p.last_name, p.organization_name,
                   p.primary_specialty AS specialty, p.taxonomy_description,
                   ip.plan_name, ip.issuer_name
            FROM provider_plan_acceptance a
            LEFT JOIN providers p ON p.npi = a.provider_npi
            LEFT JOIN insurance_plans ip ON ip.plan_id = a.plan_id
        '''
        params = []
        if npi:
            query += " WHERE a.provider_npi = ?"
            params.append(npi)
        query += " ORDER BY a.id"
        return self.database.query_df(query, params)

    def attach_claim_tallies(self, records_df: pd.DataFrame, now: Optional[datetime] = None) -> pd.DataFrame:
        """
        Add upvotes/downvotes columns to acceptance records.

        Upvotes are the majority and downvotes the minority count of
        non-expired acceptance claims for each pair.
        """
        now = now or datetime.now()
        if records_df.empty:
            return records_df.assign(upvotes=pd.Series(dtype=int), downvotes=pd.Series(dtype=int))

        claims_df = self.database.query_df('''
            SELECT provider_npi, plan_id, new_value
            FROM verification_logs
            WHERE verification_type = ? AND (expires_at IS NULL OR expires_at > ?)
        ''', [PLAN_ACCEPTANCE, to_db_timestamp(now)])

        claims_df["claim"] = [
            (json.loads(value) if value else {}).get("acceptance_status")
            for value in claims_df["new_value"]
        ]
        claims_df = claims_df[claims_df["claim"].isin([ACCEPTED, NOT_ACCEPTED])]

        if claims_df.empty:
            return records_df.assign(upvotes=0, downvotes=0)

        tallies_df = (claims_df.groupby(["provider_npi", "plan_id", "claim"]).size()
                      .unstack(fill_value=0)
                      .reindex(columns=[ACCEPTED, NOT_ACCEPTED], fill_value=0))
        tallies_df = pd.DataFrame({
            "upvotes": tallies_df.max(axis=1),
            "downvotes": tallies_df.min(axis=1),
        }).reset_index()

        merged_df = records_df.merge(tallies_df, on=["provider_npi", "plan_id"], how="left")
        merged_df[["upvotes", "downvotes"]] = merged_df[["upvotes", "downvotes"]].fillna(0).astype(int)
        return merged_df

    def score_records(self, records_df: pd.DataFrame, now: Optional[datetime] = None) -> pd.DataFrame:
        """Score acceptance records as of `now` using their claim tallies."""
        now = now or datetime.now()
        return self.scorer.score_acceptance_records(self.attach_claim_tallies(records_df, now), now)

    def get_confidence_metrics(self, now: Optional[datetime] = None) -> Dict[str, any]:
        """
        Confidence and freshness distribution across all acceptance records.

        Returns:
            Scoring statistics plus stale record count and status distribution
        """
        scored_df = self.score_records(self.load_acceptance_records(), now)
        metrics = self.scorer.get_scoring_statistics(scored_df)

        if scored_df.empty:
            metrics.update({"stale_records": 0, "status_distribution": {}})
            return metrics

        metrics["stale_records"] = int((scored_df["freshness_level"] == STALE).sum())
        metrics["status_distribution"] = {
            status: int(count) for status, count in scored_df["acceptance_status"].value_counts().items()
        }
        return metrics

    def get_data_quality_metrics(self) -> Dict[str, any]:
        """
        Directory data-quality metrics.

        Returns:
            Dictionary with provider/location counts and coverage ratios
        """
        db = self.database
        total_locations = db.count("locations")
        total_practice = db.count("practice_locations")

        duplicate_groups = db.fetch_one('''
            SELECT COUNT(*) AS n FROM (
                SELECT 1 FROM practice_locations
                WHERE address_line1 IS NOT NULL
                GROUP BY npi, address_line1, city, state, zip_code
                HAVING COUNT(*) > 1
            )
        ''')["n"]

        named = db.count("locations", "name IS NOT NULL")
        labeled = db.count("locations", "health_system IS NOT NULL")
        hashed = db.count("practice_locations", "address_hash IS NOT NULL")

        return {
            "total_providers": db.count("providers"),
            "total_plans": db.count("insurance_plans"),
            "total_locations": total_locations,
            "named_location_rate": named / total_locations if total_locations else 0.0,
            "health_system_rate": labeled / total_locations if total_locations else 0.0,
            "total_practice_locations": total_practice,
            "hashed_practice_location_rate": hashed / total_practice if total_practice else 0.0,
            "duplicate_location_groups": int(duplicate_groups),
        }

    def render_overview_dashboard(self):
        """Render overview dashboard with key metrics."""
        st.title("VerifyMyProvider - Confidence Dashboard")
        st.markdown("Reliability of provider insurance acceptance data")

        metrics = self.get_confidence_metrics()
        if not metrics.get("total_records"):
            st.warning("No plan acceptance records available")
            return

        col1, col2, col3, col4 = st.columns(4)

        with col1:
            st.metric("Acceptance Records", metrics["total_records"])

        with col2:
            st.metric("Mean Confidence", f"{metrics['score_statistics']['mean_score']:.1f}")

        with col3:
            high = metrics["level_distribution"][VERY_HIGH] + metrics["level_distribution"][HIGH]
            st.metric("High Confidence", f"{high / metrics['total_records'] * 100:.1f}%")

        with col4:
            st.metric("Stale Records", metrics["stale_records"])

        st.subheader("Confidence Levels")
        levels_df = pd.DataFrame(
            [(LEVEL_LABELS[level], count) for level, count in metrics["level_distribution"].items()],
            columns=["Level", "Count"]
        )
        fig = px.bar(levels_df, x="Level", y="Count", color="Level",
                     color_discrete_sequence=list(LEVEL_COLORS.values()))
        st.plotly_chart(fig, use_container_width=True)

        if metrics.get("freshness_distribution"):
            st.subheader("Verification Freshness")
            freshness_df = pd.DataFrame(list(metrics["freshness_distribution"].items()),
                                        columns=["Freshness", "Count"])
            fig = px.pie(freshness_df, values="Count", names="Freshness",
                         color="Freshness", color_discrete_map=FRESHNESS_COLORS)
            st.plotly_chart(fig, use_container_width=True)

    def render_provider_lookup(self):
        """Render confidence badges and freshness warnings for one provider."""
        st.title("Provider Lookup")
        npi = st.text_input("Provider NPI")
        if not npi:
            return

        records_df = self.load_acceptance_records(npi.strip())
        if records_df.empty:
            st.info(f"No plan acceptance records for NPI {npi}")
            return

        now = datetime.now()
        for _, record in self.attach_claim_tallies(records_df, now).iterrows():
            last_verified = record["last_verified"]
            last_verified = from_db_timestamp(last_verified) if isinstance(last_verified, str) else None

            result = self.scorer.calculate(
                data_source=record["data_source"],
                last_verified_at=last_verified,
                verification_count=record["verification_count"],
                upvotes=record["upvotes"],
                downvotes=record["downvotes"],
                specialty=record["specialty"],
                taxonomy_description=record["taxonomy_description"],
                now=now,
            )
            badge = confidence_badge(result)

            st.subheader(f"{record['plan_name'] or record['plan_id']} ({record['acceptance_status']})")
            st.markdown(f"<span style='color:{badge['color']}'><b>{badge['text']}</b></span>",
                        unsafe_allow_html=True)
            st.caption(result["metadata"]["explanation"])

            warning = freshness_warning(self.freshness.evaluate(
                last_verified, record["specialty"], record["taxonomy_description"],
                provider_npi=record["provider_npi"], plan_id=record["plan_id"], now=now))
            if warning:
                show = st.error if warning["level"] == STALE else st.warning
                show(f"{warning['message']} {warning['detail']} [Verify now]({warning['verify_url']})")

            with st.expander("Score breakdown"):
                st.json(result["factors"])

    def render_data_quality_dashboard(self):
        """Render directory data-quality metrics."""
        st.title("Data Quality")
        quality = self.get_data_quality_metrics()

        col1, col2, col3 = st.columns(3)
        with col1:
            st.metric("Providers", quality["total_providers"])
            st.metric("Plans", quality["total_plans"])
        with col2:
            st.metric("Named Locations", f"{quality['named_location_rate'] * 100:.1f}%")
            st.metric("Health System Labels", f"{quality['health_system_rate'] * 100:.1f}%")
        with col3:
            st.metric("Hashed Addresses", f"{quality['hashed_practice_location_rate'] * 100:.1f}%")
            st.metric("Duplicate Location Groups", quality["duplicate_location_groups"])

    def export_metrics_report(self, format: str = "csv") -> str:
        """
        Export confidence and data-quality metrics.

        Args:
            format: Export format ('csv' or 'json')

        Returns:
            Path to exported file
        """
        Path(self.metrics_path).mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        report_data = {
            "export_timestamp": datetime.now().isoformat(),
            "confidence": self.get_confidence_metrics(),
            "data_quality": self.get_data_quality_metrics(),
        }

        if format == "json":
            filename = f"{self.metrics_path}/metrics_report_{timestamp}.json"
            with open(filename, 'w') as f:
                json.dump(report_data, f, indent=2, default=str)
        else:
            flat_data = []
            for category in ("confidence", "data_quality"):
                for metric, value in report_data[category].items():
                    if isinstance(value, dict):
                        for name, sub_value in value.items():
                            flat_data.append({"metric_category": category,
                                              "metric_name": f"{metric}.{name}", "value": sub_value})
                    else:
                        flat_data.append({"metric_category": category, "metric_name": metric,
                                          "value": value})

            filename = f"{self.metrics_path}/metrics_report_{timestamp}.csv"
            pd.DataFrame(flat_data).to_csv(filename, index=False)

        logger.info(f"Exported metrics report to {filename}")
        return filename


def run_reporting_dashboard():
    """Main function to run the Streamlit reporting dashboard."""
    st.set_page_config(
        page_title="VerifyMyProvider Dashboard",
        layout="wide"
    )

    dashboard = ReportingDashboard()

    st.sidebar.title("Navigation")
    page = st.sidebar.selectbox(
        "Select Dashboard",
        ["Overview", "Provider Lookup", "Data Quality"]
    )

    if page == "Overview":
        dashboard.render_overview_dashboard()
    elif page == "Provider Lookup":
        dashboard.render_provider_lookup()
    elif page == "Data Quality":
        dashboard.render_data_quality_dashboard()

    st.sidebar.markdown("---")
    st.sidebar.subheader("Export Reports")

    if st.sidebar.button("Export Metrics (CSV)"):
        filename = dashboard.export_metrics_report("csv")
        st.sidebar.success(f"Exported to {filename}")

    if st.sidebar.button("Export Metrics (JSON)"):
        filename = dashboard.export_metrics_report("json")
        st.sidebar.success(f"Exported to {filename}")


if __name__ == "__main__":
    run_reporting_dashboard()
