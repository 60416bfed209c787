"""
Organization name normalization for VerifyMyProvider.

Cleans provider organization names and picks the best display name for a
location from the names of the providers practicing there.
"""

import re
import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_FACILITY_KEYWORDS = [
    "hospital", "medical center", "medical centre", "clinic", "health center",
    "health centre", "healthcare", "health system", "health services",
    "physicians", "medical group", "medical associates", "surgery center",
    "surgical center", "urgent care", "emergency", "rehabilitation",
    "rehab center", "nursing", "care center", "wellness", "pediatric",
    "orthopedic", "cardiology", "oncology", "radiology", "imaging",
    "laboratory", "diagnostics", "specialty", "family medicine",
    "internal medicine", "primary care",
]

# Names that look like an individual rather than a facility
EXCLUDE_PATTERNS = [
    re.compile(r"^dr\.?\s", re.IGNORECASE),
    re.compile(r"^doctor\s", re.IGNORECASE),
    re.compile(r",\s*(md|do|phd|np|pa|rn)\b", re.IGNORECASE),
    re.compile(r"^\d", re.IGNORECASE),
    re.compile(r"^[a-z]\s", re.IGNORECASE),
]

HIGH = "high"
MEDIUM = "medium"
LOW = "low"


class NameNormalizer:
    """
    Normalizes organization names for location enrichment.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize name normalizer with configuration.

        Args:
            config: Enrichment configuration (facility_keywords)
        """
        config = config or {}
        self.config = config
        self.facility_keywords = [
            keyword.lower() for keyword in config.get("facility_keywords", DEFAULT_FACILITY_KEYWORDS)
        ]

        self.quote_pattern = re.compile(r"[‘’“”]")
        self.whitespace_pattern = re.compile(r"\s+")

        logger.debug("Initialized NameNormalizer")

    def normalize_name(self, name: str) -> str:
        """
        Normalize an organization name.

        Args:
            name: Raw organization name

        Returns:
            Trimmed name with collapsed whitespace and straight quotes
        """
        if not isinstance(name, str) or pd.isna(name):
            return ""

        name = self.whitespace_pattern.sub(" ", name.strip())

        def _straighten(match):
            return "'" if match.group(0) in "‘’" else '"'

        return self.quote_pattern.sub(_straighten, name)

    def is_excluded(self, name: str) -> bool:
        """True for names that look like a person or are not usable."""
        if not name:
            return True
        return any(pattern.search(name) for pattern in EXCLUDE_PATTERNS)

    def is_facility_name(self, name: str) -> bool:
        """True when the name contains a facility keyword."""
        lowered = (name or "").lower()
        return any(keyword in lowered for keyword in self.facility_keywords)

    def rank_names(self, names: Iterable[str]) -> List[Dict]:
        """
        Count cleaned candidate names and rank them.

        Facility-like names rank first, then by provider count.

        Args:
            names: Raw organization names, one per provider

        Returns:
            List of {"name", "count", "is_facility"} dictionaries
        """
        counts = Counter()
        for raw_name in names:
            name = self.normalize_name(raw_name)
            if name and not self.is_excluded(name):
                counts[name] += 1

        ranked = [
            {"name": name, "count": count, "is_facility": self.is_facility_name(name)}
            for name, count in counts.items()
        ]
        ranked.sort(key=lambda item: (not item["is_facility"], -item["count"]))
        return ranked

    @staticmethod
    def determine_confidence(count: int, total: int, is_facility: bool) -> str:
        """
        Confidence in a chosen location name.

        Args:
            count: Providers using the chosen name
            total: Providers with an organization name at the location
            is_facility: Whether the chosen name looks like a facility

        Returns:
            "high", "medium" or "low"
        """
        dominance = count / total if total else 0.0

        if count >= 5 and dominance >= 0.7 and is_facility:
            return HIGH
        if (count >= 3 and dominance >= 0.5) or is_facility:
            return MEDIUM
        return LOW

    def select_best_name(self, names: Iterable[str], min_providers: int = 1) -> Optional[Dict]:
        """
        Pick the display name for a location.

        Args:
            names: Raw organization names of the providers at the location
            min_providers: Minimum providers that must share the winning name

        Returns:
            Dictionary with name, count, total, is_facility and confidence,
            or None when no name qualifies
        """
        names = [name for name in names if self.normalize_name(name)]
        ranked = self.rank_names(names)
        if not ranked:
            return None

        best = ranked[0]
        if best["count"] < min_providers:
            return None

        total = len(names)
        return {
            **best,
            "total": total,
            "confidence": self.determine_confidence(best["count"], total, best["is_facility"]),
        }


def provider_display_name(entity_type: Optional[str], first_name: Optional[str],
                          last_name: Optional[str], credential: Optional[str] = None,
                          organization_name: Optional[str] = None) -> str:
    """
    Display name for a provider.

    Organizations (entity type "2" or "ORGANIZATION") use the organization
    name; individuals use "First Last, Credential".
    """
    def _clean(value) -> str:
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            return ""
        return str(value).strip()

    if str(entity_type).upper() in ("2", "ORGANIZATION") or \
            (not _clean(first_name) and not _clean(last_name)):
        return _clean(organization_name) or "Unknown Org"

    name = " ".join(part for part in (_clean(first_name), _clean(last_name)) if part)
    credential = _clean(credential)
    return f"{name}, {credential}" if credential else name
