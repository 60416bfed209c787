"""
VerifyMyProvider - Healthcare Provider Directory Data Services

Confidence scoring and freshness evaluation for provider insurance-plan
acceptance records, verification bookkeeping, and offline maintenance
scripts for deduplicating and enriching provider locations.
"""

__version__ = "1.0.0"
__author__ = "VerifyMyProvider Team"
