"""
Confidence scoring and freshness evaluation for VerifyMyProvider.
"""
