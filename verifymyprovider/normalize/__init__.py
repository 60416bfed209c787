"""
Data normalization modules for VerifyMyProvider.

Handles standardization of addresses and organization names so that
locations and facilities can be matched across data sources.
"""
