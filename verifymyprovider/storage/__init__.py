"""
Relational storage for VerifyMyProvider.
"""
