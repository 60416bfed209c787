"""
Reporting dashboard for VerifyMyProvider.
"""
