"""
Offline maintenance scripts for VerifyMyProvider.

Every script is a dry run unless invoked with --apply.
"""
