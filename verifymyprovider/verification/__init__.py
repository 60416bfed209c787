"""
Verification submission, voting and expiry handling.
"""
