"""
Credence Sources - validation, normalization and reliability tiers.
"""
