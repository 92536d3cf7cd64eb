# backend/modules/loyalty/__init__.py

"""
Loyalty points ledger and per-business program settings.
"""
