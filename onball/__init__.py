"""
onball
Statistics reconciliation and reversible activity ledger for informal sports leagues.
"""
__version__ = "1.0.0"
