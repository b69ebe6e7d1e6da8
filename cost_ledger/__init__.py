"""
Cost Ledger.

Aggregates daily cost reports from billing sources into one deduplicated
ledger and flags cost spikes.
"""

__version__ = "0.1.0"
