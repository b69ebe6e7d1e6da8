"""
Core modules for Cost Ledger.

This package contains reconciliation of collected costs into the ledger,
collection status tracking, anomaly detection and reporting.
"""
