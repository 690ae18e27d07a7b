"""Neighborhood ledger: utility billing, payment allocation and balance reconciliation."""

__version__ = "0.1.0"
