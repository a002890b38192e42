"""Statutory recovery case ledger: allocation and reconciliation service."""

__version__ = "0.1.0"
