"""Sync bank transactions from an aggregator into budgeting ledgers."""

__version__ = "0.1.0"
