"""Progression & Integrity Engine: record store, XP ledger, achievements, integrity sweep."""

__version__ = "0.1.0"
