"""Whole-collection record store with versioned writes."""
