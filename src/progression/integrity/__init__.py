"""Referential integrity sweep across collections."""
