"""Helpers shared by background worker processes."""
