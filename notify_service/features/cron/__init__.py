"""Periodic job triggers."""
