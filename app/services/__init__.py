"""Reconciliation services backing the flixsync client."""
