"""Ranking and placement engine for a local-services directory."""
