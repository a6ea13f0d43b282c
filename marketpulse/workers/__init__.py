"""Supervised periodic monitoring loops."""
