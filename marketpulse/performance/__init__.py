"""Composite health scoring, bottleneck detection and performance trends."""
