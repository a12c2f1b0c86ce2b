"""CLI layer for conti."""
