"""Integration tests running the full pipeline with fake tools."""
