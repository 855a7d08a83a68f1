"""Tests for genomepolisher."""
