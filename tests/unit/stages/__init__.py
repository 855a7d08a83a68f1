"""Unit tests for the pipeline stages."""
