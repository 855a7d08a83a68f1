"""Unit tests for the pipeline core."""
