"""Timed assessment attempt engine for the test-prep marketplace."""

__version__ = "1.0.0"
