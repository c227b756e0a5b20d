"""Shared utilities for dirscope."""
