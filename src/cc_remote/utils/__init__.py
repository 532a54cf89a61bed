"""Shared utilities for cc-remote."""
