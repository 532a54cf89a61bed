"""Command line interface for cc-remote."""
