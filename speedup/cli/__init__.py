"""Command-line interface for speedup."""
