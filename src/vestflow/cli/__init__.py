"""Command-line interface for vestflow."""
