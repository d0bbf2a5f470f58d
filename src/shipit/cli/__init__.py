"""Command-line interface for shipit."""
