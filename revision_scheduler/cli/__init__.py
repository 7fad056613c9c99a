"""Command-line interface for the revision scheduler."""
