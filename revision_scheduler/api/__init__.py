"""HTTP API for the revision scheduler."""
