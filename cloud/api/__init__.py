"""HTTP API for the household recipe service."""
