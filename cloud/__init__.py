"""Household recipe service."""
