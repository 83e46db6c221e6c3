"""Batch orchestration."""
