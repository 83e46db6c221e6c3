"""Structured generation: repair, recovery layers and retry."""
