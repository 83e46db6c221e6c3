"""Resilience layer for structured output from generative-AI providers."""

__version__ = "0.1.0"
