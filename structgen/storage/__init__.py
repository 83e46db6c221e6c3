"""Audit sinks and checkpoint stores."""
