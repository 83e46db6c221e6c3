"""Diagnostics, redaction and generation audit logging."""
