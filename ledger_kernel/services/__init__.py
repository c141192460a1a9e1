"""Kernel services: flush-only writers that share the caller's transaction."""
