"""Kernel – event model, ports and value types (no I/O)."""
