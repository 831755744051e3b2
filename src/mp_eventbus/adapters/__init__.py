"""Adapters – one EventStore per storage backend plus broker MessagePublishers.

Each sub-package imports its driver lazily; install the matching extra.
"""
