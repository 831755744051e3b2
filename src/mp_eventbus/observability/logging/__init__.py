"""Observability – structured logging helpers (structlog)."""
from mp_eventbus.observability.logging.factory import JsonLoggerFactory
from mp_eventbus.observability.logging.filters import DEFAULT_SENSITIVE_FIELDS, SensitiveFieldsFilter
from mp_eventbus.observability.logging.processors import get_logger

__all__ = ["DEFAULT_SENSITIVE_FIELDS", "JsonLoggerFactory", "SensitiveFieldsFilter", "get_logger"]
