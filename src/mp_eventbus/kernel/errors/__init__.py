"""Kernel error hierarchy – public re-export surface.

Hierarchy::

    BaseError
    ├── ApplicationError        (application.py)
    │   └── ConfigError
    │       ├── MissingRequiredSettingError
    │       └── InvalidSettingValueError
    └── InfrastructureError     (infrastructure.py, carries ``transient``)
        ├── EventStoreError
        ├── PublishError
        ├── SerializationError  (always permanent)
        └── MappingError        (always permanent)
"""

from mp_eventbus.kernel.errors.application import (
    ApplicationError,
    ConfigError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)
from mp_eventbus.kernel.errors.base import BaseError
from mp_eventbus.kernel.errors.infrastructure import (
    EventStoreError,
    InfrastructureError,
    MappingError,
    PublishError,
    SerializationError,
    is_transient,
)

__all__ = [
    "ApplicationError",
    "BaseError",
    "ConfigError",
    "EventStoreError",
    "InfrastructureError",
    "InvalidSettingValueError",
    "MappingError",
    "MissingRequiredSettingError",
    "PublishError",
    "SerializationError",
    "is_transient",
]
