"""Unit tests for the kernel error hierarchy and transient classification."""

from __future__ import annotations

import json

import pytest

from mp_eventbus.kernel.errors import (
    ApplicationError,
    BaseError,
    ConfigError,
    EventStoreError,
    InfrastructureError,
    InvalidSettingValueError,
    MappingError,
    MissingRequiredSettingError,
    PublishError,
    SerializationError,
    is_transient,
)


class TestBaseError:
    def test_default_code(self) -> None:
        assert BaseError("x").code == "base_error"

    def test_custom_code_and_detail(self) -> None:
        err = BaseError("x", code="custom", detail={"k": 1})
        assert err.to_dict() == {"code": "custom", "message": "x", "detail": {"k": 1}}

    def test_str_is_json(self) -> None:
        payload = json.loads(str(BaseError("boom")))
        assert payload["message"] == "boom"

    def test_cause_is_chained(self) -> None:
        cause = ValueError("inner")
        err = BaseError("outer", cause=cause)
        assert err.__cause__ is cause
        assert "inner" in err.to_dict()["cause"]


class TestInfrastructureErrors:
    def test_infrastructure_error_defaults_to_transient(self) -> None:
        assert InfrastructureError("io").transient is True

    def test_transient_override(self) -> None:
        assert PublishError("orders", transient=False).transient is False

    def test_to_dict_includes_transient(self) -> None:
        assert EventStoreError("save_event").to_dict()["transient"] is True

    def test_event_store_error_message(self) -> None:
        err = EventStoreError("mark_as_published")
        assert err.operation == "mark_as_published"
        assert "mark_as_published" in err.message

    def test_publish_error_default_destination(self) -> None:
        err = PublishError(None)
        assert err.destination is None
        assert "default" in err.message

    def test_serialization_error_is_permanent(self) -> None:
        err = SerializationError("bad json", payload_type="order.placed")
        assert err.transient is False
        assert err.payload_type == "order.placed"

    def test_mapping_error_is_permanent(self) -> None:
        err = MappingError("order.placed")
        assert err.transient is False
        assert err.code == "mapping_error"


class TestConfigErrors:
    def test_missing_setting(self) -> None:
        err = MissingRequiredSettingError("EVENTBUS_MODE")
        assert isinstance(err, ConfigError)
        assert err.setting_name == "EVENTBUS_MODE"

    def test_invalid_value(self) -> None:
        err = InvalidSettingValueError("batch_size", 0, "must be >= 1")
        assert isinstance(err, ApplicationError)
        assert "batch_size" in err.message
        assert err.reason == "must be >= 1"


class TestIsTransient:
    @pytest.mark.parametrize(
        "exc",
        [
            ConnectionResetError(),
            TimeoutError(),
            OSError("network unreachable"),
            PublishError("orders"),
            EventStoreError("get_unpublished_events", transient=True),
        ],
    )
    def test_transient(self, exc: Exception) -> None:
        assert is_transient(exc)

    @pytest.mark.parametrize(
        "exc",
        [
            ValueError("bad"),
            KeyError("k"),
            SerializationError("bad"),
            MappingError("x"),
            ConfigError("wiring"),
            PublishError("orders", transient=False),
        ],
    )
    def test_permanent(self, exc: Exception) -> None:
        assert not is_transient(exc)
