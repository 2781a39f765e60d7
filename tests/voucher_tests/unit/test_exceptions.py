"""
Tests for the exception hierarchy and environment configuration.
"""

import pytest

from voucher.core import config
from voucher.core.exceptions import (
    AuthorizationError,
    ConfigurationError,
    InsufficientFundsError,
    NoOpError,
    NotFoundError,
    OutOfGasError,
    ResourceLimitError,
    ValidationError,
    VoucherError,
    get_error_context,
    is_recoverable_error,
)


class TestExceptionHierarchy:
    @pytest.mark.parametrize(
        "exc_class",
        [
            ValidationError,
            NotFoundError,
            ResourceLimitError,
            AuthorizationError,
            InsufficientFundsError,
            NoOpError,
            ConfigurationError,
        ],
    )
    def test_all_derive_from_base(self, exc_class):
        assert issubclass(exc_class, VoucherError)

    def test_out_of_gas_is_resource_limit(self):
        assert issubclass(OutOfGasError, ResourceLimitError)

    def test_message_and_details(self):
        error = ValidationError("bad schedule", details={"index": 3})
        assert str(error) == "bad schedule"
        assert error.message == "bad schedule"
        assert error.details == {"index": 3}

    def test_details_default_to_empty(self):
        assert NotFoundError("missing").details == {}


class TestRecoverability:
    def test_noop_is_recoverable(self):
        assert is_recoverable_error(NoOpError("nothing yet"))

    def test_validation_is_not_recoverable(self):
        assert not is_recoverable_error(ValidationError("bad"))

    def test_override_per_instance(self):
        assert is_recoverable_error(InsufficientFundsError("short", recoverable=True))
        assert NoOpError.recoverable

    def test_foreign_exceptions(self):
        assert not is_recoverable_error(ValueError("x"))


class TestErrorContext:
    def test_authorization_context(self):
        error = AuthorizationError.missing_capability("0x" + "a" * 40, "0x" + "b" * 64)
        context = get_error_context(error)

        assert context["error_type"] == "AuthorizationError"
        assert context["account"] == "0x" + "a" * 40
        assert context["capability"] == "0x" + "b" * 64
        assert context["recoverable"] is False

    def test_gas_context(self):
        context = get_error_context(OutOfGasError("out", used=12, limit=10, details={"op": "x"}))
        assert context["gas_used"] == 12
        assert context["gas_limit"] == 10
        assert context["details"] == {"op": "x"}

    def test_plain_exception(self):
        assert get_error_context(RuntimeError("boom")) == {
            "error_type": "RuntimeError",
            "error_message": "boom",
        }


class TestConfig:
    def test_defaults(self):
        assert config.MAX_SCHEDULES == 10
        assert config.LOG_LEVEL in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

    def test_get_int_reads_environment(self, monkeypatch):
        monkeypatch.setenv("VOUCHER_TEST_LIMIT", "1234")
        assert config._get_int("VOUCHER_TEST_LIMIT", 5) == 1234

    def test_get_int_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("VOUCHER_TEST_LIMIT", raising=False)
        assert config._get_int("VOUCHER_TEST_LIMIT", 5) == 5

    @pytest.mark.parametrize("raw", ["abc", "0", "-10"])
    def test_get_int_rejects_bad_values(self, monkeypatch, raw):
        monkeypatch.setenv("VOUCHER_TEST_LIMIT", raw)
        with pytest.raises(ConfigurationError, match="VOUCHER_TEST_LIMIT"):
            config._get_int("VOUCHER_TEST_LIMIT", 5)

    @pytest.mark.parametrize("raw,expected", [("true", True), ("0", False), ("ON", True), ("no", False)])
    def test_get_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("VOUCHER_TEST_FLAG", raw)
        assert config._get_bool("VOUCHER_TEST_FLAG", not expected) is expected

    def test_get_bool_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("VOUCHER_TEST_FLAG", "maybe")
        with pytest.raises(ConfigurationError):
            config._get_bool("VOUCHER_TEST_FLAG", True)
