import asyncio

import pytest

from twr_engine.core.enums import ErrorCategory, ErrorLevel
from twr_engine.core.errors import (
    BaseError,
    NetworkError,
    PartialFetchError,
    ServiceError,
    TransportError,
    ValidationError,
    error_handler,
    get_error_class,
)


def test_to_dict():
    error = NetworkError("timeout", context={"account_id": "a"}, status=None)
    data = error.to_dict()

    assert data["message"] == "timeout"
    assert data["context"] == {"account_id": "a"}
    assert data["category"] == ErrorCategory.NETWORK.value
    assert data["level"] == ErrorLevel.HIGH.value
    assert data["error_type"] == "NetworkError"


def test_from_exception_keeps_parent():
    original = KeyError("equity")
    error = ValidationError.from_exception(original, context={"field": "equity"})

    assert error.parent is original
    assert error.traceback is not None
    assert error.context == {"field": "equity"}


def test_partial_fetch_error_lists_accounts():
    error = PartialFetchError("1 of 2 accounts unavailable", succeeded=["a"], failed=["b"])
    assert error.context["failed"] == ["b"]
    assert error.result is None


def test_get_error_class():
    assert get_error_class(ErrorCategory.NETWORK) is NetworkError
    assert get_error_class(ErrorCategory.BROKER) is TransportError


class TestErrorHandler:
    def test_wraps_foreign_exceptions(self):
        @error_handler(context_extractor=lambda value: {"value": value})
        def divide(value):
            return 1 / value

        with pytest.raises(ServiceError) as excinfo:
            divide(0)
        error = excinfo.value
        assert error.context["value"] == 0
        assert isinstance(error.parent, ZeroDivisionError)
        assert isinstance(error.__cause__, ZeroDivisionError)

    def test_reraises_engine_errors_with_context(self):
        original = NetworkError("down")

        @error_handler(context_extractor=lambda account_id: {"account_id": account_id})
        async def fetch(account_id):
            raise original

        with pytest.raises(NetworkError) as excinfo:
            asyncio.run(fetch("acc"))
        assert excinfo.value is original
        assert original.context["account_id"] == "acc"

    def test_custom_error_class(self):
        @error_handler(error_class=ValidationError)
        def parse():
            raise ValueError("bad")

        with pytest.raises(ValidationError):
            parse()

    def test_extractor_failure_is_recorded(self):
        @error_handler(context_extractor=lambda payload: {"id": payload["id"]})
        def handle(payload):
            raise RuntimeError("boom")

        with pytest.raises(BaseError) as excinfo:
            handle({})
        assert "context_extraction_error" in excinfo.value.context

    def test_cancellation_passes_through(self):
        @error_handler()
        async def slow():
            await asyncio.sleep(10)

        async def run():
            task = asyncio.create_task(slow())
            await asyncio.sleep(0)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(run())

    def test_success_returns_value(self):
        @error_handler()
        async def ok():
            return 42

        assert asyncio.run(ok()) == 42
