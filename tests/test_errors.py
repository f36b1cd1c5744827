"""Tests for perch.errors — exception hierarchy and normalization."""

import pytest

from perch.errors import (
    ConfigurationError,
    DuplicateHandlerError,
    HandlerError,
    HTTPError,
    MethodNotAllowed,
    MethodNotImplemented,
    NotFound,
    PerchError,
    RouteRegistrationError,
    TimeoutExceeded,
    TooManyRequests,
)


class TestHierarchy:
    def test_http_error_is_perch_error(self) -> None:
        assert issubclass(HTTPError, PerchError)

    def test_not_found_is_http_error(self) -> None:
        assert issubclass(NotFound, HTTPError)

    def test_duplicate_handler_is_configuration_error(self) -> None:
        assert issubclass(DuplicateHandlerError, ConfigurationError)

    def test_route_registration_error_is_not_fatal_configuration(self) -> None:
        assert issubclass(RouteRegistrationError, PerchError)
        assert not issubclass(RouteRegistrationError, ConfigurationError)


class TestHTTPError:
    def test_status_and_detail(self) -> None:
        err = HTTPError(status=400, detail="Bad request body")
        assert err.status == 400
        assert err.detail == "Bad request body"

    def test_str_with_detail(self) -> None:
        assert str(HTTPError(status=400, detail="Bad request body")) == "400: Bad request body"

    def test_str_without_detail(self) -> None:
        assert str(HTTPError(status=500)) == "500"

    def test_message_falls_back_to_status(self) -> None:
        assert HTTPError(status=418).message == "Error 418"

    def test_frozen(self) -> None:
        err = HTTPError(status=400)
        with pytest.raises(AttributeError):
            err.status = 500  # type: ignore[misc]


class TestStatusErrors:
    def test_not_found(self) -> None:
        err = NotFound()
        assert err.status == 404
        assert err.message == "Not Found"

    def test_method_not_allowed_sets_allow_header(self) -> None:
        err = MethodNotAllowed(frozenset({"POST", "GET"}))
        assert err.status == 405
        assert err.headers == (("Allow", "GET, POST"),)

    def test_method_not_allowed_without_methods_has_no_header(self) -> None:
        assert MethodNotAllowed().headers == ()

    def test_method_not_implemented(self) -> None:
        err = MethodNotImplemented("BREW")
        assert err.status == 501
        assert "BREW" in err.detail

    def test_too_many_requests_retry_after(self) -> None:
        err = TooManyRequests(retry_after=3)
        assert err.status == 429
        assert err.headers == (("Retry-After", "3"),)

    def test_timeout_exceeded(self) -> None:
        assert TimeoutExceeded().status == 504

    def test_catchable_as_http_error(self) -> None:
        with pytest.raises(HTTPError):
            raise NotFound()


class TestHandlerErrorWrap:
    def test_http_error_passes_through(self) -> None:
        err = NotFound()
        assert HandlerError.wrap(err) is err

    def test_plain_exception_becomes_500(self) -> None:
        original = ValueError("boom")
        err = HandlerError.wrap(original)
        assert err.status == 500
        assert err.detail == "boom"
        assert err.__cause__ is original

    def test_status_attribute_is_respected(self) -> None:
        class Unauthorized(Exception):
            status = 401

        assert HandlerError.wrap(Unauthorized("no")).status == 401

    def test_out_of_range_status_is_ignored(self) -> None:
        class Weird(Exception):
            status = 200

        assert HandlerError.wrap(Weird()).status == 500

    def test_empty_message_gets_default_detail(self) -> None:
        assert HandlerError.wrap(RuntimeError()).message == "Internal Server Error"
