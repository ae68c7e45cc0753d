import pytest

from connectivity.errors import (
    ConfigurationError,
    TokenRefreshError,
    TransportError,
    TransportTimeout,
    ValidationError,
    classify_exception,
    classify_http_status,
    kind_for_status,
)
from connectivity.models import ErrorKind


@pytest.mark.parametrize("message, kind", [
    ("connect ETIMEDOUT 10.0.0.1:443", ErrorKind.TIMEOUT),
    ("getaddrinfo ENOTFOUND api.nowhere.test", ErrorKind.DNS_ERROR),
    ("[Errno -2] Name or service not known", ErrorKind.DNS_ERROR),
    ("connect ECONNREFUSED 127.0.0.1:9", ErrorKind.CONNECTION_REFUSED),
    ("[Errno 111] Connection refused", ErrorKind.CONNECTION_REFUSED),
    ("read ECONNRESET", ErrorKind.CONNECTION_RESET),
    ("Request failed with status code 401", ErrorKind.AUTHENTICATION),
    ("Request failed with status code 403", ErrorKind.AUTHORIZATION),
    ("Request failed with status code 404", ErrorKind.NOT_FOUND),
    ("Request failed with status code 502", ErrorKind.SERVER_ERROR),
])
def test_message_classification(message, kind):
    outcome = classify_exception(TransportError(message))
    assert outcome.success is False
    assert outcome.error.type == kind
    assert outcome.error.details == message


def test_digits_in_host_names_are_not_status_codes():
    outcome = classify_exception(TransportError("Request failed: Server disconnected while talking to api-500.example"))
    assert outcome.error.type == ErrorKind.UNKNOWN
    assert outcome.status_code is None


def test_timeout_exception_is_classified_by_type():
    outcome = classify_exception(TransportTimeout("Request timeout - Provider API did not respond in time"))
    assert outcome.error.type == ErrorKind.TIMEOUT
    assert outcome.message == "Connection timeout - Provider API did not respond in time"


def test_validation_keeps_raw_message():
    outcome = classify_exception(ValidationError("Missing required credentials: api_key", ["api_key"]))
    assert outcome.error.type == ErrorKind.VALIDATION
    assert outcome.message == "Missing required credentials: api_key"


def test_configuration_errors_are_unknown_with_raw_message():
    outcome = classify_exception(ConfigurationError("Auth type definition not found: magic"))
    assert outcome.error.type == ErrorKind.UNKNOWN
    assert outcome.message == "Auth type definition not found: magic"


def test_unrecognized_error_is_unknown():
    outcome = classify_exception(RuntimeError("something odd"))
    assert outcome.error.type == ErrorKind.UNKNOWN
    assert outcome.message == "something odd"


def test_refresh_failure_messages_are_prefixed():
    outcome = classify_exception(TokenRefreshError("Token refresh failed with status 401: bad", status_code=401))
    assert outcome.error.type == ErrorKind.AUTHENTICATION
    assert outcome.status_code == 401
    assert outcome.message == "Token refresh failed: Authentication failed - Invalid credentials"


def test_unclassified_refresh_failure_keeps_its_message():
    outcome = classify_exception(TokenRefreshError("Token refresh failed: No refresh token available"))
    assert outcome.error.type == ErrorKind.UNKNOWN
    assert outcome.message == "Token refresh failed: No refresh token available"


@pytest.mark.parametrize("status, kind", [
    (401, ErrorKind.AUTHENTICATION),
    (403, ErrorKind.AUTHORIZATION),
    (404, ErrorKind.NOT_FOUND),
    (500, ErrorKind.SERVER_ERROR),
    (503, ErrorKind.SERVER_ERROR),
    (418, ErrorKind.HTTP_ERROR),
])
def test_status_classification(status, kind):
    assert kind_for_status(status) == kind


def test_http_status_outcome_carries_status_and_truncated_body():
    outcome = classify_http_status(418, body="x" * 1000, response_time=12)
    assert outcome.status_code == 418
    assert outcome.response_time == 12
    assert outcome.message == "HTTP 418 error"
    assert len(outcome.error.response_body) == 500
