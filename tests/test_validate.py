"""Tests for cert_issuer.challenges.validate."""

from unittest.mock import patch

import pytest

from cert_issuer.challenges.validate import DEFAULT_RETRY_AFTER, validate
from cert_issuer.errors import ChallengeError, NetworkError, ProtocolError
from cert_issuer.transport import JSONPayload

_CHALLENGE = "https://ca.test/chall/1"


@patch("cert_issuer.challenges.validate.time")
def test_valid_on_trigger_returns_immediately(mock_time, fake_transport):
    fake_transport.add(_CHALLENGE, ({}, {"status": "valid"}))

    validate(fake_transport, "example.com", _CHALLENGE)

    method, _url, payload = fake_transport.calls[0]
    assert method == "post"
    assert isinstance(payload, JSONPayload)
    assert payload.to_partial_json() == {}
    assert len(fake_transport.calls) == 1
    mock_time.sleep.assert_not_called()


@patch("cert_issuer.challenges.validate.time")
def test_polls_honouring_retry_after(mock_time, fake_transport):
    fake_transport.add(
        _CHALLENGE,
        ({"Retry-After": "3"}, {"status": "pending"}),
        ({"Retry-After": "1"}, {"status": "processing"}),
        ({}, {"status": "valid"}),
    )

    validate(fake_transport, "example.com", _CHALLENGE)

    assert [c.args[0] for c in mock_time.sleep.call_args_list] == [3, 1]
    assert [m for m, _u, _p in fake_transport.calls] == ["post", "get", "get"]


@pytest.mark.parametrize("retry_after", [None, "soon", "-4"])
@patch("cert_issuer.challenges.validate.time")
def test_falls_back_to_default_retry_after(mock_time, retry_after, fake_transport):
    headers = {"Retry-After": retry_after} if retry_after is not None else {}
    fake_transport.add(_CHALLENGE, (headers, {"status": "pending"}), ({}, {"status": "valid"}))

    validate(fake_transport, "example.com", _CHALLENGE)

    mock_time.sleep.assert_called_once_with(DEFAULT_RETRY_AFTER)


@patch("cert_issuer.challenges.validate.time")
def test_invalid_raises_challenge_error_with_problem(mock_time, fake_transport):
    fake_transport.add(
        _CHALLENGE,
        ({}, {"status": "pending"}),
        ({}, {"status": "invalid", "error": {"type": "urn:ietf:params:acme:error:dns", "detail": "NXDOMAIN"}}),
    )

    with pytest.raises(ChallengeError, match="NXDOMAIN") as exc_info:
        validate(fake_transport, "example.com", _CHALLENGE)

    assert exc_info.value.domain == "example.com"
    assert exc_info.value.problem["type"] == "urn:ietf:params:acme:error:dns"


@patch("cert_issuer.challenges.validate.time")
def test_unexpected_status_raises_protocol_error(mock_time, fake_transport):
    fake_transport.add(_CHALLENGE, ({}, {"status": "deactivated"}))

    with pytest.raises(ProtocolError, match="unexpected state"):
        validate(fake_transport, "example.com", _CHALLENGE)


@patch("cert_issuer.challenges.validate.time")
def test_transport_errors_propagate(mock_time, fake_transport):
    fake_transport.add(_CHALLENGE, ({}, {"status": "pending"}), NetworkError("reset"))

    with pytest.raises(NetworkError):
        validate(fake_transport, "example.com", _CHALLENGE)
