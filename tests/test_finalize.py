"""Tests for cert_issuer.finalize."""

import logging
from unittest.mock import patch

import pytest
from acme import messages

from cert_issuer.certcrypto import KeyType, generate_private_key, make_csr
from cert_issuer.errors import CertificateTimeoutError, NetworkError, ProtocolError
from cert_issuer.finalize import POLL_TIMEOUT, Finalizer
from cert_issuer.models import Identifier, Order

_ORDER_URL = "https://ca.test/order/1"
_FINALIZE_URL = "https://ca.test/order/1/finalize"
_CERT_URL = "https://ca.test/cert/1"
_ISSUER_URL = "https://ca.test/issuer/1"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    fake = FakeClock()
    with patch("cert_issuer.finalize.time", fake):
        yield fake


@pytest.fixture
def chain(make_certificate, to_pem, to_der):
    leaf, _ = make_certificate("example.com", sans=["example.com"])
    issuer, _ = make_certificate("Test CA", ca=True)
    return {
        "leaf_pem": to_pem(leaf),
        "issuer_pem": to_pem(issuer),
        "issuer_der": to_der(issuer),
    }


def _order():
    return Order(
        url=_ORDER_URL,
        status="ready",
        identifiers=(Identifier("example.com"),),
        authorizations=("https://ca.test/authz/1",),
        finalize=_FINALIZE_URL,
        domains=("example.com",),
    )


def _order_body(status, certificate=None, error=None):
    body = {
        "status": status,
        "identifiers": [{"type": "dns", "value": "example.com"}],
        "authorizations": ["https://ca.test/authz/1"],
        "finalize": _FINALIZE_URL,
    }
    if certificate:
        body["certificate"] = certificate
    if error:
        body["error"] = error
    return body


def _csr():
    return make_csr(generate_private_key(KeyType.EC256), "example.com", ["example.com"])


_UP_LINK = {"Link": f'<{_ISSUER_URL}>;rel="up"'}


def test_immediately_valid_order_bundles_issuer(clock, fake_transport, chain):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("valid", _CERT_URL)))
    fake_transport.add(_CERT_URL, (_UP_LINK, chain["leaf_pem"]))
    fake_transport.add(_ISSUER_URL, ({}, chain["issuer_der"]))

    resource = Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True, private_key_pem=b"KEY")

    assert resource.domain == "example.com"
    assert resource.certificate == chain["leaf_pem"] + chain["issuer_pem"]
    assert resource.issuer_certificate == chain["issuer_pem"]
    assert resource.cert_url == _CERT_URL
    assert resource.cert_stable_url == _CERT_URL
    assert resource.private_key == b"KEY"
    assert clock.now == 0
    assert isinstance(fake_transport.calls[0][2], messages.CertificateRequest)


def test_unbundled_certificate_keeps_issuer_separately(clock, fake_transport, chain):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("valid", _CERT_URL)))
    fake_transport.add(_CERT_URL, (_UP_LINK, chain["leaf_pem"]))
    fake_transport.add(_ISSUER_URL, ({}, chain["issuer_pem"]))

    resource = Finalizer(fake_transport).finalize(_order(), _csr(), bundle=False)

    assert resource.certificate == chain["leaf_pem"]
    assert resource.issuer_certificate == chain["issuer_pem"]


@pytest.mark.parametrize("bundle", [True, False])
def test_inline_chain_is_split(clock, fake_transport, chain, bundle):
    full_chain = chain["leaf_pem"] + chain["issuer_pem"]
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("valid", _CERT_URL)))
    fake_transport.add(_CERT_URL, ({}, full_chain))

    resource = Finalizer(fake_transport).finalize(_order(), _csr(), bundle=bundle)

    assert resource.issuer_certificate == chain["issuer_pem"]
    assert resource.certificate == (full_chain if bundle else chain["leaf_pem"])


def test_issuer_fetch_failure_still_returns_certificate(clock, fake_transport, chain, caplog):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("valid", _CERT_URL)))
    fake_transport.add(_CERT_URL, (_UP_LINK, chain["leaf_pem"]))
    fake_transport.add(_ISSUER_URL, NetworkError("reset"))

    with caplog.at_level(logging.WARNING, logger="cert_issuer.finalize"):
        resource = Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)

    assert resource.certificate == chain["leaf_pem"]
    assert resource.issuer_certificate is None
    assert "Could not bundle issuer certificate" in caplog.text


def test_polls_until_valid(clock, fake_transport, chain):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("processing")))
    fake_transport.add(
        _ORDER_URL,
        ({}, _order_body("processing")),
        ({}, _order_body("processing")),
        ({}, _order_body("valid", _CERT_URL)),
    )
    fake_transport.add(_CERT_URL, ({}, chain["leaf_pem"]))

    resource = Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)

    assert resource.certificate == chain["leaf_pem"]
    assert fake_transport.urls("get").count(_ORDER_URL) == 3
    assert clock.now <= 2


def test_unknown_status_keeps_polling(clock, fake_transport, chain):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("ready")))
    fake_transport.add(_ORDER_URL, ({}, _order_body("ready")), ({}, _order_body("valid", _CERT_URL)))
    fake_transport.add(_CERT_URL, ({}, chain["leaf_pem"]))

    resource = Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)

    assert resource.certificate == chain["leaf_pem"]


def test_unrecognized_status_keeps_polling(clock, fake_transport, chain):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("queued")))
    fake_transport.add(_ORDER_URL, ({}, _order_body("queued")), ({}, _order_body("valid", _CERT_URL)))
    fake_transport.add(_CERT_URL, ({}, chain["leaf_pem"]))

    resource = Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)

    assert resource.certificate == chain["leaf_pem"]
    assert fake_transport.urls("get").count(_ORDER_URL) == 2


def test_times_out_after_poll_timeout(clock, fake_transport):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("processing")))
    fake_transport.add(_ORDER_URL, ({}, _order_body("processing")))

    with pytest.raises(CertificateTimeoutError, match="certificate polling timed out"):
        Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)

    assert clock.now == pytest.approx(POLL_TIMEOUT)


def test_invalid_after_finalize_fails_without_polling(clock, fake_transport):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("invalid", error={"detail": "CAA forbids issuance"})))

    with pytest.raises(ProtocolError, match="CAA forbids issuance"):
        Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)

    assert fake_transport.urls("get") == []


def test_invalid_while_polling(clock, fake_transport):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("processing")))
    fake_transport.add(_ORDER_URL, ({}, _order_body("invalid")))

    with pytest.raises(ProtocolError, match="order has invalid state"):
        Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)


def test_valid_order_without_certificate_url(clock, fake_transport):
    fake_transport.add(_FINALIZE_URL, ({}, _order_body("valid")))

    with pytest.raises(ProtocolError, match="no certificate URL"):
        Finalizer(fake_transport).finalize(_order(), _csr(), bundle=True)


def test_get_issuer_certificate_accepts_pem(fake_transport, chain):
    fake_transport.add(_ISSUER_URL, ({}, chain["issuer_pem"]))

    assert Finalizer(fake_transport).get_issuer_certificate(_ISSUER_URL) == chain["issuer_pem"]
