"""Shared test fixtures for acme-cert-issuer."""

import datetime
import threading

import josepy
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from cert_issuer.transport import SigningTransport


class FakeTransport(SigningTransport):
    """Scripted CA: each URL answers from a queue of ``(headers, body)`` or exceptions.

    The last queued response for a URL is repeated once the others are used up.
    """

    def __init__(self, key=None):
        self.key = key
        self.account_uri = None
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, url, *responses):
        self.routes.setdefault(url, []).extend(responses)

    def _respond(self, method, url, payload):
        with self._lock:
            self.calls.append((method, url, payload))
            queue = self.routes[url]
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, payload):
        return self._respond("post", url, payload)

    def post_as_get(self, url):
        return self._respond("get", url, None)

    def urls(self, method=None):
        return [url for m, url, _ in self.calls if method is None or m == method]


@pytest.fixture(scope="session")
def account_key():
    return josepy.JWKRSA(key=rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture
def fake_transport(account_key):
    return FakeTransport(key=account_key)


def _make_certificate(common_name="example.com", sans=(), ca=False, key=None):
    key = key or ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.UTC)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=90))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if sans:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in sans]),
            critical=False,
        )
    cert = builder.sign(key, hashes.SHA256())
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert, key_pem


@pytest.fixture
def make_certificate():
    """Factory returning ``(x509.Certificate, key_pem)`` for a self-signed certificate."""
    return _make_certificate


def pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def der(cert):
    return cert.public_bytes(serialization.Encoding.DER)


@pytest.fixture
def to_pem():
    return pem


@pytest.fixture
def to_der():
    return der
