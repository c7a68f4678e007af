"""TLS-ALPN-01 (RFC 8737): answer an "acme-tls/1" handshake with a self-signed proof certificate."""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime, timedelta
from typing import Any

import josepy
from acme import challenges
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cert_issuer.challenges.base import ProviderSolver

TLSALPN01 = "tls-alpn-01"

ACME_TLS_PROTOCOL = "acme-tls/1"

# id-pe-acmeIdentifier
ID_PE_ACME_IDENTIFIER = x509.ObjectIdentifier("1.3.6.1.5.5.7.1.31")


def tls_alpn01_certificate(domain: str, key_authorization: str) -> tuple[bytes, bytes]:
    """Build the proof certificate for ``domain``. Returns ``(cert_pem, key_pem)``.

    The acmeIdentifier extension holds the SHA-256 digest of the key
    authorization as a DER OCTET STRING and must be critical.
    """
    digest = hashlib.sha256(key_authorization.encode()).digest()
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ACME challenge")])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(hours=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False)
        .add_extension(
            x509.UnrecognizedExtension(ID_PE_ACME_IDENTIFIER, b"\x04\x20" + digest),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert.public_bytes(serialization.Encoding.PEM), key_pem


class TLSALPN01Response(challenges.KeyAuthorizationChallengeResponse):
    typ = TLSALPN01


@challenges.Challenge.register
class TLSALPN01Challenge(challenges.KeyAuthorizationChallenge):
    """Decodes "tls-alpn-01" entries of an authorization into a token challenge.

    Current ``acme`` releases do not ship this type.
    """

    response_cls = TLSALPN01Response
    typ = response_cls.typ

    def validation(self, account_key: josepy.JWK, **kwargs: Any) -> tuple[bytes, bytes]:
        """Proof certificate and key for ``kwargs["domain"]``, as PEM."""
        return tls_alpn01_certificate(kwargs["domain"], self.key_authorization(account_key))


class TLSALPN01Solver(ProviderSolver):
    challenge_type = TLSALPN01
