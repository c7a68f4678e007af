"""Key, CSR and certificate helpers built on cryptography."""

from __future__ import annotations

from enum import Enum

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes
from cryptography.x509.oid import NameOID

from cert_issuer.errors import ProtocolError

PrivateKey = CertificateIssuerPrivateKeyTypes


class KeyType(str, Enum):
    """Certificate key types, named the way operators usually write them."""

    EC256 = "P256"
    EC384 = "P384"
    RSA2048 = "2048"
    RSA4096 = "4096"
    RSA8192 = "8192"


def generate_private_key(key_type: KeyType) -> PrivateKey:
    if key_type == KeyType.EC256:
        return ec.generate_private_key(ec.SECP256R1())
    if key_type == KeyType.EC384:
        return ec.generate_private_key(ec.SECP384R1())
    if key_type in (KeyType.RSA2048, KeyType.RSA4096, KeyType.RSA8192):
        return rsa.generate_private_key(public_exponent=65537, key_size=int(key_type.value))
    raise ValueError(f"Invalid KeyType: {key_type}")


def pem_encode_private_key(key: PrivateKey) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


def load_private_key(key_pem: bytes) -> PrivateKey:
    return serialization.load_pem_private_key(key_pem, password=None)


def make_csr(private_key: PrivateKey, common_name: str, san: list[str], must_staple: bool = False) -> bytes:
    """Build a DER CSR for ``common_name`` plus ``san``.

    ``must_staple`` adds the TLS Feature extension requesting OCSP stapling
    (RFC 7633).
    """
    builder = x509.CertificateSigningRequestBuilder().subject_name(
        x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    )
    if san:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in san]),
            critical=False,
        )
    if must_staple:
        builder = builder.add_extension(
            x509.TLSFeature([x509.TLSFeatureType.status_request]),
            critical=False,
        )
    csr = builder.sign(private_key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.DER)


def pem_encode_csr(csr: x509.CertificateSigningRequest) -> bytes:
    return csr.public_bytes(serialization.Encoding.PEM)


def load_csr(csr_data: bytes) -> x509.CertificateSigningRequest:
    """Load a CSR from PEM or DER."""
    if b"-----BEGIN" in csr_data:
        return x509.load_pem_x509_csr(csr_data)
    return x509.load_der_x509_csr(csr_data)


def der_to_pem_certificate(der: bytes) -> bytes:
    """Re-encode a DER certificate as PEM. Raises ValueError if ``der`` is not a certificate."""
    return x509.load_der_x509_certificate(der).public_bytes(serialization.Encoding.PEM)


def parse_pem_bundle(bundle: bytes) -> list[x509.Certificate]:
    """Decode every certificate in a PEM bundle, leaf first."""
    try:
        certificates = x509.load_pem_x509_certificates(bundle)
    except ValueError as error:
        raise ProtocolError(f"Invalid PEM certificate bundle: {error}") from error
    if not certificates:
        raise ProtocolError("No certificates were found while parsing the bundle")
    return certificates


def split_pem_bundle(bundle: bytes) -> tuple[bytes, bytes | None]:
    """Split a PEM chain into ``(leaf, rest)``; ``rest`` is None when the chain has one entry."""
    leaf, *chain = parse_pem_bundle(bundle)
    rest = b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in chain)
    return leaf.public_bytes(serialization.Encoding.PEM), rest or None


def is_ca_certificate(certificate: x509.Certificate) -> bool:
    try:
        constraints = certificate.extensions.get_extension_for_class(x509.BasicConstraints)
    except x509.ExtensionNotFound:
        return False
    return constraints.value.ca


def _common_name(name: x509.Name) -> str | None:
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(attributes[0].value) if attributes else None


def _dns_names(extensions: x509.Extensions) -> list[str]:
    try:
        san = extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return san.value.get_values_for_type(x509.DNSName)


def domains_from_csr(csr: x509.CertificateSigningRequest) -> list[str]:
    """Common name first, then every SAN DNS name not already listed."""
    domains: list[str] = []
    common_name = _common_name(csr.subject)
    if common_name:
        domains.append(common_name)
    for name in _dns_names(csr.extensions):
        if name not in domains:
            domains.append(name)
    return domains


def domains_from_certificate(certificate: x509.Certificate) -> list[str]:
    """Domains to request when renewing ``certificate``.

    SANs are only consulted for multi-name certificates; a single-SAN
    certificate renews under its common name alone.
    """
    common_name = _common_name(certificate.subject)
    dns_names = _dns_names(certificate.extensions)
    if not common_name:
        return list(dict.fromkeys(dns_names))
    domains = [common_name]
    if len(dns_names) > 1:
        domains.extend(name for name in dns_names if name != common_name)
    return domains
