"""The user-facing ACME client: obtain, renew and revoke certificates."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from acme import messages
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from cert_issuer.account import AccountManager
from cert_issuer.authorizations import fetch_authorizations
from cert_issuer.certcrypto import (
    KeyType,
    PrivateKey,
    domains_from_certificate,
    domains_from_csr,
    generate_private_key,
    is_ca_certificate,
    load_csr,
    load_private_key,
    make_csr,
    parse_pem_bundle,
    pem_encode_csr,
    pem_encode_private_key,
)
from cert_issuer.challenges.base import ChallengeProvider, Solver
from cert_issuer.challenges.dns.base import DnsProvider
from cert_issuer.challenges.dns01 import DNS01, DNS01Solver
from cert_issuer.challenges.http01 import HTTP01, HTTP01Solver
from cert_issuer.challenges.tlsalpn01 import TLSALPN01, TLSALPN01Solver
from cert_issuer.directory import resolve_directory
from cert_issuer.errors import IssuanceError, ObtainError, ProtocolError
from cert_issuer.finalize import Finalizer
from cert_issuer.models import Account, CertificateResource, Order, RegistrationResource
from cert_issuer.orders import create_order
from cert_issuer.solve import solve_authorizations
from cert_issuer.transport import USER_AGENT, AcmeTransport, SigningTransport

logger = logging.getLogger(__name__)


class Client:
    """Obtains certificates from one ACME directory on behalf of one account.

    A client owns its signing transport (account URL and replay nonces), so
    one instance must not drive several issuance flows concurrently.
    """

    def __init__(
        self,
        directory_url: str,
        account: Account,
        key_type: KeyType = KeyType.RSA2048,
        *,
        transport: SigningTransport | None = None,
        user_agent: str = USER_AGENT,
        _http_client=None,
    ) -> None:
        if account.key is None:
            raise ValueError("Account private key is required")

        self.directory = resolve_directory(directory_url, _http_client=_http_client)
        self.account = account
        self.key_type = key_type
        self._transport = transport or AcmeTransport(
            account.key,
            self.directory.new_nonce_url,
            user_agent=user_agent,
        )
        if account.registration is not None:
            self._transport.account_uri = account.registration.uri

        self._accounts = AccountManager(self._transport, self.directory, account)
        self._finalizer = Finalizer(self._transport)
        self.solvers: dict[str, Solver] = {}

    # --- directory metadata ---

    @property
    def tos_url(self) -> str | None:
        return self.directory.terms_of_service

    @property
    def external_account_required(self) -> bool:
        return self.directory.external_account_required

    # --- solvers ---

    def register_provider(
        self,
        challenge_type: str,
        provider: ChallengeProvider | DnsProvider,
        propagation_delay: float = 0,
    ) -> None:
        """Solve ``challenge_type`` challenges with ``provider``.

        ``propagation_delay`` only applies to dns-01: seconds to wait after
        the records are published before asking the CA to look.
        """
        if isinstance(provider, DnsProvider) and challenge_type != DNS01:
            raise ValueError(f"{type(provider).__name__} can only solve {DNS01} challenges")
        if challenge_type == HTTP01:
            self.solvers[challenge_type] = HTTP01Solver(self._transport, provider)
        elif challenge_type == DNS01:
            self.solvers[challenge_type] = DNS01Solver(
                self._transport, provider, propagation_delay=propagation_delay
            )
        elif challenge_type == TLSALPN01:
            self.solvers[challenge_type] = TLSALPN01Solver(self._transport, provider)
        else:
            raise ValueError(f"Unknown challenge {challenge_type}")

    def register_solver(self, challenge_type: str, solver: Solver) -> None:
        """Install a custom solver strategy for ``challenge_type``."""
        self.solvers[challenge_type] = solver

    def exclude_challenges(self, challenge_types: Iterable[str]) -> None:
        for challenge_type in challenge_types:
            self.solvers.pop(challenge_type, None)

    # --- account ---

    def register(self, tos_agreed: bool) -> RegistrationResource:
        return self._accounts.register(tos_agreed)

    def register_with_external_binding(self, tos_agreed: bool, kid: str, hmac_encoded: str) -> RegistrationResource:
        return self._accounts.register_with_external_binding(tos_agreed, kid, hmac_encoded)

    def resolve_account_by_key(self) -> RegistrationResource:
        return self._accounts.resolve_by_key()

    def query_registration(self) -> RegistrationResource:
        return self._accounts.query()

    def delete_registration(self) -> None:
        self._accounts.deactivate()

    # --- certificates ---

    def obtain_certificate(
        self,
        domains: Iterable[str],
        bundle: bool = True,
        private_key: PrivateKey | None = None,
        must_staple: bool = False,
    ) -> CertificateResource:
        """Obtain one certificate for all ``domains``; the first is the common name.

        A new private key of ``key_type`` is generated unless ``private_key``
        is given. Never returns a certificate covering only some domains:
        any failure raises :class:`ObtainError`.
        """
        domains = list(domains)
        if not domains:
            raise ValueError("No domains to obtain a certificate for")
        logger.info("[%s] acme: Obtaining %sSAN certificate", ", ".join(domains), "bundled " if bundle else "")

        order = self._authorize(domains)

        if private_key is None:
            private_key = generate_private_key(self.key_type)
        csr_der = make_csr(private_key, order.common_name, list(order.domains), must_staple=must_staple)
        return self._finalize(order, csr_der, bundle, pem_encode_private_key(private_key))

    def obtain_certificate_for_csr(
        self,
        csr: x509.CertificateSigningRequest | bytes,
        bundle: bool = True,
    ) -> CertificateResource:
        """Obtain a certificate for an existing CSR (PEM, DER or loaded).

        Domains come from the CSR's common name and SANs. The CSR's private
        key is not needed and is not returned.
        """
        if isinstance(csr, bytes):
            csr = load_csr(csr)
        domains = domains_from_csr(csr)
        if not domains:
            raise ValueError("CSR names no domains")
        logger.info(
            "[%s] acme: Obtaining %sSAN certificate given a CSR", ", ".join(domains), "bundled " if bundle else ""
        )

        order = self._authorize(domains)
        cert = self._finalize(order, csr.public_bytes(serialization.Encoding.DER), bundle, None)
        # Keep the CSR so renewals can reuse it unchanged
        cert.csr = pem_encode_csr(csr)
        return cert

    def _authorize(self, domains: list[str]) -> Order:
        order = create_order(self._transport, self.directory, domains)
        # Do not go on to issue a partial SAN certificate if any of these fail
        authorizations = fetch_authorizations(self._transport, order)
        solve_authorizations(authorizations, self.solvers)
        logger.info("[%s] acme: Validations succeeded; requesting certificates", ", ".join(order.domains))
        return order

    def _finalize(self, order: Order, csr_der: bytes, bundle: bool, private_key_pem: bytes | None) -> CertificateResource:
        try:
            return self._finalizer.finalize(order, csr_der, bundle, private_key_pem=private_key_pem)
        except IssuanceError as error:
            raise ObtainError({domain: error for domain in order.domains}) from error

    def renew_certificate(
        self,
        resource: CertificateResource,
        bundle: bool = True,
        must_staple: bool = False,
    ) -> CertificateResource:
        """Request a fresh certificate replacing ``resource``.

        Reuses the stored CSR when there is one; otherwise the domains are
        read back from the certificate and ``resource.private_key`` (if any)
        is reused.
        """
        certificates = parse_pem_bundle(resource.certificate or b"")
        leaf = certificates[0]
        if is_ca_certificate(leaf):
            raise ProtocolError(f"[{resource.domain}] Certificate bundle starts with a CA certificate")

        time_left = leaf.not_valid_after_utc - datetime.now(UTC)
        logger.info(
            "[%s] acme: Trying renewal with %d hours remaining", resource.domain, time_left.total_seconds() // 3600
        )

        if resource.csr:
            return self.obtain_certificate_for_csr(load_csr(resource.csr), bundle)

        private_key = load_private_key(resource.private_key) if resource.private_key else None
        return self.obtain_certificate(domains_from_certificate(leaf), bundle, private_key, must_staple)

    def revoke_certificate(self, certificate: bytes, reason: int = 0) -> None:
        """Revoke the leaf of a PEM certificate or bundle.

        ``reason`` is an RFC 5280 CRLReason code; 0 is "unspecified".
        """
        certificates = parse_pem_bundle(certificate)
        leaf = certificates[0]
        if is_ca_certificate(leaf):
            raise ProtocolError("Certificate bundle starts with a CA certificate")
        if not self.directory.revoke_cert_url:
            raise ProtocolError("Directory missing revoke certificate URL")

        self._transport.post(self.directory.revoke_cert_url, messages.Revocation(certificate=leaf, reason=reason))
        logger.info("Revoked certificate with serial %x", leaf.serial_number)
