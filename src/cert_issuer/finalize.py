"""Order finalization, certificate polling and issuer bundling."""

from __future__ import annotations

import logging
import time

from acme import messages
from cryptography import x509

from cert_issuer.certcrypto import der_to_pem_certificate, split_pem_bundle
from cert_issuer.errors import CertificateTimeoutError, IssuanceError, ProtocolError
from cert_issuer.models import STATUS_INVALID, STATUS_PROCESSING, STATUS_VALID, CertificateResource, Order
from cert_issuer.transport import SigningTransport, parse_links

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5
POLL_TIMEOUT = 30


def _as_bytes(body: object, url: str) -> bytes:
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode()
    raise ProtocolError(f"Expected a certificate at {url}, got {type(body).__name__}")


def _join_pem(first: bytes, second: bytes) -> bytes:
    if not first.endswith(b"\n"):
        first += b"\n"
    return first + second


class Finalizer:
    """Submits the CSR and waits for the CA to issue.

    The poll is bounded by ``poll_timeout`` seconds, checked every
    ``poll_interval`` seconds; this is the only bounded wait in the engine.
    """

    def __init__(
        self,
        transport: SigningTransport,
        poll_interval: float = POLL_INTERVAL,
        poll_timeout: float = POLL_TIMEOUT,
    ) -> None:
        self._transport = transport
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout

    def finalize(
        self,
        order: Order,
        csr_der: bytes,
        bundle: bool,
        private_key_pem: bytes | None = None,
    ) -> CertificateResource:
        csr = x509.load_der_x509_csr(csr_der)
        _headers, body = self._transport.post(order.finalize, messages.CertificateRequest(csr=csr))
        current = self._refresh(order, body)

        if current.status == STATUS_INVALID:
            raise ProtocolError(_invalid_message(current))

        cert_res = CertificateResource(
            domain=order.common_name,
            cert_url=current.certificate,
            private_key=private_key_pem,
        )

        # The certificate may be available right away
        if current.status == STATUS_VALID and self.check_cert_response(current, cert_res, bundle):
            return cert_res

        deadline = time.monotonic() + self.poll_timeout
        while True:
            time.sleep(self.poll_interval)
            if time.monotonic() >= deadline:
                raise CertificateTimeoutError(f"[{order.common_name}] certificate polling timed out")

            _headers, body = self._transport.post_as_get(order.url)
            current = self._refresh(order, body)
            logger.debug("[%s] Order %s is %s", order.common_name, order.url, current.status)
            if self.check_cert_response(current, cert_res, bundle):
                return cert_res

    @staticmethod
    def _refresh(order: Order, body: object) -> Order:
        if not isinstance(body, dict):
            raise ProtocolError(f"Order {order.url} is not a JSON object")
        return Order.from_json(order.url, body, domains=order.domains)

    def check_cert_response(self, order: Order, cert_res: CertificateResource, bundle: bool) -> bool:
        """Load the certificate into ``cert_res`` if the order is valid.

        Returns False while the order is still in progress (including states
        this client does not know about) and raises on ``invalid``.
        """
        if order.status == STATUS_VALID:
            if not order.certificate:
                raise ProtocolError(f"Order {order.url} is valid but has no certificate URL")
            headers, body = self._transport.post_as_get(order.certificate)
            cert = _as_bytes(body, order.certificate)

            up = parse_links(headers).get("up")
            if up:
                try:
                    issuer = self.get_issuer_certificate(up)
                except (IssuanceError, ValueError) as error:
                    # Issuer bundling failures are not fatal
                    logger.warning("[%s] acme: Could not bundle issuer certificate: %s", cert_res.domain, error)
                else:
                    if bundle:
                        cert = _join_pem(cert, issuer)
                    cert_res.issuer_certificate = issuer
            else:
                # Chain delivered inline (application/pem-certificate-chain)
                leaf, rest = split_pem_bundle(cert)
                if rest:
                    cert_res.issuer_certificate = rest
                    if not bundle:
                        cert = leaf

            cert_res.certificate = cert
            cert_res.cert_url = order.certificate
            cert_res.cert_stable_url = order.certificate
            logger.info("[%s] Server responded with a certificate.", cert_res.domain)
            return True

        if order.status == STATUS_PROCESSING:
            return False
        if order.status == STATUS_INVALID:
            raise ProtocolError(_invalid_message(order))
        return False

    def get_issuer_certificate(self, url: str) -> bytes:
        """Fetch the issuer certificate at ``url`` and return it as PEM."""
        logger.info("acme: Requesting issuer cert from %s", url)
        _headers, body = self._transport.post_as_get(url)
        issuer = _as_bytes(body, url)
        if issuer.lstrip().startswith(b"-----BEGIN"):
            x509.load_pem_x509_certificate(issuer)
            return issuer
        return der_to_pem_certificate(issuer)


def _invalid_message(order: Order) -> str:
    message = "order has invalid state: invalid"
    if order.error is not None and order.error.detail:
        message += f" ({order.error.detail})"
    return message
