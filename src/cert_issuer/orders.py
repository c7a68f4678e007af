"""Order creation."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from acme import messages

from cert_issuer.errors import ProtocolError
from cert_issuer.models import Directory, Order
from cert_issuer.transport import SigningTransport, get_header

logger = logging.getLogger(__name__)


def dedupe_domains(domains: Iterable[str]) -> list[str]:
    """Drop repeated names, keeping first-seen order. Comparison is exact (case-sensitive)."""
    seen: set[str] = set()
    result: list[str] = []
    for domain in domains:
        if domain in seen:
            continue
        seen.add(domain)
        result.append(domain)
    return result


def create_order(transport: SigningTransport, directory: Directory, domains: Iterable[str]) -> Order:
    """Open a new order for ``domains``; the first domain becomes the common name."""
    names = dedupe_domains(domains)
    if not names:
        raise ValueError("No domains to obtain a certificate for")

    new_order = messages.NewOrder(
        identifiers=[messages.Identifier(typ=messages.IDENTIFIER_FQDN, value=name) for name in names]
    )
    headers, body = transport.post(directory.new_order_url, new_order)
    if not isinstance(body, dict):
        raise ProtocolError("New order response is not a JSON object")

    order = Order.from_json(get_header(headers, "Location") or "", body, domains=tuple(names))
    logger.info("Created ACME order %s for %s", order.url, names)
    return order
