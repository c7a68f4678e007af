"""HTTP-01: serve the key authorization under /.well-known/acme-challenge/."""

from __future__ import annotations

import logging

from acme import challenges

from cert_issuer.challenges.base import ProviderSolver
from cert_issuer.errors import ProtocolError
from cert_issuer.models import Challenge

logger = logging.getLogger(__name__)

HTTP01 = "http-01"


def http01_challenge_path(challenge: Challenge) -> str:
    """URL path the CA will fetch for ``challenge``."""
    if not isinstance(challenge.chall, challenges.HTTP01):
        raise ProtocolError(f"{challenge.type} challenge at {challenge.url} is not an HTTP-01 challenge")
    return challenge.chall.path


class HTTP01Solver(ProviderSolver):
    challenge_type = HTTP01

    def solve(self, challenge: Challenge, domain: str) -> None:
        logger.debug("[%s] acme: Key authorization will be served at %s", domain, http01_challenge_path(challenge))
        super().solve(challenge, domain)
