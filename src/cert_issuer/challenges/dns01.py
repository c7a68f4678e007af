"""DNS-01: publish a TXT record at _acme-challenge.<domain>."""

from __future__ import annotations

import logging
import time

import josepy
from acme import challenges

from cert_issuer.challenges.base import (
    ChallengeProvider,
    CleanUp,
    PreSolver,
    Solver,
    ValidateFunc,
    key_authorization,
)
from cert_issuer.challenges.dns.base import DnsProvider
from cert_issuer.challenges.validate import validate
from cert_issuer.errors import ProtocolError
from cert_issuer.models import Challenge
from cert_issuer.transport import SigningTransport

logger = logging.getLogger(__name__)

DNS01 = "dns-01"


def dns01_record(challenge: Challenge, domain: str, account_key: josepy.JWK) -> tuple[str, str]:
    """Return ``(fqdn, value)`` of the TXT record proving ``domain``.

    Wildcard domains are proven under their base domain (RFC 8555 §8.4).
    """
    chall = challenge.chall
    if not isinstance(chall, challenges.DNS01):
        raise ProtocolError(f"{challenge.type} challenge at {challenge.url} is not a DNS-01 challenge")
    return chall.validation_domain_name(domain.removeprefix("*.")), chall.validation(account_key)


class DNS01Solver(Solver, PreSolver, CleanUp):
    """Records are created for every domain first, then validated, then removed.

    ``provider`` is either a :class:`DnsProvider`, which is handed the
    finished TXT record, or a generic :class:`ChallengeProvider`, which is
    handed the key authorization.
    """

    def __init__(
        self,
        transport: SigningTransport,
        provider: DnsProvider | ChallengeProvider,
        validate: ValidateFunc = validate,
        propagation_delay: float = 0,
    ) -> None:
        self._transport = transport
        self.provider = provider
        self._validate = validate
        self.propagation_delay = propagation_delay
        self._propagated = False

    def pre_solve(self, challenge: Challenge, domain: str) -> None:
        logger.info("[%s] acme: Preparing to solve DNS-01", domain)
        if isinstance(self.provider, DnsProvider):
            self.provider.create_txt_record(*dns01_record(challenge, domain, self._transport.key))
        else:
            self.provider.present(domain, challenge.token, key_authorization(challenge, self._transport.key))
        self._propagated = False

    def solve(self, challenge: Challenge, domain: str) -> None:
        if self.propagation_delay and not self._propagated:
            # One wait covers every record presented in the pre-solve pass
            logger.info("[%s] acme: Waiting %ss for DNS propagation", domain, self.propagation_delay)
            time.sleep(self.propagation_delay)
            self._propagated = True
        logger.info("[%s] acme: Trying to solve DNS-01", domain)
        self._validate(self._transport, domain, challenge.url)

    def clean_up(self, challenge: Challenge, domain: str) -> None:
        if isinstance(self.provider, DnsProvider):
            self.provider.delete_txt_record(*dns01_record(challenge, domain, self._transport.key))
        else:
            self.provider.cleanup(domain, challenge.token, key_authorization(challenge, self._transport.key))
