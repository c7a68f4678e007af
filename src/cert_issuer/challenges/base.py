"""Solver and provider interfaces.

A solver only has to implement :class:`Solver`. Solvers that can provision
proof material for several challenges before any of them is validated also
implement :class:`PreSolver`; solvers that leave material behind after
validation implement :class:`CleanUp`. The coordinator checks for the two
optional capabilities with ``isinstance`` at runtime.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Self

import josepy
from acme import challenges

from cert_issuer.challenges.validate import validate
from cert_issuer.errors import ProtocolError
from cert_issuer.models import Challenge
from cert_issuer.transport import SigningTransport

logger = logging.getLogger(__name__)

ValidateFunc = Callable[[SigningTransport, str, str], None]


def key_authorization(challenge: Challenge, account_key: josepy.JWK) -> str:
    """Key authorization for a token-based challenge (RFC 8555 §8.1)."""
    if not isinstance(challenge.chall, challenges.KeyAuthorizationChallenge):
        raise ProtocolError(f"{challenge.type} challenge at {challenge.url} has no token to authorize")
    return challenge.chall.key_authorization(account_key)


class ChallengeProvider(ABC):
    """Publishes and withdraws the proof for a challenge (web root, DNS zone, TLS listener...)."""

    def close(self) -> None:
        """Release resources. Override in subclasses that hold open connections."""

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @abstractmethod
    def present(self, domain: str, token: str, key_authorization: str) -> None:
        """Make the proof for ``domain`` reachable by the CA."""

    @abstractmethod
    def cleanup(self, domain: str, token: str, key_authorization: str) -> None:
        """Remove whatever :meth:`present` created."""


class Solver(ABC):
    @abstractmethod
    def solve(self, challenge: Challenge, domain: str) -> None:
        """Perform the proof action and have the CA validate it."""


class PreSolver(ABC):
    @abstractmethod
    def pre_solve(self, challenge: Challenge, domain: str) -> None:
        """Provision proof material ahead of validation."""


class CleanUp(ABC):
    @abstractmethod
    def clean_up(self, challenge: Challenge, domain: str) -> None:
        """Release proof material once validation is over."""


class ProviderSolver(Solver):
    """Presents, validates and cleans up within a single :meth:`solve` call."""

    challenge_type: str = ""

    def __init__(
        self,
        transport: SigningTransport,
        provider: ChallengeProvider,
        validate: ValidateFunc = validate,
    ) -> None:
        self._transport = transport
        self.provider = provider
        self._validate = validate

    def solve(self, challenge: Challenge, domain: str) -> None:
        logger.info("[%s] acme: Trying to solve %s", domain, self.challenge_type)
        key_auth = key_authorization(challenge, self._transport.key)
        self.provider.present(domain, challenge.token, key_auth)
        try:
            self._validate(self._transport, domain, challenge.url)
        finally:
            try:
                self.provider.cleanup(domain, challenge.token, key_auth)
            except Exception as error:
                logger.warning("[%s] acme: Error cleaning up %s: %s", domain, self.challenge_type, error)
