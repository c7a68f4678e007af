"""Exception types raised by the issuance engine."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cert_issuer.models import Authorization


class IssuanceError(Exception):
    """Base class for all errors raised by cert_issuer."""


class NetworkError(IssuanceError):
    """The CA could not be reached."""


class ProtocolError(IssuanceError):
    """The CA sent something the engine cannot act on."""


class ChallengeError(ProtocolError):
    """A challenge was marked invalid by the CA."""

    def __init__(self, domain: str, problem: Mapping | None = None) -> None:
        self.domain = domain
        self.problem = dict(problem or {})
        super().__init__(self._describe())

    def _describe(self) -> str:
        detail = self.problem.get("detail")
        problem_type = self.problem.get("type")
        if detail and problem_type:
            return f"[{self.domain}] challenge invalid: {problem_type} :: {detail}"
        if detail or problem_type:
            return f"[{self.domain}] challenge invalid: {detail or problem_type}"
        return f"[{self.domain}] challenge invalid"


class CertificateTimeoutError(IssuanceError):
    """The order did not reach a final state before the polling deadline."""


class RemoteError(IssuanceError):
    """Non-2xx response from the CA.

    ``problem_type`` is the RFC 7807 problem ``type`` URN when the CA sent a
    problem document. ``location`` is only populated for 409 Conflict
    responses, where it points at the conflicting resource.
    """

    def __init__(
        self,
        status_code: int | None,
        problem_type: str | None = None,
        detail: str | None = None,
        location: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.problem_type = problem_type
        self.detail = detail
        self.location = location
        super().__init__(f"acme: error {status_code} :: {problem_type or 'unknown'} :: {detail or ''}".rstrip(" :"))


class ObtainError(IssuanceError):
    """Per-domain failures of a certificate request.

    ``failures`` is keyed by domain, or by authorization URL when the
    authorization itself could not be fetched. ``authorizations`` holds
    the authorizations that were fetched before the request failed.

    Never construct one with an empty mapping; use :meth:`from_failures`,
    which returns ``None`` when nothing failed.
    """

    def __init__(
        self,
        failures: Mapping[str, BaseException],
        authorizations: list[Authorization] | None = None,
    ) -> None:
        if not failures:
            raise ValueError("ObtainError requires at least one failed domain")
        self.failures = dict(failures)
        self.authorizations = list(authorizations or [])
        super().__init__(str(self))

    @classmethod
    def from_failures(
        cls,
        failures: Mapping[str, BaseException],
        authorizations: list[Authorization] | None = None,
    ) -> ObtainError | None:
        if not failures:
            return None
        return cls(failures, authorizations=authorizations)

    @property
    def domains(self) -> list[str]:
        return list(self.failures)

    def __str__(self) -> str:
        lines = ["acme: Error -> One or more domains had a problem:"]
        lines.extend(f"[{domain}] {error}" for domain, error in self.failures.items())
        return "\n".join(lines)
