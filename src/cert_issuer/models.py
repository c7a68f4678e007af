"""Resources exchanged with the CA and returned to callers.

Inbound documents are decoded with :mod:`acme.messages` and flattened into
the frozen dataclasses below; decoding failures surface as
:class:`~cert_issuer.errors.ProtocolError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import josepy
from acme import challenges, messages

from cert_issuer.errors import ProtocolError

if TYPE_CHECKING:
    from cert_issuer.challenges.base import Solver

STATUS_PENDING = "pending"
STATUS_READY = "ready"
STATUS_PROCESSING = "processing"
STATUS_VALID = "valid"
STATUS_INVALID = "invalid"
STATUS_DEACTIVATED = "deactivated"
STATUS_UNKNOWN = messages.STATUS_UNKNOWN.name

IDENTIFIER_DNS = messages.IDENTIFIER_FQDN.name


def _decode(message_cls: type[josepy.JSONDeSerializable], data: Any, kind: str) -> Any:
    if not isinstance(data, dict):
        raise ProtocolError(f"{kind} is not a JSON object")
    try:
        return message_cls.from_json(data)
    except (josepy.DeserializationError, TypeError) as error:
        raise ProtocolError(f"Malformed {kind}: {error}") from error


def _require(value: Any, key: str, kind: str) -> Any:
    if value is None:
        raise ProtocolError(f"{kind} is missing required field '{key}'")
    return value


def _directory_entry(directory: messages.Directory, name: str) -> str | None:
    try:
        return directory[name]
    except KeyError:
        return None


@dataclass(frozen=True)
class Directory:
    """CA service directory, fetched once per client."""

    new_account_url: str
    new_order_url: str
    new_nonce_url: str | None = None
    revoke_cert_url: str | None = None
    key_change_url: str | None = None
    terms_of_service: str | None = None
    external_account_required: bool = False

    @classmethod
    def from_json(cls, data: Any) -> Directory:
        # messages.Directory.from_json replaces "meta" in the mapping it is given
        directory = _decode(messages.Directory, dict(data) if isinstance(data, dict) else data, "Directory document")
        new_account_url = _directory_entry(directory, "newAccount")
        if not new_account_url:
            raise ProtocolError("Directory missing new registration URL")
        new_order_url = _directory_entry(directory, "newOrder")
        if not new_order_url:
            raise ProtocolError("Directory missing new order URL")
        return cls(
            new_account_url=new_account_url,
            new_order_url=new_order_url,
            new_nonce_url=_directory_entry(directory, "newNonce"),
            revoke_cert_url=_directory_entry(directory, "revokeCert"),
            key_change_url=_directory_entry(directory, "keyChange"),
            terms_of_service=directory.meta.terms_of_service,
            external_account_required=bool(directory.meta.external_account_required),
        )


@dataclass(frozen=True)
class RegistrationResource:
    """Account URI plus the account object the CA returned."""

    uri: str
    body: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"uri": self.uri, "body": dict(self.body)}

    @classmethod
    def from_dict(cls, data: dict) -> RegistrationResource:
        return cls(uri=data["uri"], body=dict(data.get("body", {})))


@dataclass
class Account:
    """Caller identity. The key is owned by the caller and never generated here."""

    email: str
    key: josepy.JWK
    registration: RegistrationResource | None = None


@dataclass(frozen=True)
class Identifier:
    value: str
    type: str = IDENTIFIER_DNS

    @classmethod
    def from_message(cls, identifier: messages.Identifier) -> Identifier:
        return cls(value=identifier.value, type=identifier.typ.name)

    @classmethod
    def from_json(cls, data: dict) -> Identifier:
        return cls.from_message(_decode(messages.Identifier, data, "identifier"))


@dataclass(frozen=True)
class Challenge:
    """One challenge offered in an authorization.

    ``chall`` is the decoded :mod:`acme.challenges` object; it computes the
    key authorization and the type-specific validation values.
    """

    type: str
    url: str
    token: str | None = None
    status: str = STATUS_PENDING
    error: messages.Error | None = None
    chall: challenges.Challenge | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_body(cls, challb: messages.ChallengeBody) -> Challenge:
        # Unrecognized challenge types keep their raw JSON, recognized ones re-encode their fields
        jobj = challb.chall.to_partial_json()
        return cls(
            type=jobj["type"],
            url=_require(challb.uri, "url", "challenge"),
            token=jobj.get("token"),
            status=challb.status.name,
            error=challb.error,
            chall=challb.chall,
        )

    @classmethod
    def from_json(cls, data: dict) -> Challenge:
        return cls.from_body(_decode(messages.ChallengeBody, data, "challenge"))


@dataclass(frozen=True)
class Authorization:
    """Proof-of-control record for a single identifier."""

    url: str
    identifier: Identifier
    status: str
    challenges: tuple[Challenge, ...] = ()
    wildcard: bool = False

    @property
    def domain(self) -> str:
        # The CA strips "*." from wildcard identifiers and sets the wildcard flag instead
        if self.wildcard:
            return f"*.{self.identifier.value}"
        return self.identifier.value

    @classmethod
    def from_json(cls, url: str, data: dict) -> Authorization:
        authz = _decode(messages.Authorization, data, "authorization")
        return cls(
            url=url,
            identifier=Identifier.from_message(_require(authz.identifier, "identifier", "authorization")),
            status=_require(authz.status, "status", "authorization").name,
            challenges=tuple(Challenge.from_body(challb) for challb in authz.challenges or ()),
            wildcard=bool(authz.wildcard),
        )


@dataclass(frozen=True)
class Order:
    """A CA-tracked request for a certificate.

    ``domains`` is the caller's deduplicated domain list; ``domains[0]`` is
    the common name. The CA may reorder ``identifiers``.
    """

    url: str
    status: str
    identifiers: tuple[Identifier, ...]
    authorizations: tuple[str, ...]
    finalize: str
    domains: tuple[str, ...] = ()
    certificate: str | None = None
    error: messages.Error | None = None

    @property
    def common_name(self) -> str:
        return self.domains[0]

    @classmethod
    def from_json(cls, url: str, data: dict, domains: tuple[str, ...] = ()) -> Order:
        if isinstance(data, dict) and isinstance(data.get("status"), str):
            if data["status"] not in messages.Status.POSSIBLE_NAMES:
                # A status this client does not know is treated as still in progress
                data = {**data, "status": STATUS_UNKNOWN}
        order = _decode(messages.Order, data, "order")
        return cls(
            url=url,
            status=_require(order.status, "status", "order").name,
            identifiers=tuple(Identifier.from_message(i) for i in order.identifiers or ()),
            authorizations=tuple(order.authorizations or ()),
            finalize=_require(order.finalize, "finalize", "order"),
            domains=tuple(domains),
            certificate=order.certificate,
            error=order.error,
        )


@dataclass(frozen=True)
class SelectedAuthSolver:
    """An authorization paired with the challenge index and solver picked for it."""

    authorization: Authorization
    challenge_index: int
    solver: Solver

    @property
    def domain(self) -> str:
        return self.authorization.domain

    @property
    def challenge(self) -> Challenge:
        return self.authorization.challenges[self.challenge_index]


@dataclass
class CertificateResource:
    """An issued certificate and the material needed to renew it."""

    domain: str
    cert_url: str | None = None
    cert_stable_url: str | None = None
    certificate: bytes | None = None
    issuer_certificate: bytes | None = None
    private_key: bytes | None = None
    csr: bytes | None = None

    def to_dict(self) -> dict:
        def _text(value: bytes | None) -> str | None:
            return value.decode() if value is not None else None

        return {
            "domain": self.domain,
            "cert_url": self.cert_url,
            "cert_stable_url": self.cert_stable_url,
            "certificate": _text(self.certificate),
            "issuer_certificate": _text(self.issuer_certificate),
            "private_key": _text(self.private_key),
            "csr": _text(self.csr),
        }

    @classmethod
    def from_dict(cls, data: dict) -> CertificateResource:
        def _bytes(value: str | None) -> bytes | None:
            return value.encode() if value is not None else None

        return cls(
            domain=data["domain"],
            cert_url=data.get("cert_url"),
            cert_stable_url=data.get("cert_stable_url"),
            certificate=_bytes(data.get("certificate")),
            issuer_certificate=_bytes(data.get("issuer_certificate")),
            private_key=_bytes(data.get("private_key")),
            csr=_bytes(data.get("csr")),
        )
