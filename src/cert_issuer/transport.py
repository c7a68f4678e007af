"""Signed request delivery. JWS signing and nonces are left to acme.client.ClientNetwork."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import josepy
import requests
from acme import errors as acme_errors
from acme import messages
from acme.client import ClientNetwork
from requests.utils import parse_header_links

from cert_issuer.errors import NetworkError, ProtocolError, RemoteError

logger = logging.getLogger(__name__)

USER_AGENT = "acme-cert-issuer"

_JSON_CONTENT_TYPES = ("application/json", "application/problem+json")


class JSONPayload(josepy.JSONDeSerializable):
    """A plain JSON object sent as a request payload."""

    def __init__(self, jobj: dict) -> None:
        self.jobj = jobj

    def to_partial_json(self) -> dict:
        return self.jobj

    @classmethod
    def from_json(cls, jobj: dict) -> JSONPayload:
        return cls(jobj)


class SigningTransport(ABC):
    """Delivers authenticated requests to the CA.

    Implementations are not safe for concurrent use by more than one
    orchestration flow; ``account_uri`` and the nonce pool are shared state.
    """

    key: josepy.JWK
    account_uri: str | None

    @abstractmethod
    def post(self, url: str, payload: josepy.JSONDeSerializable) -> tuple[Mapping[str, str], Any]:
        """POST a signed payload. Returns ``(headers, body)``.

        ``body`` is the decoded JSON document for JSON responses and raw
        bytes otherwise. Non-2xx responses raise :class:`RemoteError`.
        """

    @abstractmethod
    def post_as_get(self, url: str) -> tuple[Mapping[str, str], Any]:
        """POST-as-GET (signed empty payload, RFC 8555 §6.3)."""


class _Network(ClientNetwork):
    """ClientNetwork that keeps the HTTP status on ACME problem documents."""

    def _check_response(self, response: requests.Response, content_type: str | None = None) -> requests.Response:
        try:
            return super()._check_response(response, content_type=content_type)
        except messages.Error as error:
            # messages.Error is explicitly mutable; badNonce retries still see the same type
            error.status_code = response.status_code
            raise


class AcmeTransport(SigningTransport):
    """SigningTransport backed by certbot's ClientNetwork."""

    def __init__(
        self,
        key: josepy.JWK,
        new_nonce_url: str | None = None,
        *,
        alg: josepy.JWASignature = josepy.RS256,
        user_agent: str = USER_AGENT,
        verify_ssl: bool = True,
        _net: ClientNetwork | None = None,
    ) -> None:
        self.key = key
        self.new_nonce_url = new_nonce_url
        self._net = _net or _Network(key, alg=alg, verify_ssl=verify_ssl, user_agent=user_agent)
        self._account_uri: str | None = None

    @property
    def account_uri(self) -> str | None:
        return self._account_uri

    @account_uri.setter
    def account_uri(self, uri: str | None) -> None:
        self._account_uri = uri
        if uri:
            self._net.account = messages.RegistrationResource(uri=uri, body=messages.Registration())
        else:
            self._net.account = None

    def post(self, url: str, payload: josepy.JSONDeSerializable) -> tuple[Mapping[str, str], Any]:
        return self._send(url, payload)

    def post_as_get(self, url: str) -> tuple[Mapping[str, str], Any]:
        return self._send(url, None)

    def _send(self, url: str, payload: josepy.JSONDeSerializable | None) -> tuple[Mapping[str, str], Any]:
        kwargs = {}
        if self.new_nonce_url:
            kwargs["new_nonce_url"] = self.new_nonce_url
        try:
            response = self._net.post(url, payload, **kwargs)
        except acme_errors.ConflictError as error:
            raise RemoteError(409, detail="resource already exists", location=error.location) from error
        except messages.Error as error:
            raise RemoteError(getattr(error, "status_code", None), error.typ, error.detail) from error
        except acme_errors.ClientError as error:
            raise RemoteError(None, detail=str(error)) from error
        except (requests.exceptions.RequestException, ValueError) as error:
            # ClientNetwork re-raises connection failures as ValueError
            raise NetworkError(f"acme: request to {url} failed: {error}") from error
        return response.headers, _decode_body(url, response)


def _decode_body(url: str, response: requests.Response) -> Any:
    content_type = (response.headers.get("Content-Type") or "").split(";")[0].strip().lower()
    if content_type in _JSON_CONTENT_TYPES:
        try:
            return response.json()
        except ValueError as error:
            raise ProtocolError(f"acme: unparseable JSON response from {url}") from error
    return response.content


def get_header(headers: Mapping[str, str] | None, name: str) -> str | None:
    """Case-insensitive header lookup that also works on plain dicts."""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def parse_links(headers: Mapping[str, str] | None) -> dict[str, str]:
    """Map ``rel`` to target URL for every ``Link`` header value."""
    raw = get_header(headers, "Link")
    if not raw:
        return {}
    if not isinstance(raw, str):
        raw = ", ".join(raw)
    links: dict[str, str] = {}
    for link in parse_header_links(raw):
        rel = link.get("rel")
        if rel and link.get("url"):
            links[rel] = link["url"]
    return links
