"""Account registration, lookup and deactivation."""

from __future__ import annotations

import logging

import josepy
from acme import messages

from cert_issuer.errors import ProtocolError, RemoteError
from cert_issuer.models import STATUS_DEACTIVATED, Account, Directory, RegistrationResource
from cert_issuer.transport import SigningTransport, get_header

logger = logging.getLogger(__name__)


class AccountManager:
    """Account operations against the CA's new-account endpoint.

    Every successful call points ``transport.account_uri`` at the resulting
    registration so later requests are signed with the account's key ID.
    """

    def __init__(self, transport: SigningTransport, directory: Directory, account: Account) -> None:
        self._transport = transport
        self._directory = directory
        self._account = account

    def register(self, tos_agreed: bool) -> RegistrationResource:
        logger.info("Registering ACME account for %s", self._account.email)
        new_reg = messages.NewRegistration.from_data(
            email=self._account.email or None,
            terms_of_service_agreed=tos_agreed,
        )
        return self._new_account(new_reg)

    def register_with_external_binding(self, tos_agreed: bool, kid: str, hmac_encoded: str) -> RegistrationResource:
        """Register with an External Account Binding (RFC 8555 §7.3.4).

        ``hmac_encoded`` is the base64url MAC key handed out by the CA.
        """
        logger.info("Registering ACME account (EAB) for %s", self._account.email)
        try:
            if not josepy.b64.b64decode(hmac_encoded):
                raise ValueError("empty key")
        except (ValueError, TypeError) as error:
            raise ValueError(f"Could not decode EAB HMAC key: {error}") from error

        eab = messages.ExternalAccountBinding.from_data(
            account_public_key=self._transport.key.public_key(),
            kid=kid,
            hmac_key=hmac_encoded,
            directory=messages.Directory({"newAccount": self._directory.new_account_url}),
        )
        new_reg = messages.NewRegistration.from_data(
            email=self._account.email or None,
            terms_of_service_agreed=tos_agreed,
            external_account_binding=eab,
        )
        return self._new_account(new_reg)

    def _new_account(self, new_reg: messages.NewRegistration) -> RegistrationResource:
        try:
            headers, body = self._transport.post(self._directory.new_account_url, new_reg)
        except RemoteError as error:
            if error.status_code != 409:
                raise
            # Key already registered; adopt the existing account
            logger.info("ACME account already exists at %s", error.location)
            regr = RegistrationResource(uri=error.location or "", body={})
        else:
            regr = RegistrationResource(uri=get_header(headers, "Location") or "", body=_as_dict(body))

        self._activate(regr)
        return regr

    def resolve_by_key(self) -> RegistrationResource:
        """Look up the account bound to the transport's key without creating one."""
        logger.info("Trying to resolve ACME account by key")
        headers, _body = self._transport.post(
            self._directory.new_account_url,
            messages.NewRegistration(only_return_existing=True),
        )
        account_url = get_header(headers, "Location")
        if not account_url:
            raise ProtocolError("Server did not return the account link")

        self._transport.account_uri = account_url
        _headers, body = self._transport.post(account_url, messages.UpdateRegistration())
        regr = RegistrationResource(uri=account_url, body=_as_dict(body))
        self._activate(regr)
        return regr

    def query(self) -> RegistrationResource:
        """Refresh the account object. The CA does not send Location here; the known URI is kept."""
        uri = self._registration_uri("query the registration of")
        logger.info("Querying ACME account %s", uri)
        _headers, body = self._transport.post(uri, messages.UpdateRegistration())
        regr = RegistrationResource(uri=uri, body=_as_dict(body))
        self._activate(regr)
        return regr

    def deactivate(self) -> None:
        uri = self._registration_uri("deactivate")
        logger.info("Deactivating ACME account %s", uri)
        self._transport.post(uri, messages.UpdateRegistration(status=STATUS_DEACTIVATED))
        self._transport.account_uri = uri

    def _registration_uri(self, action: str) -> str:
        regr = self._account.registration
        if regr is None or not regr.uri:
            raise ValueError(f"Cannot {action} an account without a registration")
        return regr.uri

    def _activate(self, regr: RegistrationResource) -> None:
        self._transport.account_uri = regr.uri
        self._account.registration = regr


def _as_dict(body: object) -> dict:
    return dict(body) if isinstance(body, dict) else {}
