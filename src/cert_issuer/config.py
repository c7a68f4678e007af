"""Configuration loading and validation from environment variables."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass

import josepy

from cert_issuer.certcrypto import KeyType
from cert_issuer.challenges.dns import get_dns_provider
from cert_issuer.challenges.dns01 import DNS01
from cert_issuer.client import Client
from cert_issuer.models import Account, RegistrationResource
from cert_issuer.transport import USER_AGENT

_LETS_ENCRYPT_DIRECTORY = "https://acme-v02.api.letsencrypt.org/directory"
_DEFAULT_KEY_TYPE = KeyType.RSA2048
_DEFAULT_LOG_LEVEL = "INFO"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class AppConfig:
    """Application configuration loaded from environment variables."""

    contact_email: str
    acme_directory_url: str = _LETS_ENCRYPT_DIRECTORY
    key_type: KeyType = _DEFAULT_KEY_TYPE
    account_key_json: str | None = None
    account_uri: str | None = None
    dns_provider: str | None = None
    dns_propagation_seconds: float = 0
    exclude_challenges: tuple[str, ...] = ()
    cloudflare_api_token: str | None = None
    user_agent: str = USER_AGENT
    log_level: str = _DEFAULT_LOG_LEVEL


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise ValueError(f"Required environment variable {name} is not set")
    return value


def _parse_key_type(raw: str) -> KeyType:
    try:
        return KeyType(raw.upper())
    except ValueError:
        allowed = ", ".join(k.value for k in KeyType)
        raise ValueError(f"ACME_KEY_TYPE must be one of {allowed}, got: {raw!r}") from None


def load_config() -> AppConfig:
    """Load and validate application configuration from environment variables."""
    contact_email = _require_env("ACME_CONTACT_EMAIL")
    acme_directory_url = os.environ.get("ACME_DIRECTORY_URL", _LETS_ENCRYPT_DIRECTORY)
    key_type = _parse_key_type(os.environ.get("ACME_KEY_TYPE", _DEFAULT_KEY_TYPE.value))

    account_key_json = os.environ.get("ACME_ACCOUNT_KEY") or None
    account_uri = os.environ.get("ACME_ACCOUNT_URI") or None
    if account_uri and not account_key_json:
        raise ValueError("ACME_ACCOUNT_URI requires ACME_ACCOUNT_KEY to be set")

    raw_delay = os.environ.get("ACME_DNS_PROPAGATION_SECONDS", "0")
    try:
        dns_propagation_seconds = float(raw_delay)
    except ValueError:
        raise ValueError(f"ACME_DNS_PROPAGATION_SECONDS must be a number, got: {raw_delay!r}") from None
    if dns_propagation_seconds < 0:
        raise ValueError(f"ACME_DNS_PROPAGATION_SECONDS must not be negative, got: {dns_propagation_seconds}")

    raw_exclude = os.environ.get("ACME_EXCLUDE_CHALLENGES", "")
    exclude_challenges = tuple(c.strip() for c in raw_exclude.split(",") if c.strip())

    log_level = os.environ.get("LOG_LEVEL", _DEFAULT_LOG_LEVEL).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"LOG_LEVEL is not a logging level: {log_level!r}")

    return AppConfig(
        contact_email=contact_email,
        acme_directory_url=acme_directory_url,
        key_type=key_type,
        account_key_json=account_key_json,
        account_uri=account_uri,
        dns_provider=os.environ.get("ACME_DNS_PROVIDER") or None,
        dns_propagation_seconds=dns_propagation_seconds,
        exclude_challenges=exclude_challenges,
        cloudflare_api_token=os.environ.get("CLOUDFLARE_API_TOKEN"),
        user_agent=os.environ.get("ACME_USER_AGENT", USER_AGENT),
        log_level=log_level,
    )


def configure_logging(level: str = _DEFAULT_LOG_LEVEL) -> None:
    """Send library logs to stderr. The library itself never installs handlers."""
    logging.basicConfig(level=level, format=_LOG_FORMAT)


def load_account(config: AppConfig) -> Account:
    """Build the account identity from ``ACME_ACCOUNT_KEY`` (a JWK JSON document).

    The key is never generated here; supply one created and stored by the
    operator.
    """
    if not config.account_key_json:
        raise ValueError("ACME_ACCOUNT_KEY is required to build an account")
    try:
        key = josepy.JWK.from_json(json.loads(config.account_key_json))
    except (ValueError, josepy.DeserializationError) as error:
        raise ValueError(f"ACME_ACCOUNT_KEY is not a valid JWK: {error}") from error

    registration = RegistrationResource(uri=config.account_uri) if config.account_uri else None
    return Account(email=config.contact_email, key=key, registration=registration)


def build_client(config: AppConfig, account: Account | None = None) -> Client:
    """Create a Client wired from ``config``."""
    client = Client(
        config.acme_directory_url,
        account or load_account(config),
        config.key_type,
        user_agent=config.user_agent,
    )
    if config.dns_provider:
        client.register_provider(
            DNS01,
            get_dns_provider(config),
            propagation_delay=config.dns_propagation_seconds,
        )
    client.exclude_challenges(config.exclude_challenges)
    return client
