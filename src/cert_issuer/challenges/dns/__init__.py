"""DNS provider factory: resolve a provider name to its implementation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cert_issuer.challenges.dns.base import DnsProvider
from cert_issuer.challenges.dns.cloudflare import CloudflareDnsProvider

if TYPE_CHECKING:
    from cert_issuer.config import AppConfig


def get_dns_provider(config: AppConfig, provider_name: str | None = None) -> DnsProvider:
    """Instantiate a DNS-01 challenge provider by name.

    Args:
        config: Application configuration.
        provider_name: Override the provider named in config.

    Returns:
        A configured DnsProvider instance.
    """
    name = (provider_name or config.dns_provider or "").lower()

    if name == "cloudflare":
        if not config.cloudflare_api_token:
            raise ValueError("CLOUDFLARE_API_TOKEN is required when ACME_DNS_PROVIDER=cloudflare")
        return CloudflareDnsProvider(api_token=config.cloudflare_api_token)

    raise ValueError(f"Unknown DNS provider: '{name}'")
