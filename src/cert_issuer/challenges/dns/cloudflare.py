"""Cloudflare DNS provider: create and delete DNS-01 TXT records via the Cloudflare REST API."""

from __future__ import annotations

import logging

import httpx

from cert_issuer.challenges.dns.base import DnsProvider
from cert_issuer.challenges.dns.util import candidate_zones

logger = logging.getLogger(__name__)

_API_BASE = "https://api.cloudflare.com/client/v4"
_CHALLENGE_TTL = 60


class CloudflareDnsProvider(DnsProvider):
    """DNS-01 provider backed by the Cloudflare API."""

    def __init__(
        self,
        api_token: str,
        _http_client: httpx.Client | None = None,
    ) -> None:
        self._client = _http_client or httpx.Client(
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=30,
        )

    def _find_zone_id(self, fqdn: str) -> str:
        """Find the Cloudflare zone that hosts ``fqdn`` by walking up its parent names."""
        for zone in candidate_zones(fqdn):
            resp = self._client.get(f"{_API_BASE}/zones", params={"name": zone})
            resp.raise_for_status()
            results = resp.json()["result"]
            if results:
                return results[0]["id"]
        raise ValueError(f"No Cloudflare zone found for '{fqdn}'")

    def create_txt_record(self, fqdn: str, value: str) -> None:
        zone_id = self._find_zone_id(fqdn)
        resp = self._client.post(
            f"{_API_BASE}/zones/{zone_id}/dns_records",
            json={"type": "TXT", "name": fqdn, "content": value, "ttl": _CHALLENGE_TTL},
        )
        resp.raise_for_status()
        logger.info("Created TXT record %s in Cloudflare zone %s", fqdn, zone_id)

    def _delete_records(self, zone_id: str, fqdn: str, value: str) -> int:
        """Delete TXT records matching name and content. Returns count of records deleted.

        Content is matched too: a wildcard and its base domain share one
        record name and may be in flight together.
        """
        resp = self._client.get(
            f"{_API_BASE}/zones/{zone_id}/dns_records",
            params={"type": "TXT", "name": fqdn, "content": value},
        )
        resp.raise_for_status()
        records = resp.json()["result"]
        for record in records:
            self._client.delete(
                f"{_API_BASE}/zones/{zone_id}/dns_records/{record['id']}",
            ).raise_for_status()
        return len(records)

    def delete_txt_record(self, fqdn: str, value: str) -> None:
        zone_id = self._find_zone_id(fqdn)
        count = self._delete_records(zone_id, fqdn, value)
        if count == 0:
            logger.warning("TXT record %s not found in Cloudflare, skipping delete", fqdn)
        else:
            logger.info("Deleted TXT record %s from Cloudflare zone %s", fqdn, zone_id)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()
