"""Abstract base class for DNS providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Self


class DnsProvider(ABC):
    """Interface for DNS providers that manage ACME DNS-01 challenge TXT records.

    The DNS-01 solver works out the record name and value; a provider only
    has to publish and withdraw the record.
    """

    def close(self) -> None:
        """Release resources. Override in subclasses that hold open connections."""

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @abstractmethod
    def create_txt_record(self, fqdn: str, value: str) -> None:
        """Create a TXT record for DNS-01 challenge validation.

        Args:
            fqdn: Fully qualified record name (e.g. "_acme-challenge.example.com").
            value: TXT record value (base64url SHA-256 of the key authorization).
        """

    @abstractmethod
    def delete_txt_record(self, fqdn: str, value: str) -> None:
        """Delete the TXT record created by :meth:`create_txt_record`.

        Args:
            fqdn: Fully qualified record name.
            value: TXT record value; records with other values under the same name are kept.
        """
