"""DNS utility functions."""

from __future__ import annotations


def candidate_zones(fqdn: str) -> list[str]:
    """List the parent names of ``fqdn`` that could be its zone apex, most specific first.

    The record label itself and bare TLDs are never candidates:
    ``_acme-challenge.www.example.com`` gives ``["www.example.com", "example.com"]``.

    Args:
        fqdn: Fully qualified record name, with or without a trailing dot.

    Returns:
        Candidate zone names, longest first.
    """
    labels = fqdn.rstrip(".").split(".")
    if len(labels) < 3:
        raise ValueError(f"Record '{fqdn}' has no parent zone")
    return [".".join(labels[i:]) for i in range(1, len(labels) - 1)]
