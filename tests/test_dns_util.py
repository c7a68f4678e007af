"""Tests for DNS utility functions."""

import pytest

from cert_issuer.challenges.dns.util import candidate_zones


class TestCandidateZones:
    def test_base_domain(self):
        assert candidate_zones("_acme-challenge.example.com") == ["example.com"]

    def test_subdomain(self):
        assert candidate_zones("_acme-challenge.www.example.com") == ["www.example.com", "example.com"]

    def test_deep_subdomain(self):
        assert candidate_zones("_acme-challenge.a.b.example.com") == [
            "a.b.example.com",
            "b.example.com",
            "example.com",
        ]

    def test_trailing_dot_ignored(self):
        assert candidate_zones("_acme-challenge.example.com.") == ["example.com"]

    def test_record_without_parent_zone_raises(self):
        with pytest.raises(ValueError, match="has no parent zone"):
            candidate_zones("example.com")
