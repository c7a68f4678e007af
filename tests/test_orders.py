"""Tests for cert_issuer.orders."""

import pytest

from cert_issuer.errors import ProtocolError
from cert_issuer.models import Directory
from cert_issuer.orders import create_order, dedupe_domains

_NEW_ORDER = "https://ca.test/new-order"
_ORDER_URL = "https://ca.test/order/1"


def _directory():
    return Directory(new_account_url="https://ca.test/new-acct", new_order_url=_NEW_ORDER)


def _order_body(*names):
    return {
        "status": "pending",
        "identifiers": [{"type": "dns", "value": n} for n in names],
        "authorizations": [f"https://ca.test/authz/{n}" for n in names],
        "finalize": f"{_ORDER_URL}/finalize",
    }


def test_dedupe_keeps_first_occurrence_order():
    assert dedupe_domains(["b.com", "a.com", "b.com", "c.com", "a.com"]) == ["b.com", "a.com", "c.com"]


def test_dedupe_is_case_sensitive():
    assert dedupe_domains(["Example.com", "example.com"]) == ["Example.com", "example.com"]


def test_create_order_sends_identifiers_in_caller_order(fake_transport):
    fake_transport.add(_NEW_ORDER, ({"Location": _ORDER_URL}, _order_body("b.com", "a.com")))

    order = create_order(fake_transport, _directory(), ["a.com", "b.com", "a.com"])

    payload = fake_transport.calls[0][2]
    assert [i.value for i in payload.identifiers] == ["a.com", "b.com"]
    assert all(i.typ.name == "dns" for i in payload.identifiers)
    assert order.url == _ORDER_URL
    assert order.domains == ("a.com", "b.com")
    assert order.common_name == "a.com"
    assert len(order.authorizations) == 2


def test_create_order_without_domains_raises(fake_transport):
    with pytest.raises(ValueError, match="No domains"):
        create_order(fake_transport, _directory(), [])

    assert fake_transport.calls == []


def test_create_order_rejects_non_json_response(fake_transport):
    fake_transport.add(_NEW_ORDER, ({"Location": _ORDER_URL}, b"<html>"))

    with pytest.raises(ProtocolError):
        create_order(fake_transport, _directory(), ["a.com"])
