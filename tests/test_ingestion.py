import pytest

from fulfillment.core.errors import MalformedWebhook
from fulfillment.services.ingestion import parse_payment_notice, peek


def test_parse_paid_notice():
    notice = parse_payment_notice({
        "personal_Info": [{"orderId": "o1", "name": "x"}],
        "statut": "paid",
        "transaction_id": "tx1",
        "montant": 1500,
    })
    assert notice.order_id == "o1"
    assert notice.transaction_id == "tx1"
    assert notice.paid


def test_numeric_identifiers_are_coerced():
    notice = parse_payment_notice({"personal_Info": [{"orderId": 42}], "statut": "PAID", "transaction_id": 991})
    assert notice.order_id == "42"
    assert notice.transaction_id == "991"
    assert notice.paid


@pytest.mark.parametrize("payload", [
    None,
    [],
    {},
    {"personal_Info": []},
    {"personal_Info": [{}]},
    {"personal_Info": "o1"},
    {"personal_Info": [{"orderId": ""}], "statut": "paid"},
])
def test_malformed_payloads(payload):
    with pytest.raises(MalformedWebhook):
        parse_payment_notice(payload)


def test_unpaid_status():
    notice = parse_payment_notice({"personal_Info": [{"orderId": "o1"}], "statut": "failed"})
    assert not notice.paid
    assert notice.transaction_id is None


def test_peek_is_lenient():
    assert peek({"transaction_id": 7}, "transaction_id") == "7"
    assert peek({"transaction_id": ""}, "transaction_id") is None
    assert peek(["x"], "transaction_id") is None
