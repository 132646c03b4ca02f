from sqlalchemy import func, select

from fulfillment.db.models import Account, Notification, Order, PaymentTransaction, WebhookLog

URL = "/functions/v1/process-payment-webhook"


def paid_payload(order_id, tx="tx1", statut="paid"):
    return {"personal_Info": [{"orderId": order_id}], "statut": statut, "transaction_id": tx}


def logs(db):
    db.expire_all()
    return db.execute(select(WebhookLog).order_by(WebhookLog.id)).scalars().all()


def count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_digital_order_end_to_end(client, db, digital_order, mailer, events):
    order_id = digital_order.id
    res = client.post(URL, json=paid_payload(order_id))
    assert res.status_code == 200, res.text
    assert res.json() == {"success": True}

    [entry] = logs(db)
    assert entry.status == "processed"
    assert entry.related_order_id == order_id
    assert entry.transaction_id == "tx1"
    assert entry.payload["statut"] == "paid"

    order = db.get(Order, order_id)
    assert order.status == "delivered"
    assert order.provider_transaction_id == "tx1"
    assert order.payment_provider == "apiweb"
    assert order.paid_at is not None and order.delivered_at is not None

    account = db.execute(select(Account)).scalar_one()
    assert account.email == "kofi@example.com"
    assert account.created_from_order == order_id

    note = db.execute(select(Notification)).scalar_one()
    assert note.user_id == "seller-1"
    assert note.message == "Paiement de 15000 XOF reçu pour votre produit digital."
    assert note.link == "/orders"

    assert count(db, PaymentTransaction) == 1
    subjects = [m["subject"] for m in mailer.sent]
    assert any("compte PayLiv" in s for s in subjects)
    assert any("produits digitaux" in s for s in subjects)
    assert [e[2]["type"] for e in events.events] == ["order.delivered"]


def test_physical_order_only_finalizes_ledger(client, db, physical_order, mailer, events):
    order_id = physical_order.id
    res = client.post(URL, json=paid_payload(order_id))
    assert res.status_code == 200, res.text

    order = db.get(Order, order_id)
    db.refresh(order)
    assert order.status == "paid"
    assert order.provider_transaction_id == "tx1"
    assert count(db, PaymentTransaction) == 1
    assert count(db, Account) == 0
    assert count(db, Notification) == 0
    assert mailer.sent == []
    assert [e[2]["type"] for e in events.events] == ["payment.succeeded"]
    assert logs(db)[0].status == "processed"


def test_unpaid_status_is_acknowledged_without_mutation(client, db, digital_order):
    order_id = digital_order.id
    res = client.post(URL, json=paid_payload(order_id, statut="pending"))
    assert res.status_code == 200
    assert res.json() == {"success": True}

    order = db.get(Order, order_id)
    db.refresh(order)
    assert order.status == "pending"
    assert order.provider_transaction_id is None
    assert count(db, PaymentTransaction) == 0
    [entry] = logs(db)
    assert entry.status == "processed"
    assert entry.related_order_id is None


def test_missing_order_id_is_malformed(client, db):
    res = client.post(URL, json={"statut": "paid", "transaction_id": "tx1"})
    assert res.status_code == 400
    assert res.json() == {"error": "Order ID not found in webhook data"}
    [entry] = logs(db)
    assert entry.status == "error"
    assert entry.error_message == "Order ID not found in webhook data"


def test_invalid_json_leaves_audit_trace(client, db):
    res = client.post(URL, content=b"not json", headers={"Content-Type": "application/json"})
    assert res.status_code == 400
    [entry] = logs(db)
    assert entry.status == "error"
    assert entry.payload == {"raw": "not json"}


def test_paid_without_transaction_id_is_malformed(client, db, digital_order):
    res = client.post(URL, json={"personal_Info": [{"orderId": digital_order.id}], "statut": "paid"})
    assert res.status_code == 400
    assert "Transaction ID" in res.json()["error"]
    assert logs(db)[0].status == "error"


def test_unknown_order_is_reported(client, db):
    res = client.post(URL, json=paid_payload("does-not-exist"))
    assert res.status_code == 404
    assert res.json() == {"error": "Order not found"}
    [entry] = logs(db)
    assert entry.status == "error"
    assert entry.error_message == "Order not found"
    assert count(db, PaymentTransaction) == 0


def test_replayed_webhook_does_not_repeat_effects(client, db, digital_order, mailer):
    payload = paid_payload(digital_order.id)
    assert client.post(URL, json=payload).status_code == 200
    assert client.post(URL, json=payload).status_code == 200

    assert count(db, Account) == 1
    assert count(db, Notification) == 1
    assert count(db, PaymentTransaction) == 1
    welcome = [m for m in mailer.sent if "compte PayLiv" in m["subject"]]
    assert len(welcome) == 1
    entries = logs(db)
    assert [e.status for e in entries] == ["processed", "processed"]


def test_cors_preflight_and_headers(client, db, digital_order):
    res = client.options(URL)
    assert res.status_code == 200
    assert res.text == "ok"
    assert res.headers["access-control-allow-origin"] == "*"

    res = client.post(URL, json=paid_payload(digital_order.id, statut="failed"))
    assert res.headers["access-control-allow-origin"] == "*"
    assert res.headers["content-type"].startswith("application/json")


def test_second_transaction_for_paid_physical_order_is_refused(client, db, physical_order, events):
    order_id = physical_order.id
    assert client.post(URL, json=paid_payload(order_id, tx="tx1")).status_code == 200

    res = client.post(URL, json=paid_payload(order_id, tx="tx2"))
    assert res.status_code == 502
    assert "another provider transaction" in res.json()["error"]

    db.expire_all()
    rows = db.execute(select(PaymentTransaction.provider_transaction_id)).scalars().all()
    assert rows == ["tx1"]
    assert db.get(Order, order_id).provider_transaction_id == "tx1"
    assert [e[2]["type"] for e in events.events] == ["payment.succeeded"]
    assert [e.status for e in logs(db)] == ["processed", "error"]


def test_failed_status_transition_is_logged_against_the_order(client, db, order_factory, mailer):
    order = order_factory(status="paid", provider_transaction_id="tx-old")
    order_id = order.id

    res = client.post(URL, json=paid_payload(order_id, tx="tx1"))
    assert res.status_code == 502
    assert res.json() == {"error": f"Order {order_id} is already bound to another provider transaction"}

    [entry] = logs(db)
    assert entry.status == "error"
    assert entry.error_message == res.json()["error"]
    assert entry.related_order_id == order_id
    assert count(db, PaymentTransaction) == 0
    assert count(db, Notification) == 0
    assert mailer.sent == []


def test_oversized_provider_fields_are_still_audited(client, db, digital_order):
    statut = "en_attente_de_confirmation_operateur_mobile"
    tx = "T" * 400
    res = client.post(URL, json=paid_payload(digital_order.id, tx=tx, statut=statut))
    assert res.status_code == 200

    [entry] = logs(db)
    assert entry.status == "processed"
    assert entry.payment_status == statut
    assert entry.transaction_id == tx
    assert WebhookLog.__table__.c.payment_status.type.length is None
    assert WebhookLog.__table__.c.transaction_id.type.length is None
