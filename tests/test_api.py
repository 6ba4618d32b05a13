from studiofief import db
from studiofief.models import Business, Payment


def _base(business):
    return f"/api/businesses/{business.id}"


def test_health(app):
    assert app.test_client().get("/health").get_json() == {"ok": True}


def test_unauthenticated(app, business, project):
    resp = app.test_client().get(f"{_base(business)}/projects/{project.id}/pricing")
    assert resp.status_code == 401
    body = resp.get_json()
    assert body["code"] == "UNAUTHENTICATED"
    assert body["requestId"] == resp.headers["X-Request-Id"]


def test_request_id_is_echoed(admin_client, business, project):
    resp = admin_client.get(f"{_base(business)}/projects/{project.id}/pricing",
                            headers={"X-Request-Id": "req-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-Id"] == "req-123"


def test_other_business_is_forbidden(admin_client, project):
    other = Business(name="Autre")
    db.session.add(other)
    db.session.commit()
    resp = admin_client.get(f"/api/businesses/{other.id}/projects/{project.id}/pricing")
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "FORBIDDEN"


def test_viewer_reads_but_cannot_write(viewer_client, business, project, services, add_line):
    add_line(services["DEV"])
    base = _base(business)
    assert viewer_client.get(f"{base}/projects/{project.id}/billing-summary").status_code == 200

    resp = viewer_client.post(f"{base}/projects/{project.id}/quotes", json={})
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "FORBIDDEN"


def test_unknown_project(admin_client, business):
    resp = admin_client.get(f"{_base(business)}/projects/9999/pricing")
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NOT_FOUND"


def test_login_and_me(app, admin):
    client = app.test_client()
    bad = client.post("/auth/login", json={"email": admin.email, "password": "nope"})
    assert bad.status_code == 401

    ok = client.post("/auth/login", json={"email": admin.email.upper(), "password": "secret-pass"})
    assert ok.status_code == 200
    me = client.get("/auth/me").get_json()["item"]
    assert me["email"] == admin.email
    assert me["memberships"][0]["role"] == "ADMIN"

    client.post("/auth/logout")
    assert client.get("/auth/me").status_code == 401


def test_catalog(admin_client, business):
    base = _base(business)
    resp = admin_client.post(f"{base}/services", json={"code": "ux", "name": "Design UX", "defaultPriceCents": "450,00"})
    assert resp.status_code == 201
    assert resp.get_json()["item"]["defaultPriceCents"] == 45000
    assert resp.get_json()["item"]["code"] == "UX"

    dup = admin_client.post(f"{base}/services", json={"code": "UX", "name": "Encore"})
    assert dup.status_code == 400

    items = admin_client.get(f"{base}/services").get_json()["items"]
    assert [s["code"] for s in items] == ["UX"]


def test_billing_flow(admin_client, business, project, services):
    base = _base(business)
    pid = project.id

    resp = admin_client.post(f"{base}/projects/{pid}/services", json={"serviceId": services["SITE"].id})
    assert resp.status_code == 201
    assert resp.get_json()["item"]["totalCents"] == 100000

    resp = admin_client.post(f"{base}/projects/{pid}/quotes", json={})
    assert resp.status_code == 201
    quote = resp.get_json()["item"]
    assert quote["totalCents"] == 100000
    assert quote["depositCents"] == 30000

    resp = admin_client.patch(f"{base}/quotes/{quote['id']}", json={"status": "SENT"})
    assert resp.get_json()["item"]["number"].startswith("SF-DEV-")
    resp = admin_client.patch(f"{base}/quotes/{quote['id']}", json={"status": "SIGNED"})
    assert resp.get_json()["item"]["status"] == "SIGNED"

    locked = admin_client.patch(f"{base}/quotes/{quote['id']}", json={"items": [
        {"label": "X", "quantity": 1, "unitPriceCents": 1},
    ]})
    assert locked.status_code == 400
    assert locked.get_json()["code"] == "LOCKED"

    summary = admin_client.get(f"{base}/projects/{pid}/billing-summary").get_json()["item"]
    assert summary["source"] == "QUOTE"
    assert summary["remainingCents"] == 100000

    resp = admin_client.post(f"{base}/projects/{pid}/invoices/staged", json={"mode": "PERCENT", "value": 30})
    assert resp.status_code == 201
    invoice = resp.get_json()["item"]
    assert invoice["totalCents"] == 30000
    assert invoice["paymentStatus"] == "UNPAID"

    over = admin_client.post(f"{base}/projects/{pid}/invoices/staged", json={"mode": "AMOUNT", "value": 80000})
    assert over.status_code == 400
    assert over.get_json()["code"] == "OVER_LIMIT"

    resp = admin_client.patch(f"{base}/invoices/{invoice['id']}", json={"status": "SENT"})
    assert resp.get_json()["item"]["number"].startswith("SF-FAC-")

    resp = admin_client.post(f"{base}/invoices/{invoice['id']}/payments", json={"amountCents": 10000})
    assert resp.status_code == 201
    assert resp.get_json()["invoice"]["paymentStatus"] == "PARTIAL"

    too_much = admin_client.post(f"{base}/invoices/{invoice['id']}/payments", json={"amountCents": 25000})
    assert too_much.get_json()["code"] == "OVER_LIMIT"
    assert Payment.query.count() == 1

    resp = admin_client.post(f"{base}/invoices/{invoice['id']}/payments",
                             json={"amountCents": 20000, "method": "CARD", "paidAt": "2025-06-01T10:00:00Z"})
    assert resp.get_json()["invoice"]["status"] == "PAID"

    ledger = admin_client.get(f"{base}/invoices/{invoice['id']}/payments").get_json()
    assert ledger["summary"]["paymentStatus"] == "PAID"
    assert ledger["summary"]["remainingCents"] == 0
    # newest paidAt first: the 2025 payment sorts after the one stamped now
    assert [p["amountCents"] for p in ledger["items"]] == [10000, 20000]

    first_id = ledger["items"][0]["id"]
    resp = admin_client.delete(f"{base}/invoices/{invoice['id']}/payments/{first_id}")
    assert resp.get_json()["invoice"]["status"] == "SENT"

    invoices = admin_client.get(f"{base}/projects/{pid}/invoices").get_json()["items"]
    assert [i["paidCents"] for i in invoices] == [20000]


def test_quote_invoice_endpoint(admin_client, business, project, services, add_line):
    add_line(services["DEV"])
    base = _base(business)
    quote = admin_client.post(f"{base}/projects/{project.id}/quotes", json={}).get_json()["item"]

    draft = admin_client.post(f"{base}/quotes/{quote['id']}/invoices")
    assert draft.status_code == 400

    admin_client.patch(f"{base}/quotes/{quote['id']}", json={"status": "SENT"})
    resp = admin_client.post(f"{base}/quotes/{quote['id']}/invoices")
    assert resp.status_code == 201
    assert resp.get_json()["item"]["quoteId"] == quote["id"]


def test_quote_wizard_endpoint(admin_client, business, project, services):
    resp = admin_client.post(f"{_base(business)}/projects/{project.id}/quotes", json={"lines": [
        {"serviceId": services["DEV"].id, "quantity": 2},
        {"label": "Nom de domaine", "quantity": 1, "unitPriceCents": 1500},
    ]})
    assert resp.status_code == 201
    assert resp.get_json()["item"]["totalCents"] == 21500


def test_deposit_patch(admin_client, business, project):
    url = f"{_base(business)}/projects/{project.id}/deposit"
    missing = admin_client.patch(url, json={"depositStatus": "PAID"})
    assert missing.status_code == 400

    resp = admin_client.patch(url, json={"depositStatus": "PAID", "depositPaidAt": "2025-04-09T17:30:00"})
    item = resp.get_json()["item"]
    assert item["depositStatus"] == "PAID"
    assert item["depositPaidAt"] == "2025-04-09T00:00:00"

    item = admin_client.patch(url, json={"depositStatus": "PENDING"}).get_json()["item"]
    assert item["depositPaidAt"] is None


def test_invalid_payload(admin_client, business, project):
    resp = admin_client.post(f"{_base(business)}/projects/{project.id}/services", data="not json",
                             content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"


def test_unicode_digits_are_rejected(admin_client, business, project, services, make_invoice):
    base = _base(business)
    line = admin_client.post(f"{base}/projects/{project.id}/services",
                             json={"serviceId": services["DEV"].id, "quantity": "²"})
    assert line.status_code == 400
    assert line.get_json()["code"] == "VALIDATION_ERROR"

    inv = make_invoice(50000)
    pay = admin_client.post(f"{base}/invoices/{inv.id}/payments", json={"amountCents": "²"})
    assert pay.status_code == 400
    assert pay.get_json()["code"] == "VALIDATION_ERROR"
