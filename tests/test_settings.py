import pytest

from studiofief.billing import quotes as quote_svc
from studiofief.billing.pricing import compute_project_pricing
from studiofief.billing.settings import update_settings
from studiofief.errors import ForbiddenError, ValidationError
from studiofief.models import AuditLog


def test_update_drives_pricing_and_numbering(admin_ctx, business, project, services, add_line):
    update_settings(admin_ctx, {"defaultDepositPercent": 40, "quotePrefix": " DV "})
    add_line(services["SITE"])
    assert compute_project_pricing(project).deposit_cents == 40000

    quote = quote_svc.create_quote(admin_ctx, project)
    quote_svc.transition(admin_ctx, quote, "SENT")
    assert quote.number.startswith("DV-")


def test_update_writes_audit_rows(admin_ctx, business):
    update_settings(admin_ctx, {"vatEnabled": True, "vatRate": 20, "paymentTermsDays": 45})
    settings = business.settings
    assert (settings.vat_enabled, settings.payment_terms_days) == (True, 45)

    fields = {a.field for a in AuditLog.query.filter_by(entity="business_settings")}
    # vat_rate already 20: unchanged values are not logged
    assert fields == {"vat_enabled", "payment_terms_days"}


@pytest.mark.parametrize("payload", [
    {},
    {"defaultDepositPercent": 101},
    {"defaultDepositPercent": -1},
    {"vatRate": "vingt"},
    {"paymentTermsDays": 366},
    {"quotePrefix": "   "},
    {"invoicePrefix": "X" * 21},
    {"vatEnabled": "yes"},
])
def test_update_rejects_bad_values(admin_ctx, business, payload):
    with pytest.raises(ValidationError):
        update_settings(admin_ctx, payload)
    assert business.settings.default_deposit_percent == 30


def test_viewer_cannot_update(viewer_ctx):
    with pytest.raises(ForbiddenError):
        update_settings(viewer_ctx, {"vatRate": 10})


def test_settings_endpoints(admin_client, business):
    url = f"/api/businesses/{business.id}/settings"
    item = admin_client.get(url).get_json()["item"]
    assert item["defaultDepositPercent"] == 30
    assert item["quotePrefix"] == "SF-DEV"

    resp = admin_client.patch(url, json={"invoicePrefix": "FAC", "vatEnabled": True})
    assert resp.status_code == 200
    assert resp.get_json()["item"]["invoicePrefix"] == "FAC"
    assert resp.get_json()["item"]["vatEnabled"] is True

    bad = admin_client.patch(url, json={"vatRate": 150})
    assert bad.status_code == 400
    assert bad.get_json()["code"] == "VALIDATION_ERROR"


def test_viewer_reads_settings_only(viewer_client, business):
    url = f"/api/businesses/{business.id}/settings"
    assert viewer_client.get(url).status_code == 200
    assert viewer_client.patch(url, json={"vatRate": 10}).status_code == 403
