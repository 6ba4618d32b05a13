from datetime import datetime, timedelta

import pytest

from studiofief import db
from studiofief.billing import quotes as quote_svc
from studiofief.errors import ForbiddenError, LockedError, NotFoundError, ValidationError
from studiofief.models import (
    AuditLog, Invoice, ProjectQuoteStatus, ProjectService, Quote, QuoteStatus, Service,
)


def _sent(ctx, quote):
    return quote_svc.transition(ctx, quote, "SENT")


def _signed(ctx, quote):
    _sent(ctx, quote)
    return quote_svc.transition(ctx, quote, "SIGNED")


def test_quote_snapshots_pricing(admin_ctx, project, services, add_line):
    add_line(services["DEV"], quantity=2)
    quote = quote_svc.create_quote(admin_ctx, project)

    assert quote.status == QuoteStatus.DRAFT
    assert quote.total_cents == 20000
    assert len(quote.items) == 1
    assert quote.items[0].quantity == 2
    assert quote.items[0].unit_price_cents == 10000
    assert quote.expires_at > datetime.utcnow() + timedelta(days=29)
    assert AuditLog.query.filter_by(entity="quote", entity_id=quote.id, action="create").count() == 1


def test_deposit_split(admin_ctx, project, services, add_line):
    add_line(services["SITE"])
    quote = quote_svc.create_quote(admin_ctx, project)
    assert (quote.total_cents, quote.deposit_cents, quote.balance_cents) == (100000, 30000, 70000)
    assert quote.deposit_percent == 30
    assert quote.vat_rate is None


def test_quote_captures_vat_rate(admin_ctx, business, project, services, add_line):
    business.settings.vat_enabled = True
    business.settings.vat_rate = 20
    db.session.commit()
    add_line(services["DEV"])
    assert quote_svc.create_quote(admin_ctx, project).vat_rate == 20


def test_quote_without_lines_is_rejected(admin_ctx, project):
    with pytest.raises(ValidationError):
        quote_svc.create_quote(admin_ctx, project)


def test_missing_price_blocks_creation(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    add_line(services["FREE"])
    with pytest.raises(ValidationError):
        quote_svc.create_quote(admin_ctx, project)
    assert Quote.query.count() == 0


def test_viewer_cannot_create(viewer_ctx, project, services, add_line):
    add_line(services["DEV"])
    with pytest.raises(ForbiddenError):
        quote_svc.create_quote(viewer_ctx, project)


def test_wizard_attaches_catalog_and_custom_lines(admin_ctx, project, services):
    quote = quote_svc.create_quote(admin_ctx, project, lines=[
        {"serviceId": services["DEV"].id, "quantity": 2},
        {"label": "Hébergement", "quantity": 1, "unitPriceCents": 5000},
    ])
    assert quote.total_cents == 25000
    assert [it.label for it in quote.items] == ["Développement", "Hébergement"]
    assert Service.query.filter(Service.code.like("CUSTOM-%")).count() == 1


def test_wizard_rolls_back_on_failure(admin_ctx, project, services, add_line):
    add_line(services["FREE"])
    before = ProjectService.query.count()

    with pytest.raises(ValidationError):
        quote_svc.create_quote(admin_ctx, project, lines=[
            {"label": "Hébergement", "quantity": 1, "unitPriceCents": 5000},
        ])

    assert Service.query.filter(Service.code.like("CUSTOM-%")).count() == 0
    assert ProjectService.query.count() == before
    assert Quote.query.count() == 0


def test_wizard_unknown_service(admin_ctx, project):
    with pytest.raises(NotFoundError):
        quote_svc.create_quote(admin_ctx, project, lines=[{"serviceId": 9999}])


def test_send_assigns_number(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    year = quote.issued_at.year
    assert quote.number == f"SF-DEV-{year}-0001"

    other = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    assert other.number == f"SF-DEV-{year}-0002"
    assert project.quote_status == ProjectQuoteStatus.SENT


def test_sign_sets_reference(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = _signed(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    assert quote.signed_at == quote.signed_at.replace(hour=0, minute=0, second=0, microsecond=0)
    assert project.billing_quote_id == quote.id
    assert project.quote_status == ProjectQuoteStatus.SIGNED


def test_illegal_transition(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = quote_svc.create_quote(admin_ctx, project)
    with pytest.raises(ValidationError):
        quote_svc.transition(admin_ctx, quote, "SIGNED")
    with pytest.raises(ValidationError):
        quote_svc.transition(admin_ctx, quote, "BOGUS")
    assert quote.status == QuoteStatus.DRAFT


def test_cancel_requires_reason(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = quote_svc.create_quote(admin_ctx, project)
    with pytest.raises(ValidationError):
        quote_svc.transition(admin_ctx, quote, "CANCELLED", cancel_reason="   ")
    with pytest.raises(ValidationError):
        quote_svc.transition(admin_ctx, quote, "CANCELLED", cancel_reason="x" * 1001)

    quote_svc.transition(admin_ctx, quote, "CANCELLED", cancel_reason="Client parti")
    assert quote.cancelled_at is not None
    assert quote.cancel_reason == "Client parti"


def test_cancel_reference_falls_back(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    first = _signed(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    second = _signed(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    assert project.billing_quote_id == second.id

    quote_svc.transition(admin_ctx, second, "CANCELLED", cancel_reason="Remplacé")
    assert project.billing_quote_id == first.id

    quote_svc.transition(admin_ctx, first, "CANCELLED", cancel_reason="Abandon")
    assert project.billing_quote_id is None
    assert project.quote_status == ProjectQuoteStatus.DRAFT


def test_set_reference_requires_signed(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    first = _signed(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    second = _signed(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    draft = quote_svc.create_quote(admin_ctx, project)

    quote_svc.set_as_reference(admin_ctx, project, first)
    assert project.billing_quote_id == first.id
    with pytest.raises(ValidationError):
        quote_svc.set_as_reference(admin_ctx, project, draft)
    assert project.billing_quote_id == first.id
    assert second.status == QuoteStatus.SIGNED


def test_edit_items_in_draft_recomputes(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = quote_svc.create_quote(admin_ctx, project)
    item = quote.items[0]

    quote_svc.update_quote(admin_ctx, quote, {"items": [
        {"id": item.id, "label": "Dev", "quantity": 3, "unitPriceCents": 10000},
        {"label": "Extra", "quantity": 1, "unitPriceCents": "25,50"},
    ]})
    assert quote.total_cents == 32550
    assert quote.deposit_cents == 9765
    assert quote.balance_cents == 32550 - 9765


@pytest.mark.parametrize("bad", [
    {"label": "", "quantity": 1, "unitPriceCents": 100},
    {"label": "A", "quantity": 0, "unitPriceCents": 100},
    {"label": "A", "quantity": 1.5, "unitPriceCents": 100},
    {"label": "A", "quantity": 1, "unitPriceCents": -1},
    {"label": "A", "quantity": 1, "unitPriceCents": "abc"},
    {"label": "A", "quantity": 1, "unitPriceCents": "²"},
    {"label": "A", "quantity": 1, "unitPriceCents": 100, "serviceId": "²"},
])
def test_item_validation(admin_ctx, project, services, add_line, bad):
    add_line(services["DEV"])
    quote = quote_svc.create_quote(admin_ctx, project)
    with pytest.raises(ValidationError):
        quote_svc.update_quote(admin_ctx, quote, {"items": [bad]})
    assert quote.total_cents == 10000


def test_signed_quote_is_locked(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = _signed(admin_ctx, quote_svc.create_quote(admin_ctx, project))

    with pytest.raises(LockedError):
        quote_svc.update_quote(admin_ctx, quote, {"items": [
            {"label": "Dev", "quantity": 9, "unitPriceCents": 10000},
        ]})
    with pytest.raises(LockedError):
        quote_svc.update_quote(admin_ctx, quote, {"note": "trop tard"})

    db.session.expire_all()
    assert quote.total_cents == 10000
    assert quote.items[0].quantity == 1


def test_sent_quote_allows_meta_not_items(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    quote_svc.update_quote(admin_ctx, quote, {"note": "Merci"})
    assert quote.note == "Merci"
    with pytest.raises(LockedError):
        quote_svc.update_quote(admin_ctx, quote, {"items": [
            {"label": "Dev", "quantity": 1, "unitPriceCents": 1},
        ]})


def test_update_status_and_signed_at(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    quote_svc.update_quote(admin_ctx, quote, {"status": "SIGNED", "signedAt": "2025-02-03T16:45:00Z"})
    assert quote.signed_at == datetime(2025, 2, 3)

    quote_svc.update_quote(admin_ctx, quote, {"signedAt": "2025-02-10T09:00:00"})
    assert quote.signed_at == datetime(2025, 2, 10)


def test_update_guards(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = quote_svc.create_quote(admin_ctx, project)
    with pytest.raises(ValidationError):
        quote_svc.update_quote(admin_ctx, quote, {})
    with pytest.raises(ValidationError):
        quote_svc.update_quote(admin_ctx, quote, {"cancelReason": "x"})
    with pytest.raises(ValidationError):
        quote_svc.update_quote(admin_ctx, quote, {"signedAt": "2025-01-01"})
    with pytest.raises(ValidationError):
        quote_svc.update_quote(admin_ctx, quote, {"note": "x" * 2001})


def test_delete_rules(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    sent = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    with pytest.raises(LockedError):
        quote_svc.delete_quote(admin_ctx, sent)

    draft = quote_svc.create_quote(admin_ctx, project)
    draft_id = draft.id
    quote_svc.delete_quote(admin_ctx, draft)
    assert db.session.get(Quote, draft_id) is None


def test_delete_blocked_by_invoice(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    quote = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    db.session.add(Invoice(business_id=project.business_id, project_id=project.id, quote_id=quote.id))
    db.session.commit()
    quote_svc.transition(admin_ctx, quote, "CANCELLED", cancel_reason="Erreur")

    with pytest.raises(LockedError):
        quote_svc.delete_quote(admin_ctx, quote)


def test_expire_sweep(admin_ctx, project, services, add_line):
    add_line(services["DEV"])
    old = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    fresh = _sent(admin_ctx, quote_svc.create_quote(admin_ctx, project))
    old.expires_at = datetime.utcnow() - timedelta(days=1)
    db.session.commit()

    assert quote_svc.expire_overdue_quotes() == 1
    assert old.status == QuoteStatus.EXPIRED
    assert fresh.status == QuoteStatus.SENT
