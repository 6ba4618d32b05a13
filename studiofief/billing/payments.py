import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func

from .. import db
from ..audit import log_audit
from ..errors import NotFoundError, OverLimitError, ValidationError
from ..models import Invoice, InvoiceStatus, Payment, PaymentMethod
from ..money import round_percent
from .scope import require_admin, unit_of_work

PAYABLE = {InvoiceStatus.SENT, InvoiceStatus.PAID}
SHORTCUT_PERCENTS = (25, 50, 100)
LEGACY_NOTE = "Reprise du statut payé (avant suivi des paiements)"


class PaymentStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


@dataclass
class PaymentSummary:
    total_cents: int
    paid_cents: int
    remaining_cents: int
    payment_status: PaymentStatus
    last_paid_at: Optional[datetime]


def get_current_collected(invoice_id: int) -> int:
    """Sum of live payments for an invoice."""
    total = (db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
             .filter(Payment.invoice_id == invoice_id)
             .filter(Payment.deleted_at.is_(None))
             .scalar())
    return int(total or 0)


def status_for(paid_cents: int, total_cents: int) -> PaymentStatus:
    if paid_cents <= 0:
        return PaymentStatus.UNPAID
    if paid_cents >= total_cents:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def derive_payment_summary(invoice, paid_cents: int, last_paid_at=None) -> PaymentSummary:
    total = int(invoice.total_cents or 0)
    return PaymentSummary(
        total_cents=total,
        paid_cents=paid_cents,
        remaining_cents=max(0, total - paid_cents),
        payment_status=status_for(paid_cents, total),
        last_paid_at=last_paid_at,
    )


def ensure_legacy_payment(invoice) -> Optional[Payment]:
    """Backfill one payment row for an invoice marked PAID before payments were tracked.

    Flushes only; the caller owns the transaction.
    """
    if invoice.status != InvoiceStatus.PAID or not invoice.paid_at or int(invoice.total_cents or 0) <= 0:
        return None
    existing = (Payment.query
                .filter(Payment.invoice_id == invoice.id)
                .filter(Payment.deleted_at.is_(None))
                .first())
    if existing:
        return None

    payment = Payment(
        business_id=invoice.business_id,
        invoice_id=invoice.id,
        project_id=invoice.project_id,
        client_id=invoice.client_id,
        created_by_user_id=invoice.created_by_user_id,
        amount_cents=int(invoice.total_cents),
        paid_at=invoice.paid_at,
        method=PaymentMethod.OTHER,
        note=LEGACY_NOTE,
    )
    db.session.add(payment)
    db.session.flush()
    current_app.logger.info("invoice %s: legacy payment %s backfilled", invoice.id, payment.id)
    return payment


def backfill_legacy_payments(invoices) -> int:
    legacy = [inv for inv in invoices if inv.status == InvoiceStatus.PAID and inv.paid_at and inv.total_cents]
    if not legacy:
        return 0
    with unit_of_work():
        created = [p for p in (ensure_legacy_payment(inv) for inv in legacy) if p is not None]
    return len(created)


def payment_summary(invoice) -> PaymentSummary:
    backfill_legacy_payments([invoice])
    paid, last = (db.session.query(
        func.coalesce(func.sum(Payment.amount_cents), 0),
        func.max(Payment.paid_at),
    )
        .filter(Payment.invoice_id == invoice.id)
        .filter(Payment.deleted_at.is_(None))
        .one())
    return derive_payment_summary(invoice, int(paid or 0), last)


def payment_shortcuts(remaining_cents: int) -> list:
    remaining = max(0, int(remaining_cents or 0))
    return [{"percent": p, "amountCents": round_percent(remaining, p)} for p in SHORTCUT_PERCENTS]


def list_payments(invoice) -> list:
    return (invoice.payments
            .filter(Payment.deleted_at.is_(None))
            .order_by(Payment.paid_at.desc(), Payment.id.desc())
            .all())


def _parse_method(raw):
    try:
        return PaymentMethod(raw or "WIRE")
    except ValueError:
        raise ValidationError("Méthode de paiement invalide.")


def record_payment(ctx, invoice, amount_cents, paid_at=None, method="WIRE",
                   reference=None, note=None) -> Payment:
    """Insert a payment, flipping the invoice to PAID once fully covered.

    The invoice row is locked before the collected sum is re-read, so two
    concurrent payments cannot both fit the same remaining balance.
    """
    require_admin(ctx)

    if invoice.status not in PAYABLE:
        raise ValidationError("Paiement possible uniquement sur une facture envoyée.")
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("Le montant doit être supérieur à 0.")
    method = _parse_method(method)

    with unit_of_work():
        locked = (Invoice.query
                  .filter_by(id=invoice.id, business_id=ctx.business_id)
                  .with_for_update()
                  .one())
        ensure_legacy_payment(locked)
        collected = get_current_collected(locked.id)
        remaining = int(locked.total_cents) - collected
        if amount_cents > remaining:
            raise OverLimitError(f"Montant supérieur au reste à payer ({max(0, remaining)} centimes).")

        payment = Payment(
            business_id=ctx.business_id,
            invoice_id=locked.id,
            project_id=locked.project_id,
            client_id=locked.client_id,
            amount_cents=amount_cents,
            paid_at=paid_at or datetime.utcnow(),
            method=method,
            reference=reference,
            note=note,
            created_by_user_id=ctx.user_id,
        )
        db.session.add(payment)
        db.session.flush()
        log_audit(ctx, "payment", payment.id, "create", field="amount_cents", new=amount_cents)

        if collected + amount_cents >= int(locked.total_cents) and locked.status != InvoiceStatus.PAID:
            log_audit(ctx, "invoice", locked.id, "status", field="status", old=locked.status, new=InvoiceStatus.PAID)
            locked.status = InvoiceStatus.PAID
            if not locked.paid_at:
                locked.paid_at = payment.paid_at

    current_app.logger.info(
        "business %s: payment %s on invoice %s (%s cents, %s remaining)",
        ctx.business_id, payment.id, invoice.id, amount_cents, remaining - amount_cents,
    )
    return payment


def delete_payment(ctx, invoice, payment_id) -> Payment:
    """Soft-delete a payment; a PAID invoice no longer covered goes back to SENT."""
    require_admin(ctx)

    payment = (invoice.payments
               .filter(Payment.id == payment_id)
               .filter(Payment.deleted_at.is_(None))
               .first())
    if not payment:
        raise NotFoundError("Paiement introuvable.")

    with unit_of_work():
        locked = (Invoice.query
                  .filter_by(id=invoice.id, business_id=ctx.business_id)
                  .with_for_update()
                  .one())
        payment.deleted_at = datetime.utcnow()
        db.session.flush()
        log_audit(ctx, "payment", payment.id, "delete", field="amount_cents", old=payment.amount_cents)

        if locked.status == InvoiceStatus.PAID and get_current_collected(locked.id) < int(locked.total_cents):
            log_audit(ctx, "invoice", locked.id, "status", field="status", old=locked.status, new=InvoiceStatus.SENT)
            locked.status = InvoiceStatus.SENT
            locked.paid_at = None

    current_app.logger.info(
        "business %s: payment %s on invoice %s deleted", ctx.business_id, payment.id, invoice.id,
    )
    return payment
