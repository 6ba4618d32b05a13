from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy import func

from .. import db
from ..models import Invoice, InvoiceStatus, Payment, Quote, QuoteStatus
from ..money import round_percent
from .payments import backfill_legacy_payments
from .pricing import compute_project_pricing


@dataclass
class BillingSummary:
    project_id: int
    business_id: int
    client_id: Optional[int]
    source: str  # QUOTE | PRICING
    reference_quote_id: Optional[int]
    currency: str
    total_cents: int
    deposit_percent: int
    deposit_cents: int
    balance_cents: int
    vat_rate: Optional[int]
    vat_cents: int
    total_ttc_cents: int
    already_invoiced_cents: int
    already_paid_cents: int
    remaining_to_collect_cents: int
    remaining_cents: int

    def to_dict(self):
        return asdict(self)


def resolve_reference_quote(project) -> Optional[Quote]:
    """The designated SIGNED quote, else the most recently issued SIGNED one."""
    signed = Quote.query.filter_by(
        business_id=project.business_id,
        project_id=project.id,
        status=QuoteStatus.SIGNED,
    )
    if project.billing_quote_id:
        by_id = signed.filter(Quote.id == project.billing_quote_id).first()
        if by_id:
            return by_id
    return (signed
            .order_by(Quote.issued_at.desc(), Quote.id.desc())
            .first())


def invoiced_and_paid(project):
    """Sums over the project's non-cancelled invoices and their live payments."""
    live_invoices = (Invoice.query
                     .filter(Invoice.business_id == project.business_id)
                     .filter(Invoice.project_id == project.id)
                     .filter(Invoice.status != InvoiceStatus.CANCELLED))

    invoiced = (live_invoices
                .with_entities(func.coalesce(func.sum(Invoice.total_cents), 0))
                .scalar()) or 0

    paid = (db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
            .join(Invoice, Invoice.id == Payment.invoice_id)
            .filter(Invoice.business_id == project.business_id)
            .filter(Invoice.project_id == project.id)
            .filter(Invoice.status != InvoiceStatus.CANCELLED)
            .filter(Payment.deleted_at.is_(None))
            .scalar()) or 0

    return int(invoiced), int(paid)


def compute_summary(project) -> BillingSummary:
    backfill_legacy_payments(project.invoices.filter(Invoice.status == InvoiceStatus.PAID).all())
    ref = resolve_reference_quote(project)

    if ref is not None:
        total = int(ref.total_cents)
        deposit_percent = ref.deposit_percent
        deposit = int(ref.deposit_cents)
        balance = int(ref.balance_cents)
        currency = ref.currency
        vat_rate = ref.vat_rate
        client_id = ref.client_id or project.client_id
    else:
        pricing = compute_project_pricing(project)
        total = pricing.total_cents
        deposit_percent = pricing.deposit_percent
        deposit = pricing.deposit_cents
        balance = pricing.balance_cents
        currency = pricing.currency
        settings = project.business.settings if project.business else None
        vat_rate = settings.vat_rate if settings and settings.vat_enabled else None
        client_id = project.client_id

    vat = round_percent(total, vat_rate) if vat_rate else 0
    invoiced, paid = invoiced_and_paid(project)

    return BillingSummary(
        project_id=project.id,
        business_id=project.business_id,
        client_id=client_id,
        source="QUOTE" if ref is not None else "PRICING",
        reference_quote_id=ref.id if ref is not None else None,
        currency=currency,
        total_cents=total,
        deposit_percent=deposit_percent,
        deposit_cents=deposit,
        balance_cents=balance,
        vat_rate=vat_rate,
        vat_cents=vat,
        total_ttc_cents=total + vat,
        already_invoiced_cents=invoiced,
        already_paid_cents=paid,
        remaining_to_collect_cents=max(0, invoiced - paid),
        remaining_cents=max(0, total - invoiced),
    )
