from datetime import datetime, timedelta

from flask import current_app

from .. import db
from ..audit import log_audit
from ..errors import LockedError, OverLimitError, ValidationError
from ..models import (
    BillingUnit, DiscountType, Invoice, InvoiceItem, InvoiceStatus, QuoteStatus,
)
from ..money import clamp_percent, round_percent
from ..utils import parse_date_opt, parse_text_opt
from .items import copy_item, header_totals, parse_item_edits
from .numbering import assign_document_number, get_settings
from .scope import require_admin, unit_of_work
from .summary import compute_summary

# PAID is reached only through the payment ledger.
INVOICE_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.CANCELLED},
    InvoiceStatus.SENT: {InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: set(),
    InvoiceStatus.CANCELLED: set(),
}

META_EDITABLE = {InvoiceStatus.DRAFT, InvoiceStatus.SENT}
DELETABLE = {InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED}
INVOICEABLE_QUOTES = {QuoteStatus.SENT, QuoteStatus.SIGNED}
STAGED_MODES = ("PERCENT", "AMOUNT", "FINAL")


def can_transition(current: InvoiceStatus, nxt: InvoiceStatus) -> bool:
    return nxt in INVOICE_TRANSITIONS.get(current, set())


def _parse_status(raw):
    try:
        nxt = InvoiceStatus(raw)
    except ValueError:
        raise ValidationError("status invalide.")
    if nxt == InvoiceStatus.PAID:
        raise ValidationError("Le statut PAID est fixé par les paiements.")
    return nxt


def _due_date(business_id, start=None):
    settings = get_settings(business_id)
    days = settings.payment_terms_days or current_app.config.get("DEFAULT_PAYMENT_TERMS_DAYS", 30)
    return (start or datetime.utcnow()) + timedelta(days=days)


# -------------------------
# Creation
# -------------------------
def create_from_quote(ctx, quote) -> Invoice:
    """One full invoice per quote, items and totals copied verbatim."""
    require_admin(ctx)

    if quote.status not in INVOICEABLE_QUOTES:
        raise ValidationError("Le devis doit être envoyé ou signé pour être facturé.")

    existing = (Invoice.query
                .filter_by(business_id=ctx.business_id, quote_id=quote.id)
                .filter(Invoice.status != InvoiceStatus.CANCELLED)
                .first())
    if existing:
        raise ValidationError("Une facture existe déjà pour ce devis.")

    project = quote.project
    if project.billing_quote_id and project.billing_quote_id != quote.id:
        raise ValidationError("Seul le devis de référence du projet peut être facturé.")

    with unit_of_work():
        invoice = Invoice(
            business_id=ctx.business_id,
            project_id=quote.project_id,
            client_id=quote.client_id,
            quote_id=quote.id,
            created_by_user_id=ctx.user_id,
            status=InvoiceStatus.DRAFT,
            currency=quote.currency,
            deposit_percent=quote.deposit_percent,
            total_cents=quote.total_cents,
            deposit_cents=quote.deposit_cents,
            balance_cents=quote.balance_cents,
            due_at=_due_date(ctx.business_id),
        )
        for item in quote.items:
            invoice.items.append(InvoiceItem(**copy_item(item)))

        db.session.add(invoice)
        db.session.flush()
        log_audit(ctx, "invoice", invoice.id, "create", field="quote_id", new=quote.id)

    current_app.logger.info(
        "business %s: invoice %s created from quote %s (%s cents)",
        ctx.business_id, invoice.id, quote.id, invoice.total_cents,
    )
    return invoice


def _staged_amount(mode, value, total, remaining):
    if mode == "FINAL":
        return remaining, "Facture finale"

    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        raise ValidationError("value invalide.")

    if mode == "PERCENT":
        if value <= 0 or value > 100:
            raise ValidationError("Le pourcentage doit être entre 1 et 100.")
        shown = int(value) if float(value).is_integer() else value
        return round_percent(total, value), f"Situation de paiement ({shown}%)"

    if value <= 0 or value == float("inf"):
        raise ValidationError("Le montant doit être supérieur à 0.")
    return int(value), "Situation de paiement"


def create_staged(ctx, project, mode, value=None) -> Invoice:
    """Partial invoice: a percentage of the project total, a fixed amount or the remainder."""
    require_admin(ctx)

    if mode not in STAGED_MODES:
        raise ValidationError("mode invalide.")

    summary = compute_summary(project)
    if summary.total_cents <= 0:
        raise ValidationError("Total projet indisponible.")

    remaining = summary.remaining_cents
    if remaining <= 0:
        raise OverLimitError("Aucun montant restant à facturer.")

    amount, label = _staged_amount(mode, value, summary.total_cents, remaining)
    if amount <= 0:
        raise ValidationError("Montant nul.")
    if amount > remaining:
        raise OverLimitError("Montant supérieur au reste à facturer.")

    with unit_of_work():
        invoice = Invoice(
            business_id=ctx.business_id,
            project_id=project.id,
            client_id=summary.client_id,
            created_by_user_id=ctx.user_id,
            status=InvoiceStatus.DRAFT,
            currency=summary.currency,
            deposit_percent=0,
            total_cents=amount,
            deposit_cents=0,
            balance_cents=amount,
            due_at=_due_date(ctx.business_id),
        )
        invoice.items.append(InvoiceItem(
            label=label,
            discount_type=DiscountType.NONE,
            billing_unit=BillingUnit.ONE_OFF,
            quantity=1,
            unit_price_cents=amount,
            total_cents=amount,
        ))
        db.session.add(invoice)
        db.session.flush()
        log_audit(ctx, "invoice", invoice.id, "create", field="staged", new=f"{mode}:{amount}")

    current_app.logger.info(
        "business %s project %s: staged invoice %s (%s, %s cents, %s remaining before)",
        ctx.business_id, project.id, invoice.id, mode, amount, remaining,
    )
    return invoice


# -------------------------
# Transitions
# -------------------------
def _apply_transition(ctx, invoice, nxt):
    current = invoice.status
    if not can_transition(current, nxt):
        raise ValidationError(f"Transition de statut refusée ({current.value} -> {nxt.value}).")

    now = datetime.utcnow()
    invoice.status = nxt
    if nxt == InvoiceStatus.SENT:
        if not invoice.issued_at:
            invoice.issued_at = now
        if not invoice.number:
            invoice.number = assign_document_number(ctx.business_id, "INVOICE", invoice.issued_at)
    elif nxt == InvoiceStatus.CANCELLED:
        invoice.cancelled_at = now

    log_audit(ctx, "invoice", invoice.id, "status", field="status", old=current, new=nxt)


def transition(ctx, invoice, nxt) -> Invoice:
    require_admin(ctx)
    nxt = _parse_status(nxt)
    with unit_of_work():
        _apply_transition(ctx, invoice, nxt)
    current_app.logger.info("business %s: invoice %s -> %s", ctx.business_id, invoice.id, nxt.value)
    return invoice


# -------------------------
# Update + delete
# -------------------------
def update_invoice(ctx, invoice, payload: dict) -> Invoice:
    require_admin(ctx)

    has_status = "status" in payload
    nxt = _parse_status(payload["status"]) if has_status else invoice.status
    changes_status = has_status and nxt != invoice.status

    wants_items = "items" in payload
    wants_meta = any(k in payload for k in ("note", "issuedAt", "dueAt"))
    wants_paid_at = "paidAt" in payload

    if not (has_status or wants_items or wants_meta or wants_paid_at):
        raise ValidationError("Aucune modification.")

    if wants_meta and invoice.status not in META_EDITABLE:
        raise LockedError("Facture payée ou annulée: modification interdite.")
    if wants_items and invoice.status != InvoiceStatus.DRAFT:
        raise LockedError("Modification des lignes uniquement en brouillon.")
    if wants_paid_at and invoice.status != InvoiceStatus.PAID:
        raise ValidationError("paidAt modifiable uniquement sur une facture payée.")
    if changes_status and not can_transition(invoice.status, nxt):
        raise ValidationError(f"Transition de statut refusée ({invoice.status.value} -> {nxt.value}).")

    data = {}
    if "note" in payload:
        data["note"] = parse_text_opt(payload["note"], "note", 2000)
    if "issuedAt" in payload:
        data["issued_at"] = parse_date_opt(payload["issuedAt"], "issuedAt")
    if "dueAt" in payload:
        data["due_at"] = parse_date_opt(payload["dueAt"], "dueAt")
    if wants_paid_at:
        paid_at = parse_date_opt(payload["paidAt"], "paidAt")
        if paid_at is None:
            raise ValidationError("paidAt requis.")
        data["paid_at"] = paid_at

    items = parse_item_edits(payload["items"], invoice.items, ctx.business_id) if wants_items else None

    with unit_of_work():
        for k, v in data.items():
            log_audit(ctx, "invoice", invoice.id, "update", field=k, old=getattr(invoice, k), new=v)
            setattr(invoice, k, v)

        if items is not None:
            invoice.items.clear()
            for it in items:
                invoice.items.append(InvoiceItem(**it))
            total, deposit, balance = header_totals(items, clamp_percent(invoice.deposit_percent))
            log_audit(ctx, "invoice", invoice.id, "items", field="total_cents", old=invoice.total_cents, new=total)
            invoice.total_cents, invoice.deposit_cents, invoice.balance_cents = total, deposit, balance

        if changes_status:
            _apply_transition(ctx, invoice, nxt)

    current_app.logger.info("business %s: invoice %s updated", ctx.business_id, invoice.id)
    return invoice


def delete_invoice(ctx, invoice):
    require_admin(ctx)
    if invoice.status not in DELETABLE:
        raise LockedError("Suppression autorisée uniquement pour les factures brouillons ou annulées.")

    invoice_id = invoice.id
    with unit_of_work():
        log_audit(ctx, "invoice", invoice_id, "delete", old=invoice.status)
        db.session.delete(invoice)
    current_app.logger.info("business %s: invoice %s deleted", ctx.business_id, invoice_id)
