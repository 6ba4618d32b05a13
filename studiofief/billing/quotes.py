from datetime import datetime, timedelta

from flask import current_app

from .. import db
from ..audit import log_audit
from ..errors import LockedError, ValidationError
from ..models import (
    Invoice, ProjectQuoteStatus, Quote, QuoteItem, QuoteStatus,
)
from ..money import clamp_percent, parse_cents_input, to_day
from ..utils import parse_date_opt, parse_int, parse_text_opt
from .items import header_totals, parse_item_edits, snapshot_line
from .lines import attach_service, create_custom_service
from .numbering import assign_document_number, get_settings
from .pricing import compute_project_pricing
from .scope import get_project_service, get_service, require_admin, unit_of_work

QUOTE_TRANSITIONS = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT, QuoteStatus.CANCELLED},
    QuoteStatus.SENT: {QuoteStatus.SIGNED, QuoteStatus.CANCELLED, QuoteStatus.EXPIRED},
    QuoteStatus.SIGNED: {QuoteStatus.CANCELLED},
    QuoteStatus.CANCELLED: set(),
    QuoteStatus.EXPIRED: set(),
}

META_EDITABLE = {QuoteStatus.DRAFT, QuoteStatus.SENT}
DELETABLE = {QuoteStatus.DRAFT, QuoteStatus.CANCELLED, QuoteStatus.EXPIRED}


def can_transition(current: QuoteStatus, nxt: QuoteStatus) -> bool:
    return nxt in QUOTE_TRANSITIONS.get(current, set())


def _parse_status(raw):
    try:
        return QuoteStatus(raw)
    except ValueError:
        raise ValidationError("status invalide.")


def _parse_cancel_reason(raw):
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("cancelReason requis pour annuler un devis.")
    reason = raw.strip()
    if len(reason) > 1000:
        raise ValidationError("cancelReason trop long (1000 max).")
    return reason


# -------------------------
# Creation
# -------------------------
def _attach_wizard_lines(ctx, project, lines):
    """Validate every wizard entry, then create catalog services and project lines."""
    if not isinstance(lines, list):
        raise ValidationError("lines invalides.")

    plan = []
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("lines invalides.")
        if raw.get("projectServiceId") is not None:
            get_project_service(ctx, project, parse_int(raw["projectServiceId"], "projectServiceId"))
            continue
        if raw.get("serviceId") is not None:
            plan.append(("catalog", get_service(ctx, parse_int(raw["serviceId"], "serviceId")), raw))
            continue

        label = raw.get("label")
        if not isinstance(label, str) or not label.strip():
            raise ValidationError("Libellé requis pour une ligne personnalisée.")
        unit = parse_cents_input(raw.get("unitPriceCents"))
        if unit is None or unit < 0:
            raise ValidationError("Prix unitaire requis pour une ligne personnalisée.")
        qty = parse_int(raw.get("quantity", 1), "quantity")
        if qty < 1:
            raise ValidationError("Quantité invalide (entier >= 1).")
        plan.append(("custom", (label.strip()[:200], unit), raw))

    for kind, target, raw in plan:
        if kind == "catalog":
            attach_service(ctx, project, target, raw)
        else:
            label, unit = target
            svc = create_custom_service(ctx, label, unit, description=raw.get("description"))
            attach_service(ctx, project, svc, {
                "quantity": raw.get("quantity", 1),
                "description": raw.get("description"),
            })
    db.session.refresh(project)


def create_quote(ctx, project, lines=None) -> Quote:
    """Snapshot the project's priced lines into a DRAFT quote.

    ``lines`` lets the caller attach catalog or custom lines first; the
    attachments and the quote share one transaction.
    """
    require_admin(ctx)

    with unit_of_work():
        if lines:
            _attach_wizard_lines(ctx, project, lines)

        pricing = compute_project_pricing(project)
        if not pricing.lines:
            raise ValidationError("Aucune prestation à chiffrer sur ce projet.")
        if pricing.missing_price_lines:
            labels = ", ".join(ln.label for ln in pricing.missing_price_lines)
            raise ValidationError(f"Prix manquant: {labels}.")

        settings = get_settings(ctx.business_id)
        validity = current_app.config.get("QUOTE_VALIDITY_DAYS", 30)

        quote = Quote(
            business_id=ctx.business_id,
            project_id=project.id,
            client_id=pricing.client_id,
            created_by_user_id=ctx.user_id,
            status=QuoteStatus.DRAFT,
            currency=pricing.currency,
            deposit_percent=pricing.deposit_percent,
            vat_rate=settings.vat_rate if settings.vat_enabled else None,
            total_cents=pricing.total_cents,
            deposit_cents=pricing.deposit_cents,
            balance_cents=pricing.balance_cents,
            expires_at=datetime.utcnow() + timedelta(days=validity),
        )
        for ln in pricing.lines:
            quote.items.append(QuoteItem(**snapshot_line(ln)))

        db.session.add(quote)
        db.session.flush()
        log_audit(ctx, "quote", quote.id, "create", new=quote.total_cents)

    current_app.logger.info(
        "business %s project %s: quote %s created (%s cents)",
        ctx.business_id, project.id, quote.id, quote.total_cents,
    )
    return quote


# -------------------------
# Transitions
# -------------------------
def _replace_billing_reference(ctx, quote):
    project = quote.project
    if project.billing_quote_id != quote.id:
        return
    replacement = (Quote.query
                   .filter_by(business_id=ctx.business_id, project_id=project.id, status=QuoteStatus.SIGNED)
                   .filter(Quote.id != quote.id)
                   .order_by(Quote.issued_at.desc(), Quote.id.desc())
                   .first())
    project.billing_quote_id = replacement.id if replacement else None
    project.quote_status = ProjectQuoteStatus.SIGNED if replacement else ProjectQuoteStatus.DRAFT


def _apply_transition(ctx, quote, nxt, cancel_reason=None, signed_at=None):
    current = quote.status
    if not can_transition(current, nxt):
        raise ValidationError(f"Transition de statut refusée ({current.value} -> {nxt.value}).")
    if nxt == QuoteStatus.CANCELLED:
        cancel_reason = _parse_cancel_reason(cancel_reason)

    now = datetime.utcnow()
    quote.status = nxt

    if nxt == QuoteStatus.SENT:
        if not quote.issued_at:
            quote.issued_at = now
        if not quote.number:
            quote.number = assign_document_number(ctx.business_id, "QUOTE", quote.issued_at)
        if quote.project.quote_status == ProjectQuoteStatus.DRAFT:
            quote.project.quote_status = ProjectQuoteStatus.SENT

    elif nxt == QuoteStatus.SIGNED:
        quote.signed_at = to_day(signed_at or quote.signed_at or now)
        quote.project.billing_quote_id = quote.id
        quote.project.quote_status = ProjectQuoteStatus.SIGNED

    elif nxt == QuoteStatus.CANCELLED:
        quote.cancel_reason = cancel_reason
        quote.cancelled_at = now
        db.session.flush()
        _replace_billing_reference(ctx, quote)

    log_audit(ctx, "quote", quote.id, "status", field="status", old=current, new=nxt)


def transition(ctx, quote, nxt, cancel_reason=None, signed_at=None) -> Quote:
    require_admin(ctx)
    nxt = _parse_status(nxt)
    with unit_of_work():
        _apply_transition(ctx, quote, nxt, cancel_reason=cancel_reason, signed_at=signed_at)
    current_app.logger.info("business %s: quote %s -> %s", ctx.business_id, quote.id, nxt.value)
    return quote


# -------------------------
# Update
# -------------------------
def update_quote(ctx, quote, payload: dict) -> Quote:
    """Apply a PATCH payload: status, note, dates, cancel reason, items.

    Everything is validated before the first write.
    """
    require_admin(ctx)

    has_status = "status" in payload
    nxt = _parse_status(payload["status"]) if has_status else quote.status
    changes_status = has_status and nxt != quote.status

    wants_items = "items" in payload
    wants_meta = any(k in payload for k in ("note", "issuedAt", "expiresAt"))
    wants_signed_at = "signedAt" in payload
    wants_reason = "cancelReason" in payload

    if not (has_status or wants_items or wants_meta or wants_signed_at or wants_reason):
        raise ValidationError("Aucune modification.")

    if wants_reason and nxt != QuoteStatus.CANCELLED:
        raise ValidationError("cancelReason requiert status=CANCELLED.")
    if wants_signed_at and payload["signedAt"] is not None and nxt != QuoteStatus.SIGNED:
        raise ValidationError("signedAt requiert status=SIGNED.")

    if (wants_meta or wants_items) and quote.status not in META_EDITABLE:
        raise LockedError("Devis signé, annulé ou expiré: modification interdite.")
    if wants_items and quote.status != QuoteStatus.DRAFT:
        raise LockedError("Modification des lignes uniquement en brouillon.")

    if changes_status and not can_transition(quote.status, nxt):
        raise ValidationError(f"Transition de statut refusée ({quote.status.value} -> {nxt.value}).")
    if changes_status and nxt == QuoteStatus.CANCELLED:
        _parse_cancel_reason(payload.get("cancelReason"))

    data = {}
    if "note" in payload:
        data["note"] = parse_text_opt(payload["note"], "note", 2000)
    if "issuedAt" in payload:
        data["issued_at"] = parse_date_opt(payload["issuedAt"], "issuedAt")
    if "expiresAt" in payload:
        data["expires_at"] = parse_date_opt(payload["expiresAt"], "expiresAt")
    signed_at = parse_date_opt(payload.get("signedAt"), "signedAt") if wants_signed_at else None

    items = parse_item_edits(payload["items"], quote.items, ctx.business_id) if wants_items else None

    with unit_of_work():
        for k, v in data.items():
            log_audit(ctx, "quote", quote.id, "update", field=k, old=getattr(quote, k), new=v)
            setattr(quote, k, v)

        if items is not None:
            quote.items.clear()
            for it in items:
                quote.items.append(QuoteItem(**it))
            total, deposit, balance = header_totals(items, clamp_percent(quote.deposit_percent))
            log_audit(ctx, "quote", quote.id, "items", field="total_cents", old=quote.total_cents, new=total)
            quote.total_cents, quote.deposit_cents, quote.balance_cents = total, deposit, balance

        if changes_status:
            _apply_transition(ctx, quote, nxt, cancel_reason=payload.get("cancelReason"), signed_at=signed_at)
        elif wants_signed_at and quote.status == QuoteStatus.SIGNED:
            # signature date correction
            new_signed = to_day(signed_at) if signed_at else quote.signed_at
            log_audit(ctx, "quote", quote.id, "update", field="signed_at", old=quote.signed_at, new=new_signed)
            quote.signed_at = new_signed

    current_app.logger.info("business %s: quote %s updated", ctx.business_id, quote.id)
    return quote


# -------------------------
# Reference + delete
# -------------------------
def set_as_reference(ctx, project, quote) -> Quote:
    require_admin(ctx)
    if quote.project_id != project.id:
        raise ValidationError("Ce devis n'appartient pas au projet.")
    if quote.status != QuoteStatus.SIGNED:
        raise ValidationError("Seul un devis signé peut servir de référence.")

    with unit_of_work():
        log_audit(ctx, "project", project.id, "update", field="billing_quote_id",
                  old=project.billing_quote_id, new=quote.id)
        project.billing_quote_id = quote.id
        project.quote_status = ProjectQuoteStatus.SIGNED
    return quote


def delete_quote(ctx, quote):
    require_admin(ctx)
    if quote.status not in DELETABLE or quote.signed_at:
        raise LockedError("Suppression autorisée uniquement pour les devis brouillons, annulés ou expirés jamais signés.")
    if Invoice.query.filter_by(quote_id=quote.id).count():
        raise LockedError("Impossible de supprimer: facture liée.")

    quote_id = quote.id
    with unit_of_work():
        log_audit(ctx, "quote", quote_id, "delete", old=quote.status)
        db.session.delete(quote)
    current_app.logger.info("business %s: quote %s deleted", ctx.business_id, quote_id)


def expire_overdue_quotes(now=None) -> int:
    """SENT quotes past their expiry date become EXPIRED."""
    now = now or datetime.utcnow()
    overdue = (Quote.query
               .filter(Quote.status == QuoteStatus.SENT)
               .filter(Quote.expires_at.isnot(None))
               .filter(Quote.expires_at < now)
               .all())
    with unit_of_work():
        for q in overdue:
            q.status = QuoteStatus.EXPIRED
            entry = log_audit(None, "quote", q.id, "status", field="status",
                              old=QuoteStatus.SENT, new=QuoteStatus.EXPIRED)
            entry.business_id = q.business_id
    return len(overdue)
