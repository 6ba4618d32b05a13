"""camelCase JSON shapes for API responses. Amounts are integer cents."""
from .utils import iso


def _v(e):
    return e.value if e is not None else None


def settings_json(s):
    return {
        "businessId": s.business_id,
        "defaultDepositPercent": s.default_deposit_percent,
        "vatEnabled": bool(s.vat_enabled),
        "vatRate": s.vat_rate,
        "paymentTermsDays": s.payment_terms_days,
        "quotePrefix": s.quote_prefix,
        "invoicePrefix": s.invoice_prefix,
        "nextQuoteNumber": s.next_quote_number,
        "nextInvoiceNumber": s.next_invoice_number,
        "updatedAt": iso(s.updated_at),
    }


def service_json(s):
    return {
        "id": s.id,
        "businessId": s.business_id,
        "code": s.code,
        "name": s.name,
        "description": s.description,
        "defaultPriceCents": s.default_price_cents,
        "tjmCents": s.tjm_cents,
        "vatRate": s.vat_rate,
        "isArchived": bool(s.is_archived),
    }


def project_service_json(ps, line=None):
    """A project line, with its resolved price when ``line`` (a PricingLine) is given."""
    out = {
        "id": ps.id,
        "projectId": ps.project_id,
        "serviceId": ps.service_id,
        "service": service_json(ps.service) if ps.service else None,
        "quantity": ps.quantity,
        "priceCents": ps.price_cents,
        "discountType": _v(ps.discount_type),
        "discountValue": ps.discount_value,
        "billingUnit": _v(ps.billing_unit),
        "unitLabel": ps.unit_label,
        "titleOverride": ps.title_override,
        "description": ps.description,
        "position": ps.position,
    }
    if line is not None:
        out.update({
            "unitPriceCents": line.unit_price_cents,
            "totalCents": line.total_cents,
            "priceSource": line.price_source,
            "missingPrice": line.missing_price,
        })
    return out


def pricing_line_json(ln):
    return {
        "projectServiceId": ln.project_service_id,
        "serviceId": ln.service_id,
        "label": ln.label,
        "description": ln.description,
        "quantity": ln.quantity,
        "unitPriceCents": ln.unit_price_cents,
        "originalUnitPriceCents": ln.original_unit_price_cents,
        "discountType": _v(ln.discount_type),
        "discountValue": ln.discount_value,
        "billingUnit": _v(ln.billing_unit),
        "unitLabel": ln.unit_label,
        "totalCents": ln.total_cents,
        "priceSource": ln.price_source,
        "missingPrice": ln.missing_price,
    }


def pricing_json(p):
    return {
        "projectId": p.project_id,
        "businessId": p.business_id,
        "clientId": p.client_id,
        "currency": p.currency,
        "depositPercent": p.deposit_percent,
        "totalCents": p.total_cents,
        "depositCents": p.deposit_cents,
        "balanceCents": p.balance_cents,
        "missingPriceCount": len(p.missing_price_lines),
        "lines": [pricing_line_json(ln) for ln in p.lines],
    }


def summary_json(s):
    return {
        "projectId": s.project_id,
        "businessId": s.business_id,
        "clientId": s.client_id,
        "source": s.source,
        "referenceQuoteId": s.reference_quote_id,
        "currency": s.currency,
        "totalCents": s.total_cents,
        "depositPercent": s.deposit_percent,
        "depositCents": s.deposit_cents,
        "balanceCents": s.balance_cents,
        "vatRate": s.vat_rate,
        "vatCents": s.vat_cents,
        "totalTtcCents": s.total_ttc_cents,
        "alreadyInvoicedCents": s.already_invoiced_cents,
        "alreadyPaidCents": s.already_paid_cents,
        "remainingToCollectCents": s.remaining_to_collect_cents,
        "remainingCents": s.remaining_cents,
    }


def project_json(p):
    return {
        "id": p.id,
        "businessId": p.business_id,
        "clientId": p.client_id,
        "name": p.name,
        "quoteStatus": _v(p.quote_status),
        "depositStatus": _v(p.deposit_status),
        "depositPaidAt": iso(p.deposit_paid_at),
        "billingQuoteId": p.billing_quote_id,
    }


def item_json(it):
    return {
        "id": it.id,
        "serviceId": it.service_id,
        "label": it.label,
        "description": it.description,
        "discountType": _v(it.discount_type),
        "discountValue": it.discount_value,
        "originalUnitPriceCents": it.original_unit_price_cents,
        "billingUnit": _v(it.billing_unit),
        "unitLabel": it.unit_label,
        "quantity": it.quantity,
        "unitPriceCents": it.unit_price_cents,
        "totalCents": it.total_cents,
    }


def quote_json(q, with_items=True):
    out = {
        "id": q.id,
        "businessId": q.business_id,
        "projectId": q.project_id,
        "clientId": q.client_id,
        "number": q.number,
        "status": _v(q.status),
        "currency": q.currency,
        "depositPercent": q.deposit_percent,
        "vatRate": q.vat_rate,
        "totalCents": q.total_cents,
        "depositCents": q.deposit_cents,
        "balanceCents": q.balance_cents,
        "note": q.note,
        "issuedAt": iso(q.issued_at),
        "signedAt": iso(q.signed_at),
        "expiresAt": iso(q.expires_at),
        "cancelledAt": iso(q.cancelled_at),
        "cancelReason": q.cancel_reason,
        "createdAt": iso(q.created_at),
    }
    if with_items:
        out["items"] = [item_json(it) for it in q.items]
    return out


def invoice_json(inv, summary=None, with_items=True):
    out = {
        "id": inv.id,
        "businessId": inv.business_id,
        "projectId": inv.project_id,
        "clientId": inv.client_id,
        "quoteId": inv.quote_id,
        "number": inv.number,
        "status": _v(inv.status),
        "currency": inv.currency,
        "depositPercent": inv.deposit_percent,
        "totalCents": inv.total_cents,
        "depositCents": inv.deposit_cents,
        "balanceCents": inv.balance_cents,
        "note": inv.note,
        "issuedAt": iso(inv.issued_at),
        "dueAt": iso(inv.due_at),
        "paidAt": iso(inv.paid_at),
        "cancelledAt": iso(inv.cancelled_at),
        "createdAt": iso(inv.created_at),
    }
    if with_items:
        out["items"] = [item_json(it) for it in inv.items]
    if summary is not None:
        out.update(payment_summary_json(summary))
    return out


def payment_summary_json(s):
    return {
        "paidCents": s.paid_cents,
        "remainingCents": s.remaining_cents,
        "paymentStatus": _v(s.payment_status),
        "lastPaidAt": iso(s.last_paid_at),
    }


def payment_json(p):
    return {
        "id": p.id,
        "invoiceId": p.invoice_id,
        "projectId": p.project_id,
        "clientId": p.client_id,
        "amountCents": p.amount_cents,
        "paidAt": iso(p.paid_at),
        "method": _v(p.method),
        "reference": p.reference,
        "note": p.note,
        "createdBy": {"id": p.created_by.id, "name": p.created_by.name} if p.created_by else None,
        "deletedAt": iso(p.deleted_at),
        "createdAt": iso(p.created_at),
    }


def user_json(u):
    return {
        "id": u.id,
        "email": u.email,
        "name": u.name,
        "memberships": [
            {"businessId": m.business_id, "role": _v(m.role)} for m in u.memberships
        ],
    }
