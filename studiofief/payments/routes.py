from flask import Blueprint, jsonify

from ..billing import payments as payment_svc
from ..billing.scope import get_invoice
from ..errors import ValidationError
from ..money import parse_cents_input
from ..serializers import invoice_json, payment_json, payment_summary_json
from ..utils import parse_date_opt, parse_text_opt, read_json, require_role

payments_bp = Blueprint("payments", __name__)


def _ledger(invoice):
    summary = payment_svc.payment_summary(invoice)
    return {
        "items": [payment_json(p) for p in payment_svc.list_payments(invoice)],
        "summary": payment_summary_json(summary),
        "shortcuts": payment_svc.payment_shortcuts(summary.remaining_cents),
    }


@payments_bp.route("/invoices/<int:invoice_id>/payments", methods=["GET"])
@require_role("VIEWER")
def list_payments(ctx, invoice_id):
    return jsonify(_ledger(get_invoice(ctx, invoice_id)))


@payments_bp.route("/invoices/<int:invoice_id>/payments", methods=["POST"])
@require_role("ADMIN")
def record_payment(ctx, invoice_id):
    invoice = get_invoice(ctx, invoice_id)
    data = read_json()

    amount = parse_cents_input(data.get("amountCents"))
    if amount is None:
        raise ValidationError("amountCents invalide.")

    payment = payment_svc.record_payment(
        ctx, invoice, amount,
        paid_at=parse_date_opt(data.get("paidAt"), "paidAt"),
        method=data.get("method") or "WIRE",
        reference=parse_text_opt(data.get("reference"), "reference", 255),
        note=parse_text_opt(data.get("note"), "note", 2000),
    )
    summary = payment_svc.payment_summary(invoice)
    return jsonify({
        "item": payment_json(payment),
        "invoice": invoice_json(invoice, summary=summary, with_items=False),
    }), 201


@payments_bp.route("/invoices/<int:invoice_id>/payments/<int:payment_id>", methods=["DELETE"])
@require_role("ADMIN")
def delete_payment(ctx, invoice_id, payment_id):
    invoice = get_invoice(ctx, invoice_id)
    payment_svc.delete_payment(ctx, invoice, payment_id)
    summary = payment_svc.payment_summary(invoice)
    return jsonify({"ok": True, "invoice": invoice_json(invoice, summary=summary, with_items=False)})
