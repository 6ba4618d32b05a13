from flask import Blueprint, jsonify

from ..billing import invoices as invoice_svc
from ..billing.payments import payment_summary
from ..billing.scope import get_invoice
from ..serializers import invoice_json
from ..utils import read_json, require_role

invoices_bp = Blueprint("invoices", __name__)


@invoices_bp.route("/invoices/<int:invoice_id>", methods=["GET"])
@require_role("VIEWER")
def get_invoice_view(ctx, invoice_id):
    invoice = get_invoice(ctx, invoice_id)
    return jsonify({"item": invoice_json(invoice, summary=payment_summary(invoice))})


@invoices_bp.route("/invoices/<int:invoice_id>", methods=["PATCH"])
@require_role("ADMIN")
def patch_invoice(ctx, invoice_id):
    invoice = get_invoice(ctx, invoice_id)
    invoice_svc.update_invoice(ctx, invoice, read_json())
    return jsonify({"item": invoice_json(invoice, summary=payment_summary(invoice))})


@invoices_bp.route("/invoices/<int:invoice_id>", methods=["DELETE"])
@require_role("ADMIN")
def delete_invoice(ctx, invoice_id):
    invoice = get_invoice(ctx, invoice_id)
    invoice_svc.delete_invoice(ctx, invoice)
    return jsonify({"ok": True})
