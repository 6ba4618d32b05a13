from flask import Blueprint, jsonify

from ..billing import invoices as invoice_svc
from ..billing import quotes as quote_svc
from ..billing.payments import payment_summary
from ..billing.scope import get_quote
from ..serializers import invoice_json, quote_json
from ..utils import read_json, require_role

quotes_bp = Blueprint("quotes", __name__)


@quotes_bp.route("/quotes/<int:quote_id>", methods=["GET"])
@require_role("VIEWER")
def get_quote_view(ctx, quote_id):
    return jsonify({"item": quote_json(get_quote(ctx, quote_id))})


@quotes_bp.route("/quotes/<int:quote_id>", methods=["PATCH"])
@require_role("ADMIN")
def patch_quote(ctx, quote_id):
    quote = get_quote(ctx, quote_id)
    quote_svc.update_quote(ctx, quote, read_json())
    return jsonify({"item": quote_json(quote)})


@quotes_bp.route("/quotes/<int:quote_id>", methods=["DELETE"])
@require_role("ADMIN")
def delete_quote(ctx, quote_id):
    quote = get_quote(ctx, quote_id)
    quote_svc.delete_quote(ctx, quote)
    return jsonify({"ok": True})


@quotes_bp.route("/quotes/<int:quote_id>/invoices", methods=["POST"])
@require_role("ADMIN")
def invoice_quote(ctx, quote_id):
    quote = get_quote(ctx, quote_id)
    invoice = invoice_svc.create_from_quote(ctx, quote)
    return jsonify({"item": invoice_json(invoice, summary=payment_summary(invoice))}), 201
