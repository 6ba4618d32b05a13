from flask import Blueprint, jsonify, request

from ..billing import invoices as invoice_svc
from ..billing import lines as line_svc
from ..billing import quotes as quote_svc
from ..billing.deposit import update_deposit
from ..billing.payments import payment_summary
from ..billing.pricing import compute_project_pricing
from ..billing.scope import get_project, get_quote
from ..billing.summary import compute_summary
from ..errors import ValidationError
from ..models import Invoice, InvoiceStatus, Quote, QuoteStatus
from ..serializers import (
    invoice_json, pricing_json, project_json, project_service_json, quote_json, summary_json,
)
from ..utils import parse_int, read_json, require_role

projects_bp = Blueprint("projects", __name__)


def _line_payload(project, ps):
    priced = {ln.project_service_id: ln for ln in compute_project_pricing(project).lines}
    return project_service_json(ps, priced.get(ps.id))


# -------------------------
# Project service lines
# -------------------------
@projects_bp.route("/projects/<int:project_id>/services", methods=["GET"])
@require_role("VIEWER")
def list_lines(ctx, project_id):
    project = get_project(ctx, project_id)
    priced = {ln.project_service_id: ln for ln in compute_project_pricing(project).lines}
    return jsonify({"items": [project_service_json(ps, priced.get(ps.id)) for ps in project.services]})


@projects_bp.route("/projects/<int:project_id>/services", methods=["POST"])
@require_role("ADMIN")
def add_line(ctx, project_id):
    project = get_project(ctx, project_id)
    ps = line_svc.add_line(ctx, project, read_json())
    return jsonify({"item": _line_payload(project, ps)}), 201


@projects_bp.route("/projects/<int:project_id>/services/reorder", methods=["POST"])
@require_role("ADMIN")
def reorder_lines(ctx, project_id):
    project = get_project(ctx, project_id)
    data = read_json()
    lines = line_svc.reorder_lines(ctx, project, data.get("ids"))
    return jsonify({"items": [project_service_json(ps) for ps in lines]})


@projects_bp.route("/projects/<int:project_id>/services/<int:line_id>", methods=["PATCH"])
@require_role("ADMIN")
def update_line(ctx, project_id, line_id):
    project = get_project(ctx, project_id)
    ps = line_svc.update_line(ctx, project, line_id, read_json())
    return jsonify({"item": _line_payload(project, ps)})


@projects_bp.route("/projects/<int:project_id>/services/<int:line_id>", methods=["DELETE"])
@require_role("ADMIN")
def remove_line(ctx, project_id, line_id):
    project = get_project(ctx, project_id)
    line_svc.remove_line(ctx, project, line_id)
    return jsonify({"ok": True})


# -------------------------
# Pricing + summary
# -------------------------
@projects_bp.route("/projects/<int:project_id>/pricing", methods=["GET"])
@require_role("VIEWER")
def pricing(ctx, project_id):
    project = get_project(ctx, project_id)
    return jsonify({"item": pricing_json(compute_project_pricing(project))})


@projects_bp.route("/projects/<int:project_id>/billing-summary", methods=["GET"])
@require_role("VIEWER")
def billing_summary(ctx, project_id):
    project = get_project(ctx, project_id)
    return jsonify({"item": summary_json(compute_summary(project))})


@projects_bp.route("/projects/<int:project_id>/billing-reference", methods=["POST"])
@require_role("ADMIN")
def set_billing_reference(ctx, project_id):
    project = get_project(ctx, project_id)
    data = read_json()
    if data.get("quoteId") is None:
        raise ValidationError("quoteId requis.")
    quote = get_quote(ctx, parse_int(data.get("quoteId"), "quoteId"))
    quote_svc.set_as_reference(ctx, project, quote)
    return jsonify({"item": project_json(project)})


@projects_bp.route("/projects/<int:project_id>/deposit", methods=["PATCH"])
@require_role("ADMIN")
def patch_deposit(ctx, project_id):
    project = get_project(ctx, project_id)
    update_deposit(ctx, project, read_json())
    return jsonify({"item": project_json(project)})


# -------------------------
# Quotes + invoices of a project
# -------------------------
@projects_bp.route("/projects/<int:project_id>/quotes", methods=["GET"])
@require_role("VIEWER")
def list_quotes(ctx, project_id):
    project = get_project(ctx, project_id)
    q = Quote.query.filter_by(business_id=ctx.business_id, project_id=project.id)
    status = request.args.get("status")
    if status:
        try:
            q = q.filter(Quote.status == QuoteStatus(status))
        except ValueError:
            raise ValidationError("status invalide.")
    items = q.order_by(Quote.created_at.desc(), Quote.id.desc()).all()
    return jsonify({"items": [quote_json(x, with_items=False) for x in items]})


@projects_bp.route("/projects/<int:project_id>/quotes", methods=["POST"])
@require_role("ADMIN")
def create_quote(ctx, project_id):
    project = get_project(ctx, project_id)
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Payload invalide.")
    quote = quote_svc.create_quote(ctx, project, lines=data.get("lines"))
    return jsonify({"item": quote_json(quote)}), 201


@projects_bp.route("/projects/<int:project_id>/invoices", methods=["GET"])
@require_role("VIEWER")
def list_invoices(ctx, project_id):
    project = get_project(ctx, project_id)
    q = Invoice.query.filter_by(business_id=ctx.business_id, project_id=project.id)
    status = request.args.get("status")
    if status:
        try:
            q = q.filter(Invoice.status == InvoiceStatus(status))
        except ValueError:
            raise ValidationError("status invalide.")
    items = q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return jsonify({"items": [
        invoice_json(inv, summary=payment_summary(inv), with_items=False) for inv in items
    ]})


@projects_bp.route("/projects/<int:project_id>/invoices/staged", methods=["POST"])
@require_role("ADMIN")
def create_staged_invoice(ctx, project_id):
    project = get_project(ctx, project_id)
    data = read_json()
    invoice = invoice_svc.create_staged(ctx, project, data.get("mode"), data.get("value"))
    return jsonify({"item": invoice_json(invoice, summary=payment_summary(invoice))}), 201
