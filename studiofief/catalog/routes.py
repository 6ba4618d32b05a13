from flask import Blueprint, current_app, jsonify, request

from .. import db
from ..billing.scope import require_admin, unit_of_work
from ..errors import ValidationError
from ..models import Service
from ..money import parse_cents_input
from ..serializers import service_json
from ..utils import _clean, parse_int, parse_text_opt, read_json, require_role

catalog_bp = Blueprint("catalog", __name__)


def _cents_opt(data, key):
    if data.get(key) is None:
        return None
    cents = parse_cents_input(data.get(key))
    if cents is None or cents < 0:
        raise ValidationError(f"{key} invalide.")
    return cents


@catalog_bp.route("/services", methods=["GET"])
@require_role("VIEWER")
def list_services(ctx):
    q = Service.query.filter_by(business_id=ctx.business_id)
    if request.args.get("archived") not in ("1", "true"):
        q = q.filter(Service.is_archived.is_(False))
    search = _clean(request.args.get("q"))
    if search:
        like = f"%{search}%"
        q = q.filter(db.or_(Service.name.ilike(like), Service.code.ilike(like)))
    items = q.order_by(Service.name.asc(), Service.id.asc()).all()
    return jsonify({"items": [service_json(s) for s in items]})


@catalog_bp.route("/services", methods=["POST"])
@require_role("ADMIN")
def create_service(ctx):
    require_admin(ctx)
    data = read_json()

    code = _clean(data.get("code")).upper()
    name = _clean(data.get("name"))
    if not code or not name:
        raise ValidationError("Code et nom requis.")
    if len(code) > 60 or len(name) > 200:
        raise ValidationError("Code ou nom trop long.")
    if Service.query.filter_by(business_id=ctx.business_id, code=code).first():
        raise ValidationError("Code déjà utilisé.")

    vat_rate = data.get("vatRate")
    if vat_rate is not None:
        vat_rate = parse_int(vat_rate, "vatRate")
        if vat_rate < 0 or vat_rate > 100:
            raise ValidationError("vatRate invalide.")

    svc = Service(
        business_id=ctx.business_id,
        code=code,
        name=name,
        description=parse_text_opt(data.get("description"), "description", 2000),
        default_price_cents=_cents_opt(data, "defaultPriceCents"),
        tjm_cents=_cents_opt(data, "tjmCents"),
        vat_rate=vat_rate,
    )
    with unit_of_work():
        db.session.add(svc)

    current_app.logger.info("business %s: service %s created (%s)", ctx.business_id, svc.id, code)
    return jsonify({"item": service_json(svc)}), 201
