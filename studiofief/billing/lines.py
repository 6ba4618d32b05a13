from uuid import uuid4

from flask import current_app
from sqlalchemy import func

from .. import db
from ..errors import ValidationError
from ..models import BillingUnit, DiscountType, ProjectService, Service
from ..money import parse_cents_input
from ..utils import parse_int, parse_text_opt
from .pricing import MONTHLY_UNIT_LABEL, default_unit_label
from .scope import get_project_service, get_service, require_admin, unit_of_work


def _parse_line_fields(payload: dict, current=None) -> dict:
    """Validate ProjectService fields; ``current`` supplies values a patch omits."""
    out = {}

    if "quantity" in payload:
        qty = parse_int(payload.get("quantity"), "quantity")
        if qty < 1:
            raise ValidationError("Quantité invalide (entier >= 1).")
        out["quantity"] = qty

    if "priceCents" in payload:
        raw = payload.get("priceCents")
        if raw is None:
            out["price_cents"] = None
        else:
            cents = parse_cents_input(raw)
            if cents is None or cents < 0:
                raise ValidationError("priceCents invalide.")
            out["price_cents"] = cents

    discount_type = current.discount_type if current else DiscountType.NONE
    if "discountType" in payload:
        try:
            discount_type = DiscountType(payload.get("discountType") or "NONE")
        except ValueError:
            raise ValidationError("discountType invalide.")
        out["discount_type"] = discount_type

    if "discountValue" in payload or "discount_type" in out:
        if "discountValue" in payload:
            raw = payload.get("discountValue")
        elif current and current.discount_type == discount_type:
            raw = current.discount_value
        else:
            raw = None
        if discount_type == DiscountType.NONE or raw is None:
            value = None
        elif discount_type == DiscountType.PERCENT:
            value = parse_int(raw, "discountValue")
            if value < 0 or value > 100:
                raise ValidationError("Remise en pourcentage entre 0 et 100.")
        else:
            value = parse_cents_input(raw)
            if value is None or value < 0:
                raise ValidationError("Remise en montant invalide.")
        out["discount_value"] = value

    billing_unit = current.billing_unit if current else BillingUnit.ONE_OFF
    if "billingUnit" in payload:
        try:
            billing_unit = BillingUnit(payload.get("billingUnit") or "ONE_OFF")
        except ValueError:
            raise ValidationError("billingUnit invalide.")
        out["billing_unit"] = billing_unit

    if "unitLabel" in payload or "billing_unit" in out:
        if "unitLabel" in payload:
            label = parse_text_opt(payload.get("unitLabel"), "unitLabel", 40)
        else:
            label = current.unit_label if current else None
            if label == MONTHLY_UNIT_LABEL and billing_unit != BillingUnit.MONTHLY:
                label = None
        out["unit_label"] = default_unit_label(label, billing_unit)

    if "titleOverride" in payload:
        out["title_override"] = parse_text_opt(payload.get("titleOverride"), "titleOverride", 200)
    if "description" in payload:
        out["description"] = parse_text_opt(payload.get("description"), "description", 2000)

    return out


def _next_position(project) -> int:
    pos = (db.session.query(func.coalesce(func.max(ProjectService.position), -1))
           .filter(ProjectService.project_id == project.id)
           .scalar())
    return int(pos) + 1


def attach_service(ctx, project, service, payload: dict) -> ProjectService:
    """Build and flush a project line without committing."""
    fields = _parse_line_fields(payload)
    fields.setdefault("quantity", 1)
    fields.setdefault("unit_label", default_unit_label(None, fields.get("billing_unit")))
    ps = ProjectService(
        business_id=ctx.business_id,
        project_id=project.id,
        service_id=service.id,
        position=_next_position(project),
        **fields,
    )
    db.session.add(ps)
    db.session.flush()
    return ps


def create_custom_service(ctx, label: str, unit_price_cents: int, description=None) -> Service:
    svc = Service(
        business_id=ctx.business_id,
        code=f"CUSTOM-{uuid4().hex[:8].upper()}",
        name=label,
        description=description,
        default_price_cents=unit_price_cents,
    )
    db.session.add(svc)
    db.session.flush()
    return svc


def add_line(ctx, project, payload: dict) -> ProjectService:
    require_admin(ctx)
    raw_service = payload.get("serviceId")
    if raw_service is None:
        raise ValidationError("serviceId requis.")
    service = get_service(ctx, parse_int(raw_service, "serviceId"))

    with unit_of_work():
        ps = attach_service(ctx, project, service, payload)

    current_app.logger.info("project %s: line %s added (service %s)", project.id, ps.id, service.id)
    return ps


def update_line(ctx, project, line_id, payload: dict) -> ProjectService:
    require_admin(ctx)
    ps = get_project_service(ctx, project, line_id)
    fields = _parse_line_fields(payload, current=ps)
    if not fields:
        raise ValidationError("Aucune modification.")

    with unit_of_work():
        for k, v in fields.items():
            setattr(ps, k, v)
    return ps


def remove_line(ctx, project, line_id):
    require_admin(ctx)
    ps = get_project_service(ctx, project, line_id)
    with unit_of_work():
        db.session.delete(ps)
    current_app.logger.info("project %s: line %s removed", project.id, line_id)


def reorder_lines(ctx, project, ids):
    require_admin(ctx)
    if not isinstance(ids, list):
        raise ValidationError("ids invalides.")
    wanted = [parse_int(i, "ids") for i in ids]
    lines = {ps.id: ps for ps in project.services}
    if sorted(wanted) != sorted(lines):
        raise ValidationError("ids doit contenir exactement les lignes du projet.")

    with unit_of_work():
        for pos, line_id in enumerate(wanted):
            lines[line_id].position = pos
    db.session.refresh(project)
    return project.services
