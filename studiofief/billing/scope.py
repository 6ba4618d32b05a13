from contextlib import contextmanager

from .. import db
from ..errors import ForbiddenError, NotFoundError
from ..models import Invoice, Project, ProjectService, Quote, Service


@contextmanager
def unit_of_work():
    """One commit for the whole block, full rollback on any failure."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def require_admin(ctx):
    if not ctx.is_admin:
        raise ForbiddenError("Action réservée aux administrateurs.")


def get_project(ctx, project_id) -> Project:
    p = Project.query.filter_by(id=project_id, business_id=ctx.business_id).first()
    if not p:
        raise NotFoundError("Projet introuvable.")
    return p


def get_quote(ctx, quote_id) -> Quote:
    q = Quote.query.filter_by(id=quote_id, business_id=ctx.business_id).first()
    if not q:
        raise NotFoundError("Devis introuvable.")
    return q


def get_invoice(ctx, invoice_id) -> Invoice:
    inv = Invoice.query.filter_by(id=invoice_id, business_id=ctx.business_id).first()
    if not inv:
        raise NotFoundError("Facture introuvable.")
    return inv


def get_service(ctx, service_id) -> Service:
    svc = Service.query.filter_by(id=service_id, business_id=ctx.business_id).first()
    if not svc:
        raise NotFoundError("Service introuvable.")
    return svc


def get_project_service(ctx, project, line_id) -> ProjectService:
    ps = ProjectService.query.filter_by(
        id=line_id, project_id=project.id, business_id=ctx.business_id
    ).first()
    if not ps:
        raise NotFoundError("Ligne de prestation introuvable.")
    return ps
