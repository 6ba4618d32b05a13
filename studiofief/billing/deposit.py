from flask import current_app

from ..audit import log_audit
from ..errors import ValidationError
from ..models import DepositStatus
from ..money import to_day
from ..utils import parse_date_opt
from .scope import require_admin, unit_of_work


def update_deposit(ctx, project, payload: dict):
    """Set the project's deposit status; the paid date is kept only while PAID."""
    require_admin(ctx)

    if "depositStatus" not in payload and "depositPaidAt" not in payload:
        raise ValidationError("Aucune modification.")

    status = project.deposit_status
    if "depositStatus" in payload:
        try:
            status = DepositStatus(payload.get("depositStatus"))
        except ValueError:
            raise ValidationError("depositStatus invalide.")

    paid_at = project.deposit_paid_at
    if "depositPaidAt" in payload:
        paid_at = to_day(parse_date_opt(payload.get("depositPaidAt"), "depositPaidAt"))

    if status == DepositStatus.PAID:
        if paid_at is None:
            raise ValidationError("depositPaidAt requis quand l'acompte est payé.")
    else:
        paid_at = None

    with unit_of_work():
        if status != project.deposit_status:
            log_audit(ctx, "project", project.id, "update", field="deposit_status",
                      old=project.deposit_status, new=status)
        if paid_at != project.deposit_paid_at:
            log_audit(ctx, "project", project.id, "update", field="deposit_paid_at",
                      old=project.deposit_paid_at, new=paid_at)
        project.deposit_status = status
        project.deposit_paid_at = paid_at

    current_app.logger.info("business %s project %s: deposit %s", ctx.business_id, project.id, status.value)
    return project
