from . import db
from .models import AuditLog


def log_audit(ctx, entity, entity_id, action, field=None, old=None, new=None):
    """Queue an audit row in the caller's transaction; the caller commits."""
    log = AuditLog(
        business_id=ctx.business_id if ctx else None,
        entity=entity,
        entity_id=entity_id,
        action=action,
        field=field,
        old_value=str(getattr(old, "value", old)) if old is not None else None,
        new_value=str(getattr(new, "value", new)) if new is not None else None,
        performed_by_id=ctx.user_id if ctx else None,
    )
    db.session.add(log)
    return log
