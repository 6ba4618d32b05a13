import re
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import wraps

from flask import g, request
from flask_login import current_user

from . import db
from .errors import ForbiddenError, UnauthenticatedError, ValidationError
from .models import Business, BusinessMembership, BusinessRole, User

_INT_RE = re.compile(r"-?[0-9]+")


@dataclass
class BusinessContext:
    """Request-scoped caller identity, passed explicitly to the billing services."""

    business: Business
    user: User
    role: BusinessRole
    request_id: str = None

    @property
    def business_id(self) -> int:
        return self.business.id

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role.rank >= BusinessRole.ADMIN.rank


def require_role(min_role="VIEWER"):
    """Authenticate, check the business membership and inject a BusinessContext.

    The wrapped view receives ``ctx`` in place of the ``business_id`` URL value.
    """
    min_role = BusinessRole(min_role)

    def decorator(fn):
        @wraps(fn)
        def wrapper(business_id, *args, **kwargs):
            if not current_user.is_authenticated:
                raise UnauthenticatedError("Authentification requise.")

            membership = (BusinessMembership.query
                          .filter_by(business_id=business_id, user_id=current_user.id)
                          .first())
            if not membership or membership.role.rank < min_role.rank:
                raise ForbiddenError("Accès refusé.")

            ctx = BusinessContext(
                business=membership.business,
                user=db.session.get(User, current_user.id),
                role=membership.role,
                request_id=getattr(g, "request_id", None),
            )
            return fn(ctx, *args, **kwargs)
        return wrapper
    return decorator


def read_json() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Payload invalide.")
    return data


def _clean(s): return (s or "").strip()


def parse_date_opt(raw, field: str):
    """ISO date/datetime -> naive UTC datetime. None passes through."""
    if raw is None:
        return None
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"{field} invalide.")
    s = raw.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"{field} invalide.")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_int(raw, field: str):
    if isinstance(raw, bool):
        raise ValidationError(f"{field} invalide.")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and _INT_RE.fullmatch(raw.strip()):
        return int(raw.strip())
    raise ValidationError(f"{field} invalide.")


def parse_text_opt(raw, field: str, max_len: int):
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{field} invalide.")
    text = raw.strip()
    if len(text) > max_len:
        raise ValidationError(f"{field} trop long ({max_len} max).")
    return text or None


def iso(dt):
    return dt.isoformat() if dt else None
