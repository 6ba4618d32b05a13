from datetime import datetime

from flask import current_app

from .. import db
from ..models import BusinessSettings


def build_number(prefix: str, sequence: int, issued_at=None) -> str:
    year = (issued_at or datetime.utcnow()).year
    clean = prefix if prefix.endswith("-") else f"{prefix}-"
    return f"{clean}{year}-{sequence:04d}"


def get_settings(business_id: int, lock: bool = False) -> BusinessSettings:
    q = BusinessSettings.query.filter_by(business_id=business_id)
    if lock:
        q = q.with_for_update()
    settings = q.first()
    if not settings:
        settings = BusinessSettings(
            business_id=business_id,
            default_deposit_percent=current_app.config.get("DEFAULT_DEPOSIT_PERCENT", 30),
            payment_terms_days=current_app.config.get("DEFAULT_PAYMENT_TERMS_DAYS", 30),
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def assign_document_number(business_id: int, kind: str, issued_at=None) -> str:
    """Allocate the next QUOTE/INVOICE number inside the caller's transaction."""
    settings = get_settings(business_id, lock=True)

    if kind == "QUOTE":
        seq = settings.next_quote_number or 1
        settings.next_quote_number = seq + 1
        return build_number(settings.quote_prefix, seq, issued_at)

    seq = settings.next_invoice_number or 1
    settings.next_invoice_number = seq + 1
    return build_number(settings.invoice_prefix, seq, issued_at)
