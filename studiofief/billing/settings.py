from flask import current_app

from ..audit import log_audit
from ..errors import ValidationError
from ..utils import parse_int
from .numbering import get_settings
from .scope import require_admin, unit_of_work

PREFIX_MAX = 20

# payload key -> (column, min, max)
INT_FIELDS = {
    "defaultDepositPercent": ("default_deposit_percent", 0, 100),
    "vatRate": ("vat_rate", 0, 100),
    "paymentTermsDays": ("payment_terms_days", 0, 365),
}
PREFIX_FIELDS = {
    "quotePrefix": "quote_prefix",
    "invoicePrefix": "invoice_prefix",
}


def _parse_settings(payload: dict) -> dict:
    out = {}
    for key, (column, lo, hi) in INT_FIELDS.items():
        if key in payload:
            value = parse_int(payload.get(key), key)
            if value < lo or value > hi:
                raise ValidationError(f"{key} doit être entre {lo} et {hi}.")
            out[column] = value

    for key, column in PREFIX_FIELDS.items():
        if key in payload:
            raw = payload.get(key)
            prefix = raw.strip() if isinstance(raw, str) else ""
            if not prefix:
                raise ValidationError(f"{key} requis.")
            if len(prefix) > PREFIX_MAX:
                raise ValidationError(f"{key} trop long ({PREFIX_MAX} max).")
            out[column] = prefix

    if "vatEnabled" in payload:
        if not isinstance(payload.get("vatEnabled"), bool):
            raise ValidationError("vatEnabled invalide.")
        out["vat_enabled"] = payload["vatEnabled"]

    return out


def update_settings(ctx, payload: dict):
    """Patch the business billing settings. Counters are never writable."""
    require_admin(ctx)
    fields = _parse_settings(payload)
    if not fields:
        raise ValidationError("Aucune modification.")

    with unit_of_work():
        settings = get_settings(ctx.business_id)
        for column, value in fields.items():
            old = getattr(settings, column)
            if old != value:
                log_audit(ctx, "business_settings", settings.id, "update", field=column, old=old, new=value)
                setattr(settings, column, value)

    current_app.logger.info("business %s: settings updated (%s)", ctx.business_id, ", ".join(sorted(fields)))
    return settings
