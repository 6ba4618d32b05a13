from ..errors import ValidationError
from ..models import BillingUnit, DiscountType, Service
from ..money import clamp_percent, parse_cents_input, round_percent
from ..utils import parse_int, parse_text_opt

ITEM_FIELDS = (
    "service_id", "label", "description", "discount_type", "discount_value",
    "original_unit_price_cents", "unit_label", "billing_unit",
    "quantity", "unit_price_cents", "total_cents",
)


def snapshot_line(line) -> dict:
    """Freeze a PricingLine into document item fields."""
    return {
        "service_id": line.service_id,
        "label": line.label,
        "description": line.description,
        "discount_type": line.discount_type,
        "discount_value": line.discount_value,
        "original_unit_price_cents": line.original_unit_price_cents,
        "unit_label": line.unit_label,
        "billing_unit": line.billing_unit,
        "quantity": line.quantity,
        "unit_price_cents": line.unit_price_cents,
        "total_cents": line.total_cents,
    }


def copy_item(item) -> dict:
    return {f: getattr(item, f) for f in ITEM_FIELDS}


def _enum_or(cls, raw, fallback, field):
    if raw is None:
        return fallback
    try:
        return cls(raw)
    except ValueError:
        raise ValidationError(f"{field} invalide.")


def parse_item_edits(raw_items, existing_items, business_id) -> list:
    """Validate a full replacement list of document lines.

    Each entry needs a label, an integer quantity >= 1 and a unit price.
    Entries carrying the id of an existing line inherit its discount and
    unit metadata; changing the unit price without restating the discount
    drops it.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items invalides.")

    by_id = {str(it.id): it for it in existing_items}
    parsed, service_ids = [], set()

    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("items invalides.")
        current = by_id.get(str(raw.get("id"))) if raw.get("id") is not None else None

        label = raw.get("label")
        label = label.strip() if isinstance(label, str) else ""
        if not label:
            raise ValidationError("Libellé requis.")
        if len(label) > 200:
            raise ValidationError("Libellé trop long (200 max).")

        description = parse_text_opt(raw.get("description"), "description", 2000)

        qty = raw.get("quantity")
        if (isinstance(qty, bool) or not isinstance(qty, (int, float))
                or (isinstance(qty, float) and not qty.is_integer()) or qty < 1):
            raise ValidationError("Quantité invalide (entier >= 1).")
        qty = int(qty)

        unit = parse_cents_input(raw.get("unitPriceCents"))
        if unit is None or unit < 0:
            raise ValidationError("Prix unitaire invalide.")

        service_id = raw.get("serviceId")
        if service_id is not None:
            service_id = parse_int(service_id, "serviceId")
            service_ids.add(service_id)

        discount_type = _enum_or(
            DiscountType, raw.get("discountType"),
            current.discount_type if current else DiscountType.NONE, "discountType",
        )
        discount_value = current.discount_value if current else None
        if "discountValue" in raw:
            dv = raw.get("discountValue")
            if dv is None:
                discount_value = None
            elif discount_type == DiscountType.PERCENT:
                discount_value = clamp_percent(dv)
            elif discount_type == DiscountType.AMOUNT:
                cents = parse_cents_input(dv)
                discount_value = None if cents is None else max(0, cents)
        if discount_type == DiscountType.NONE:
            discount_value = None

        if current and unit != current.unit_price_cents:
            if "discountType" not in raw:
                discount_type = DiscountType.NONE
            if "discountValue" not in raw:
                discount_value = None

        billing_unit = _enum_or(
            BillingUnit, raw.get("billingUnit"),
            current.billing_unit if current else BillingUnit.ONE_OFF, "billingUnit",
        )
        unit_label = raw.get("unitLabel")
        if unit_label is None:
            unit_label = current.unit_label if current else None
        elif isinstance(unit_label, str):
            unit_label = unit_label.strip() or None
        else:
            raise ValidationError("unitLabel invalide.")

        parsed.append({
            "service_id": service_id,
            "label": label,
            "description": description,
            "discount_type": discount_type,
            "discount_value": discount_value,
            "original_unit_price_cents": current.original_unit_price_cents if current else None,
            "unit_label": unit_label,
            "billing_unit": billing_unit,
            "quantity": qty,
            "unit_price_cents": unit,
            "total_cents": unit * qty,
        })

    if service_ids:
        found = (Service.query
                 .filter(Service.business_id == business_id)
                 .filter(Service.id.in_(service_ids))
                 .count())
        if found != len(service_ids):
            raise ValidationError("serviceId inconnu.")

    return parsed


def header_totals(items: list, deposit_percent: int):
    """(total, deposit, balance) for a list of item dicts."""
    total = sum(int(it["total_cents"]) for it in items)
    deposit = round_percent(total, deposit_percent)
    return total, deposit, total - deposit
