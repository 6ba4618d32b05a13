from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from ..models import BillingUnit, DiscountType
from ..money import clamp_percent, round_half_up, round_percent

MONTHLY_UNIT_LABEL = "/mois"


@dataclass
class PricingLine:
    project_service_id: Optional[int]
    service_id: Optional[int]
    label: str
    description: Optional[str]
    quantity: int
    unit_price_cents: int
    original_unit_price_cents: Optional[int]
    discount_type: DiscountType
    discount_value: Optional[int]
    billing_unit: BillingUnit
    unit_label: Optional[str]
    total_cents: int
    price_source: str
    missing_price: bool = False


@dataclass
class ProjectPricing:
    project_id: int
    business_id: int
    client_id: Optional[int]
    currency: str
    deposit_percent: int
    total_cents: int
    deposit_cents: int
    balance_cents: int
    lines: List[PricingLine] = field(default_factory=list)

    @property
    def missing_price_lines(self) -> List[PricingLine]:
        return [ln for ln in self.lines if ln.missing_price]


def resolve_unit_price(project_price_cents=None, default_price_cents=None, tjm_cents=None):
    """Project override, then catalog default, then catalog daily rate.

    Returns (unit_price_cents, source, missing_price).
    """
    if project_price_cents is not None:
        return int(project_price_cents), "project", False
    if default_price_cents is not None:
        return int(default_price_cents), "default", False
    if tjm_cents is not None:
        return int(tjm_cents), "tjm", False
    return 0, "missing", True


def apply_discount(unit_price_cents: int, discount_type=None, discount_value=None):
    """Returns (final_unit, original_unit, bounded_value).

    original_unit and bounded_value are None when no discount applies.
    """
    discount_type = DiscountType(discount_type or DiscountType.NONE)
    unit = int(unit_price_cents)

    if discount_type == DiscountType.PERCENT and discount_value is not None:
        bounded = clamp_percent(discount_value)
        final = round_half_up(Decimal(unit) * (100 - bounded) / Decimal("100"))
        return final, unit, bounded

    if discount_type == DiscountType.AMOUNT and discount_value is not None:
        bounded = max(0, int(discount_value))
        return max(0, unit - bounded), unit, bounded

    return unit, None, None


def line_label(ps) -> str:
    svc = ps.service
    return (
        (ps.title_override or "").strip()
        or (svc.name if svc else None)
        or (svc.code if svc else None)
        or (f"Service {ps.service_id}" if ps.service_id else "Service")
    )


def default_unit_label(unit_label, billing_unit):
    if unit_label:
        return unit_label
    if BillingUnit(billing_unit or BillingUnit.ONE_OFF) == BillingUnit.MONTHLY:
        return MONTHLY_UNIT_LABEL
    return None


def price_line(ps) -> PricingLine:
    svc = ps.service
    unit, source, missing = resolve_unit_price(
        project_price_cents=ps.price_cents,
        default_price_cents=svc.default_price_cents if svc else None,
        tjm_cents=svc.tjm_cents if svc else None,
    )
    qty = ps.quantity if ps.quantity and ps.quantity > 0 else 1
    qty = max(1, int(qty))

    if missing:
        final, original, bounded = 0, None, None
    else:
        final, original, bounded = apply_discount(unit, ps.discount_type, ps.discount_value)

    billing_unit = ps.billing_unit or BillingUnit.ONE_OFF
    return PricingLine(
        project_service_id=ps.id,
        service_id=ps.service_id,
        label=line_label(ps),
        description=ps.description,
        quantity=qty,
        unit_price_cents=final,
        original_unit_price_cents=original,
        discount_type=ps.discount_type or DiscountType.NONE,
        discount_value=bounded,
        billing_unit=billing_unit,
        unit_label=default_unit_label(ps.unit_label, billing_unit),
        total_cents=0 if missing else final * qty,
        price_source=source,
        missing_price=missing,
    )


def compute_project_pricing(project) -> ProjectPricing:
    lines = [price_line(ps) for ps in project.services]
    total = sum(ln.total_cents for ln in lines if not ln.missing_price)

    settings = project.business.settings if project.business else None
    deposit_percent = clamp_percent(settings.default_deposit_percent if settings else 0)
    deposit = round_percent(total, deposit_percent)

    return ProjectPricing(
        project_id=project.id,
        business_id=project.business_id,
        client_id=project.client_id,
        currency=(project.business.currency if project.business else None) or "EUR",
        deposit_percent=deposit_percent,
        total_cents=total,
        deposit_cents=deposit,
        balance_cents=total - deposit,
        lines=lines,
    )
