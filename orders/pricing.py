from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CURRENCY_UNIT = Decimal("1")

_WEIGHT_TOKEN = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def _dec(value) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def round_currency(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CURRENCY_UNIT, rounding=ROUND_HALF_UP)


def parse_target_weight(text) -> Decimal:
    """First decimal number in free text such as "10-12g"; 0 when none."""
    match = _WEIGHT_TOKEN.search(str(text or ""))
    return Decimal(match.group()) if match else ZERO


@dataclass(frozen=True)
class CatalogDefaults:
    purity: str
    gross_weight: Decimal
    making_charge_per_gram: Decimal
    making_charge_fixed: Decimal
    wastage_percent: Decimal
    purchase_price: Decimal

    @classmethod
    def from_product(cls, product):
        if product is None:
            return None
        return cls(
            purity=product.purity or "",
            gross_weight=_dec(product.gross_weight),
            making_charge_per_gram=_dec(product.making_charge_per_gram),
            making_charge_fixed=_dec(product.making_charge_fixed),
            wastage_percent=_dec(product.wastage_percent),
            purchase_price=_dec(product.purchase_price),
        )


@dataclass(frozen=True)
class LineInput:
    is_custom: bool
    quantity: int
    weight: Decimal | None = None
    target_weight: str = ""
    making_charge: Decimal | None = None
    wastage: Decimal | None = None
    other_cost: Decimal = ZERO
    discount: Decimal = ZERO
    old_gold_adjustment: Decimal = ZERO

    @classmethod
    def from_item(cls, item):
        return cls(
            is_custom=item.is_custom,
            quantity=item.quantity,
            weight=item.weight,
            target_weight=item.target_weight or "",
            making_charge=item.making_charge,
            wastage=item.wastage,
            other_cost=_dec(item.other_cost),
            discount=_dec(item.discount),
            old_gold_adjustment=_dec(item.old_gold_adjustment),
        )


@dataclass(frozen=True)
class LinePricing:
    quantity: int
    rate: Decimal
    unit_weight: Decimal
    total_weight: Decimal
    base_value: Decimal
    making_charge: Decimal
    wastage: Decimal
    other_cost: Decimal
    discount: Decimal
    old_gold_adjustment: Decimal

    @property
    def line_total(self) -> Decimal:
        return round_currency(
            self.base_value
            + self.making_charge
            + self.wastage
            + self.other_cost
            - self.discount
            - self.old_gold_adjustment
        )

    @property
    def unit_price(self) -> Decimal:
        quantity = Decimal(self.quantity)
        return round_currency(
            self.rate * self.unit_weight
            + self.making_charge / quantity
            + self.wastage / quantity
            + self.other_cost / quantity
            - self.discount / quantity
            - self.old_gold_adjustment / quantity
        )


def effective_unit_weight(line: LineInput, catalog: CatalogDefaults | None = None) -> Decimal:
    if line.weight is not None:
        return _dec(line.weight)
    if line.is_custom:
        return parse_target_weight(line.target_weight)
    return catalog.gross_weight if catalog is not None else ZERO


def price_line(line: LineInput, rate, catalog: CatalogDefaults | None = None) -> LinePricing:
    """Price one line. `catalog` is ignored for custom lines."""
    quantity = max(int(line.quantity or 1), 1)
    rate = _dec(rate)
    if line.is_custom:
        catalog = None

    unit_weight = effective_unit_weight(line, catalog)
    total_weight = unit_weight * quantity
    base_value = rate * total_weight

    if line.making_charge is not None:
        making_charge = _dec(line.making_charge)
    elif catalog is not None:
        making_charge = catalog.making_charge_per_gram * total_weight + catalog.making_charge_fixed
    else:
        making_charge = ZERO

    if line.wastage is not None:
        wastage = _dec(line.wastage)
    elif catalog is not None:
        wastage = base_value * (catalog.wastage_percent / HUNDRED)
    else:
        wastage = ZERO

    return LinePricing(
        quantity=quantity,
        rate=rate,
        unit_weight=unit_weight,
        total_weight=total_weight,
        base_value=base_value,
        making_charge=making_charge,
        wastage=wastage,
        other_cost=_dec(line.other_cost),
        discount=_dec(line.discount),
        old_gold_adjustment=_dec(line.old_gold_adjustment),
    )
