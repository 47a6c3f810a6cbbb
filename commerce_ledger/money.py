from decimal import Decimal, ROUND_HALF_UP

# DA amounts are carried to the centime; unit costs keep four places so that
# weighted averages survive a round-trip through the database unchanged.
MONEY_QUANT = Decimal("0.01")
COST_QUANT = Decimal("0.0001")
ZERO_MONEY = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_cost(value: Decimal | int | float | str | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(COST_QUANT, rounding=ROUND_HALF_UP)
