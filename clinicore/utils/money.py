from decimal import Decimal, ROUND_HALF_UP

Q2 = Decimal("0.01")


def d(x) -> Decimal:
    return Decimal(str(x or 0))


def q2(x) -> Decimal:
    return d(x).quantize(Q2, rounding=ROUND_HALF_UP)
