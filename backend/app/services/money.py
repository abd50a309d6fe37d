from decimal import Decimal, ROUND_HALF_UP


def round_money(value: float, places: int = 2) -> float:
    """
    Round half-up to ``places`` decimals.

    Goes through the shortest decimal repr of the float, so 2.675 rounds to
    2.68 rather than the 2.67 that built-in round() gives for its binary value.
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
