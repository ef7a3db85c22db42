from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Optional, Tuple

from linecalc.currency import DEFAULT_CURRENCY_TABLE, CurrencyTable, NumberingStyle
from linecalc.evaluator import EvaluatedValue

CENT = Decimal("0.01")
TENTH = Decimal("0.1")
ESTIMATE_THRESHOLD = Decimal(1000)

# (threshold, divisor, suffix), largest first
ESTIMATE_UNITS = {
    NumberingStyle.INDIAN: [
        (Decimal(10) ** 7, Decimal(10) ** 7, "Cr"),
        (Decimal(10) ** 5, Decimal(10) ** 5, "Lac"),
        (ESTIMATE_THRESHOLD, Decimal(10) ** 3, "K"),
    ],
    NumberingStyle.WESTERN: [
        (Decimal(10) ** 9, Decimal(10) ** 9, "B"),
        (Decimal(10) ** 6, Decimal(10) ** 6, "M"),
        (ESTIMATE_THRESHOLD, Decimal(10) ** 3, "K"),
    ],
}


def group_western(digits: str) -> str:
    """1234567 -> 1,234,567"""
    # Sliced as text; int() refuses very long digit strings
    groups = []
    while len(digits) > 3:
        groups.append(digits[-3:])
        digits = digits[:-3]
    groups.append(digits)
    return ",".join(reversed(groups))


def group_indian(digits: str) -> str:
    """12345678 -> 1,23,45,678"""
    if len(digits) <= 3:
        return digits
    head, last_three = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [last_three])


def _round(value: Decimal, exponent: Decimal) -> Decimal:
    # Size the context to the value so huge numbers quantize exactly instead of raising.
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 5)
        return value.quantize(exponent, rounding=ROUND_HALF_UP)


def _split(value: Decimal) -> Tuple[bool, str, str]:
    """Sign, integer digits and trimmed fraction digits of a value rounded to cents."""
    rounded = _round(value, CENT)
    negative = rounded < 0
    integer_digits, _, fraction_digits = f"{abs(rounded):f}".partition(".")
    return negative, integer_digits, fraction_digits.rstrip("0")


def format_number(value: Decimal, style: NumberingStyle = NumberingStyle.WESTERN) -> str:
    if abs(value) < CENT:
        return "0"
    negative, integer_digits, fraction_digits = _split(value)
    grouped = group_indian(integer_digits) if style is NumberingStyle.INDIAN else group_western(integer_digits)
    text = f"{grouped}.{fraction_digits}" if fraction_digits else grouped
    return f"-{text}" if negative else text


def estimate_magnitude(value: Decimal, style: NumberingStyle = NumberingStyle.WESTERN) -> Optional[str]:
    """Human-readable size such as '8.4 K' or '1 Cr'; None below one thousand."""
    magnitude = abs(value)
    if magnitude < ESTIMATE_THRESHOLD:
        return None
    # Estimate what is displayed, so 8349.999... reads as 8.4 K like its rounded 8,350
    magnitude = _round(magnitude, CENT)
    for threshold, divisor, suffix in ESTIMATE_UNITS[style]:
        if magnitude >= threshold:
            quotient = _round(magnitude / divisor, TENTH)
            text = f"{quotient:f}"
            if text.endswith(".0"):
                text = text[:-2]
            return f"{text} {suffix}"
    return None


def format_value(value: EvaluatedValue, currencies: CurrencyTable = DEFAULT_CURRENCY_TABLE) -> str:
    """Renders a result for display, e.g. '₹ 8,350 (8.4 K)' or '1,000,000 (1 M)'."""
    style = NumberingStyle.WESTERN
    symbol = None
    if value.currency is not None:
        currency = currencies.get(value.currency)
        if currency is not None:
            style = currency.numbering_style
            symbol = currency.symbol
        else:
            symbol = value.currency

    text = format_number(value.amount, style)
    if symbol is not None:
        text = f"{symbol} {text}"
    estimate = estimate_magnitude(value.amount, style)
    if estimate is not None:
        text = f"{text} ({estimate})"
    return text
