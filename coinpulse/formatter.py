# coinpulse/formatter.py

_SUFFIXES = (
    (1e15, "Q"),
    (1e12, "T"),
    (1e9, "B"),
    (1e6, "M"),
    (1e3, "K"),
)


def format_magnitude(value: float, decimals: int = 1) -> str:
    for threshold, suffix in _SUFFIXES:
        if abs(value) >= threshold:
            return f"{value / threshold:.{decimals}f}{suffix}"
    return f"{value:.2f}"


def format_amount(amount: str) -> str:
    """仅用于展示, 不修改原始 amount"""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return amount
    return format_magnitude(value)


def format_usd(value: float) -> str:
    if abs(value) >= 1_000:
        return f"${format_magnitude(value)}"
    elif abs(value) >= 1:
        return f"${value:,.2f}"
    else:
        return f"${value:.8f}"


def truncate_address(address: str, start: int = 6, end: int = 4) -> str:
    if not address or len(address) <= start + end:
        return address
    return f"{address[:start]}...{address[-end:]}"
