"""
Module: winroom_kernel.db.types
Responsibility: Column type constants and numeric helpers shared by models
    and services, so every money and ratio column has the same precision.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/ or selectors/.

Invariants enforced:
    - No floats for money: amounts are Decimal, stored as Numeric(38, 9).
    - Stored metrics keep full precision.
"""

from decimal import Decimal

from sqlalchemy import Numeric, String

# Monetary amount, 38 digits total, 9 decimal places
MONEY = Numeric(38, 9)

# Ratio such as margin_percent or goal progress (1.0 == 100%)
RATIO = Numeric(20, 9)

# Currency code as recorded (upstream values are not always ISO)
CURRENCY_CODE = String(8)

# SHA-256 hex digest
FINGERPRINT = String(64)


def to_decimal(value) -> Decimal | None:
    """
    Coerce a raw numeric (int, float, str, Decimal) to Decimal.

    Floats go through ``repr`` so 0.1 stays 0.1.  Returns None for None,
    empty strings, non-finite values and values that do not parse.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, float):
        value = repr(value)
    try:
        text = str(value).strip()
        if not text:
            return None
        result = Decimal(text)
    except ArithmeticError:
        return None
    if not result.is_finite():
        return None
    return result
