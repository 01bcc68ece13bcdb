"""
Module: hera_kernel.db.types
Responsibility: Annotated column type aliases plus the sanctioned money
    helpers (rounding, currency validation) shared by models and services.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.

Invariants enforced:
    - Currency codes are ISO 4217.  validate_currency() is the canonical
      check; every transaction header and line currency passes through it.
    - No floats for money.  Amounts are Decimal with Numeric(38, 9) storage.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

from hera_kernel.exceptions import InvalidCurrencyError, InvalidPayloadError

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

Currency = Annotated[str, String(3)]

SmartCodeColumn = Annotated[str, String(255)]

ShortCode = Annotated[str, String(100)]

LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the given number of decimal places."""
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Convert a caller-supplied amount to Decimal.

    Accepts Decimal, int and numeric strings.  Floats go through ``str()``
    so ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    Booleans are rejected even though they are ints.

    Raises:
        InvalidPayloadError: value is not a finite number.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidPayloadError(f"{field} must be a number", field=field)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidPayloadError(
                f"{field} must be a number, got '{value}'", field=field
            ) from None
    else:
        raise InvalidPayloadError(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise InvalidPayloadError(f"{field} must be finite", field=field)
    return result


# ISO 4217 currency codes
ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL", "BSD", "BTN", "BWP", "BYN", "BZD",
    "CDF", "CLP", "CNY", "COP", "CRC", "CUP", "CVE", "CZK",
    "DJF", "DKK", "DOP", "DZD",
    "EGP", "ERN", "ETB",
    "FJD", "FKP",
    "GEL", "GHS", "GIP", "GMD", "GNF", "GTQ", "GYD",
    "HKD", "HNL", "HTG", "HUF",
    "IDR", "ILS", "INR", "IQD", "IRR", "ISK",
    "JMD", "JOD",
    "KES", "KGS", "KHR", "KMF", "KPW", "KRW", "KWD", "KYD", "KZT",
    "LAK", "LBP", "LKR", "LRD", "LSL", "LYD",
    "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR", "MVR", "MWK", "MXN", "MYR", "MZN",
    "NAD", "NGN", "NIO", "NOK", "NPR",
    "OMR",
    "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG",
    "QAR",
    "RON", "RSD", "RUB", "RWF",
    "SAR", "SBD", "SCR", "SDG", "SEK", "SGD", "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SYP", "SZL",
    "THB", "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS",
    "UAH", "UGX", "UYU", "UZS",
    "VES", "VND", "VUV",
    "WST",
    "XAF", "XCD", "XOF", "XPF",
    "YER",
    "ZAR", "ZMW", "ZWL",
})


def validate_currency(currency: Any) -> str:
    """
    Validate and normalize an ISO 4217 currency code.

    Returns:
        The upper-cased, trimmed code.

    Raises:
        InvalidCurrencyError: If the code is not recognised.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(currency)

    normalized = currency.upper().strip()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized


def is_valid_currency(currency: Any) -> bool:
    try:
        validate_currency(currency)
        return True
    except InvalidCurrencyError:
        return False
