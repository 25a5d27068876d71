"""Utility functions for the COA asset migration pipeline."""

import logging
import re
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from .exceptions import InvalidAmount, ValidationError

logger = logging.getLogger(__name__)

_HEX_BODY = re.compile(r"^[0-9a-fA-F]*$")
_FLOW_ADDRESS = re.compile(r"^(0x)?[0-9a-fA-F]{1,16}$")


def hex_to_byte_array(value: str) -> bytes:
    """Convert a ``0x``-prefixed hex string to bytes; ``"0x"`` yields ``b""``."""
    body = value[2:] if value[:2].lower() == "0x" else value

    if len(body) % 2 != 0 or not _HEX_BODY.match(body):
        raise ValidationError("Malformed hex string", field="hex", value=value)

    return bytes.fromhex(body)


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to a ``0x``-prefixed lowercase hex string."""
    return "0x" + data.hex()


def parse_amount(amount: str | int | Decimal, field: str = "amount") -> Decimal:
    """Parse a decimal amount, rejecting malformed and non-positive values."""
    if isinstance(amount, Decimal):
        quantity = amount
    else:
        try:
            quantity = Decimal(str(amount).strip())
        except (ValueError, InvalidOperation) as exc:
            raise InvalidAmount(
                "Invalid amount",
                field=field,
                value=amount,
                details={"error": str(exc)},
            ) from exc

    if not quantity.is_finite() or quantity <= 0:
        raise InvalidAmount("Amount must be positive", field=field, value=str(amount))

    return quantity


def scale_amount(amount: str | int | Decimal, decimals: int, field: str = "amount") -> int:
    """Scale a decimal amount to integer base units, truncating excess precision."""
    quantity = parse_amount(amount, field=field)

    scaled_decimal = quantity.scaleb(decimals)
    scaled_integral = scaled_decimal.to_integral_value(rounding=ROUND_DOWN)

    if scaled_integral != scaled_decimal:
        logger.warning(
            "Truncating %s to %s decimals (requested=%s, units=%s)",
            field,
            decimals,
            amount,
            scaled_integral,
        )

    if scaled_integral <= 0:
        raise InvalidAmount(
            "Amount is zero after scaling to base units",
            field=field,
            value=str(amount),
            details={"decimals": decimals},
        )

    return int(scaled_integral)


def units_to_decimal_string(units: int | str, decimals: int, places: int) -> str:
    """Render integer base units as a fixed-point string with ``places`` decimals."""
    value = Decimal(int(units)).scaleb(-decimals)
    quantizer = Decimal(1).scaleb(-places)
    return format(value.quantize(quantizer, rounding=ROUND_DOWN), "f")


def normalise_flow_address(address: str) -> str:
    """Return a Flow address as ``0x`` followed by 16 lowercase hex digits."""
    if not isinstance(address, str) or not _FLOW_ADDRESS.match(address):
        raise ValidationError("Invalid Flow address", field="address", value=address)

    body = address[2:] if address.startswith("0x") else address
    return "0x" + body.lower().rjust(16, "0")
