# --- src/spicecore/units.py ---
import logging
import math
from numbers import Real
from typing import Any

import pint

logger = logging.getLogger(__name__)
ureg = pint.UnitRegistry()
Quantity = ureg.Quantity
logger.info("Pint Unit Registry initialized.")

# --- Canonical dimensionality objects for explicit checks ---
VOLTAGE_DIMENSIONALITY = ureg.parse_expression('volt').dimensionality
CURRENT_DIMENSIONALITY = ureg.parse_expression('ampere').dimensionality
TIME_DIMENSIONALITY = ureg.parse_expression('second').dimensionality

_INFINITY_TOKENS = {"inf", "+inf", "infinity"}


def to_si_magnitude(value: Any, expected_unit: str) -> float:
    """
    Converts a raw netlist value to a plain float in the SI base unit of
    `expected_unit`.

    Plain numbers (and dimensionless strings such as "1000") are taken to be
    SI already. Strings carrying units ("1 kohm", "10 pF", "0.1 ns") are parsed
    by pint and must be compatible with `expected_unit`.

    Raises:
        pint.DimensionalityError: If the value has an incompatible dimension.
        ValueError: If the value cannot be interpreted as a real number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got boolean {value!r}.")
    if isinstance(value, Real):
        return float(value)
    if isinstance(value, pint.Quantity):
        qty = value
    elif isinstance(value, str):
        text = value.strip()
        head, _, unit_text = text.partition(" ")
        if head.lower() in _INFINITY_TOKENS:
            if unit_text and not ureg.Quantity(1.0, unit_text.strip()).is_compatible_with(expected_unit):
                raise pint.DimensionalityError(ureg.Unit(unit_text.strip()), ureg.Unit(expected_unit))
            return math.inf
        try:
            qty = ureg.Quantity(text)
        except (pint.PintError, AttributeError, TypeError, ValueError, SyntaxError) as e:
            raise ValueError(f"Cannot interpret '{value}' as a quantity: {e}") from e
    else:
        raise ValueError(f"Expected a number or quantity string, got {type(value).__name__}.")

    if not isinstance(qty, pint.Quantity):
        # A bare number string such as "1000" parses to a plain int/float.
        return float(qty)
    if qty.dimensionless:
        return float(qty.to('dimensionless').magnitude)
    if not qty.is_compatible_with(expected_unit):
        raise pint.DimensionalityError(qty.units, ureg.Unit(expected_unit))

    magnitude = qty.to(expected_unit).magnitude
    if isinstance(magnitude, complex):
        raise ValueError(f"Value '{value}' must be real.")
    return float(magnitude)
