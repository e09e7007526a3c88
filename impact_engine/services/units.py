"""
Quantity normalisation and unit conversion helpers.
"""

import logging
from decimal import Decimal
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# unit alias -> (family, base unit, multiplier to base)
_UNITS = {
    'kg': ('mass', 'kg', Decimal('1')),
    'kgs': ('mass', 'kg', Decimal('1')),
    'kilogram': ('mass', 'kg', Decimal('1')),
    'kilograms': ('mass', 'kg', Decimal('1')),
    'g': ('mass', 'kg', Decimal('0.001')),
    'gram': ('mass', 'kg', Decimal('0.001')),
    'grams': ('mass', 'kg', Decimal('0.001')),
    't': ('mass', 'kg', Decimal('1000')),
    'tonne': ('mass', 'kg', Decimal('1000')),
    'tonnes': ('mass', 'kg', Decimal('1000')),
    'l': ('volume', 'l', Decimal('1')),
    'litre': ('volume', 'l', Decimal('1')),
    'litres': ('volume', 'l', Decimal('1')),
    'liter': ('volume', 'l', Decimal('1')),
    'liters': ('volume', 'l', Decimal('1')),
    'ml': ('volume', 'l', Decimal('0.001')),
    'm3': ('volume', 'l', Decimal('1000')),
    'cubic meter': ('volume', 'l', Decimal('1000')),
    'kwh': ('energy', 'kwh', Decimal('1')),
    'mwh': ('energy', 'kwh', Decimal('1000')),
    'wh': ('energy', 'kwh', Decimal('0.001')),
    'km': ('distance', 'km', Decimal('1')),
    'm': ('distance', 'km', Decimal('0.001')),
    'miles': ('distance', 'km', Decimal('1.609344')),
}


def _lookup(unit: Optional[str]):
    return _UNITS.get((unit or '').strip().lower())


def base_unit_for(unit: str) -> str:
    entry = _lookup(unit)
    return entry[1] if entry else (unit or '').strip().lower()


def normalize_quantity(quantity: Decimal, unit: str) -> Tuple[Decimal, str]:
    """
    Convert a quantity to the base unit of its family (kg, l, kWh, km).

    Unknown units pass through unchanged so a mismatch is visible rather than guessed.
    """
    quantity = Decimal(str(quantity))
    entry = _lookup(unit)
    if entry is None:
        logger.warning(f"Unknown unit '{unit}', quantity left unnormalised")
        return quantity, (unit or '').strip().lower()
    _, base, multiplier = entry
    return quantity * multiplier, base


def units_compatible(source_unit: str, target_unit: str) -> bool:
    source, target = _lookup(source_unit), _lookup(target_unit)
    if source is None or target is None:
        return (source_unit or '').strip().lower() == (target_unit or '').strip().lower()
    return source[0] == target[0]


def convert_unit(value: Decimal, source_unit: str, target_unit: str) -> Tuple[Decimal, bool]:
    """
    Convert values between compatible units.

    Returns:
        (Converted value, was_converted flag)
    """
    if (source_unit or '').strip().lower() == (target_unit or '').strip().lower():
        return value, False
    source, target = _lookup(source_unit), _lookup(target_unit)
    if source is None or target is None or source[0] != target[0]:
        logger.warning(f"Cannot convert from {source_unit} to {target_unit}")
        return value, False
    if source[2] == target[2]:
        # Aliases of the same unit
        return value, False
    return Decimal(str(value)) * source[2] / target[2], True
