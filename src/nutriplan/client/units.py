"""Imperial -> metric helpers for callers that collect imperial input.

The plan API accepts metric units only; convert before sending.
"""

from __future__ import annotations

KG_PER_POUND = 0.453592
CM_PER_INCH = 2.54


def pounds_to_kg(pounds: float, *, digits: int = 1) -> float:
    return round(pounds * KG_PER_POUND, digits)


def kg_to_pounds(kg: float, *, digits: int = 1) -> float:
    return round(kg / KG_PER_POUND, digits)


def inches_to_cm(inches: float, *, digits: int = 1) -> float:
    return round(inches * CM_PER_INCH, digits)


def feet_inches_to_cm(feet: int, inches: float = 0, *, digits: int = 1) -> float:
    """E.g. ``feet_inches_to_cm(5, 10)`` -> 177.8."""
    if feet < 0 or inches < 0:
        raise ValueError("feet and inches must be non-negative")
    return inches_to_cm(feet * 12 + inches, digits=digits)
