"""
Book rules: invariants that span more than one field of a Book.

Discount fields travel together. A book either has no discount at all, or it
has a discount price together with a start and an end date, and the window
must not end before it starts.
"""
from typing import Any, Dict, Mapping


DISCOUNT_FIELDS = ("discount_price", "discount_start_date", "discount_end_date")


def discount_window_errors(values: Mapping[str, Any]) -> Dict[str, str]:
    """
    Check the discount invariant over a complete set of book values.

    Args:
        values: Mapping holding the three discount fields. A missing key and a
            ``None`` value both mean "not set".

    Returns:
        Field-to-message errors, empty when the values are consistent.
    """
    present = [values.get(field) is not None for field in DISCOUNT_FIELDS]
    if any(present) and not all(present):
        return {
            "discount_price": (
                "If any of discount_price, discount_start_date, or discount_end_date "
                "is provided, all three must be provided."
            )
        }
    if all(present) and values["discount_start_date"] > values["discount_end_date"]:
        return {
            "discount_start_date": "Discount start date must be before or equal to discount end date"
        }
    return {}
