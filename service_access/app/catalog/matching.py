"""
Plan matching between products and granted plan codes.

Every place that asks "does this product unlock for this plan" goes through
product_matches_plan so reconciliation, access checks and plan resolution
cannot drift apart.
"""

from typing import Iterable, Optional, Union

from .models import Product


def product_matches_plan(product: Product, plans: Union[str, Iterable[str]]) -> Optional[str]:
    """Return the first slot (plan_1, plan_2, plan_3) holding one of `plans`, or None.

    `plans` is either a single plan code or a collection of granted codes.
    Slots are treated as a set for matching; slot order only decides which
    slot gets reported when several match.
    """
    if isinstance(plans, str):
        wanted = {plans}
    else:
        wanted = set(plans)
    wanted.discard("")

    if not wanted:
        return None

    for slot, code in product.plan_slots():
        if code in wanted:
            return slot
    return None
