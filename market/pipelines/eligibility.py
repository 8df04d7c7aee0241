"""Seller eligibility: institution membership and billing standing."""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from market.pipelines.sellers import SellerProfile

logger = logging.getLogger(__name__)


def is_billing_suspended(seller: SellerProfile, today: date) -> bool:
    """Active billing whose due date has arrived or passed."""
    return (
        seller.billing_active
        and seller.billing_due_date is not None
        and seller.billing_due_date <= today
    )


def filter_eligible(
    sellers: Iterable[SellerProfile],
    institution: str,
    today: date,
) -> list[SellerProfile]:
    """Keep sellers from ``institution`` that are not billing-suspended.

    Institution comparison is exact; billing comparison is by date only.
    """
    eligible: list[SellerProfile] = []
    for seller in sellers:
        if seller.institution != institution:
            continue
        if is_billing_suspended(seller, today):
            logger.debug(
                f"Skipping seller {seller.seller_id}: billing due {seller.billing_due_date}"
            )
            continue
        eligible.append(seller)
    return eligible
