"""Sellable plans and their provider identifiers."""

from __future__ import annotations

from dataclasses import dataclass

from winprod import config


@dataclass(frozen=True)
class Plan:
    interval: str  # monthly, yearly
    tier: str
    stripe_price_id: str
    paypal_plan_id: str


def all_plans() -> list[Plan]:
    return [
        Plan("monthly", "pro", config.STRIPE_PRICE_MONTHLY_PRO, config.PAYPAL_PLAN_MONTHLY_PRO),
        Plan("yearly", "pro", config.STRIPE_PRICE_YEARLY_PRO, config.PAYPAL_PLAN_YEARLY_PRO),
    ]


def stripe_price_ids() -> set[str]:
    """Configured Stripe price ids (unset ones are skipped)."""
    return {p.stripe_price_id for p in all_plans() if p.stripe_price_id}


def is_known_price(price_id: str) -> bool:
    """Whether checkout may be opened for `price_id`.

    With no prices configured every id is accepted and Stripe decides.
    """
    known = stripe_price_ids()
    if not known:
        return True
    return price_id in known


def tier_for_plan(plan_id: str | None) -> str:
    """Customer tier granted by a Stripe price or PayPal plan.

    Every paid plan currently grants "pro", including ids created in the
    provider dashboard after deployment.
    """
    for plan in all_plans():
        if plan_id and plan_id in (plan.stripe_price_id, plan.paypal_plan_id):
            return plan.tier
    return "pro"
