"""Platform fee split for contract budgets."""

from decimal import ROUND_HALF_UP, Decimal

from marketplace.core.config import settings

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce to a two-decimal Decimal (strings and ints are accepted)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def split_budget(budget, fee_percent) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, creator_amount)`` for a budget.

    The fee is rounded to the cent and the creator gets the remainder, so the
    two parts always add up to the budget exactly.
    """
    budget = to_money(budget)
    percent = Decimal(str(fee_percent))
    if budget <= 0:
        raise ValueError("budget must be positive")
    if not Decimal("0") <= percent <= Decimal("100"):
        raise ValueError("fee_percent must be between 0 and 100")
    platform_fee = (budget * percent / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    return platform_fee, budget - platform_fee


def accept_split(budget) -> tuple[Decimal, Decimal]:
    """Fee quoted when the creator accepts the offer."""
    return split_budget(budget, settings.accept_fee_percent)


def release_split(budget) -> tuple[Decimal, Decimal]:
    """Fee charged when the brand completes the contract and escrow is released."""
    return split_budget(budget, settings.release_fee_percent)
