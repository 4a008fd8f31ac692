"""
Payment chain selection.

Ranks the relay's payment options cheapest-affordable-first. The ranking is
advisory; nothing is paid until a chain is explicitly selected.
"""

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from .models import PaymentOption


@dataclass(frozen=True)
class RankedPaymentOption:
    option: PaymentOption
    affordable: bool
    balance: Optional[int] = None

    @property
    def chain_id(self) -> int:
        return self.option.chain_id


def is_affordable(option: PaymentOption, balances: Mapping[int, int]) -> bool:
    """Unknown balances count as unaffordable."""
    balance = balances.get(option.chain_id)
    return balance is not None and balance >= option.amount


def rank_payment_options(
    options: Sequence[PaymentOption],
    balances: Optional[Mapping[int, int]] = None,
) -> List[RankedPaymentOption]:
    """
    Affordable options first, then ascending amount.

    sorted() is stable, so options with equal keys keep the relay's order.
    """
    balances = balances or {}
    ranked = [
        RankedPaymentOption(
            option=option,
            affordable=is_affordable(option, balances),
            balance=balances.get(option.chain_id),
        )
        for option in options
    ]
    return sorted(ranked, key=lambda entry: (not entry.affordable, entry.option.amount))


def default_payment_chain(
    options: Sequence[PaymentOption],
    balances: Optional[Mapping[int, int]] = None,
) -> Optional[int]:
    """Cheapest affordable chain, or None when the user can afford none."""
    ranked = rank_payment_options(options, balances)
    if ranked and ranked[0].affordable:
        return ranked[0].chain_id
    return None
