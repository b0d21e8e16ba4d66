"""Realised profit of container sales, per family and size.

Cost of goods sold uses the all-history weighted-average unit cost from
:mod:`olive_press_erp.costing`; sales are never matched to the purchases that
preceded them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Mapping

from .constants import ContainerFamily
from .costing import average_unit_costs, transaction_container_counts, transaction_container_prices
from .data_manager import ContainerPurchaseRow, TransactionRow
from .formatting import ZERO, to_number


@dataclass(frozen=True)
class VariantProfit:
    size: str
    sold: Decimal
    revenue: Decimal
    avg_unit_cost: Decimal
    cogs: Decimal

    @property
    def net_profit(self) -> Decimal:
        return self.revenue - self.cogs


@dataclass(frozen=True)
class CategoryProfit:
    """Profit of one container family.

    ``purchase_margin`` is the coarser figure of the statistics page: sales
    revenue minus everything ever spent on the family, sold or not.
    """

    family: ContainerFamily
    variants: Mapping[str, VariantProfit]
    total_purchase_cost: Decimal

    @property
    def total_sold(self) -> Decimal:
        return sum((v.sold for v in self.variants.values()), ZERO)

    @property
    def total_revenue(self) -> Decimal:
        return sum((v.revenue for v in self.variants.values()), ZERO)

    @property
    def total_cogs(self) -> Decimal:
        return sum((v.cogs for v in self.variants.values()), ZERO)

    @property
    def total_net_profit(self) -> Decimal:
        return self.total_revenue - self.total_cogs

    @property
    def purchase_margin(self) -> Decimal:
        return self.total_revenue - self.total_purchase_cost


def calculate_category_profit(
    family: ContainerFamily,
    purchases: Iterable[ContainerPurchaseRow],
    transactions: Iterable[TransactionRow],
) -> CategoryProfit:
    """Compute revenue, cost of goods sold and net profit for ``family``.

    Args:
        family (ContainerFamily): Family to evaluate.
        purchases (Iterable[ContainerPurchaseRow]): Every purchase of the
            family; drives the unit costs and the purchase margin.
        transactions (Iterable[TransactionRow]): Sales embedded in customer
            transactions.

    Returns:
        CategoryProfit: Per-size and family-wide profit figures.
    """

    purchase_rows = tuple(purchases)
    avg_costs = average_unit_costs(family, purchase_rows)

    sold: Dict[str, Decimal] = {size: ZERO for size in family.sizes}
    revenue: Dict[str, Decimal] = {size: ZERO for size in family.sizes}
    for transaction in transactions:
        counts = transaction_container_counts(transaction, family)
        prices = transaction_container_prices(transaction, family)
        for size in family.sizes:
            sold[size] += counts[size]
            revenue[size] += counts[size] * prices[size]

    variants = {
        size: VariantProfit(
            size=size,
            sold=sold[size],
            revenue=revenue[size],
            avg_unit_cost=avg_costs[size],
            cogs=sold[size] * avg_costs[size],
        )
        for size in family.sizes
    }
    stored_cost = sum((to_number(purchase.total_cost) for purchase in purchase_rows), ZERO)
    return CategoryProfit(family=family, variants=variants, total_purchase_cost=stored_cost)


def calculate_tin_profit(
    purchases: Iterable[ContainerPurchaseRow], transactions: Iterable[TransactionRow]
) -> CategoryProfit:
    return calculate_category_profit(ContainerFamily.TIN, purchases, transactions)


def calculate_plastic_profit(
    purchases: Iterable[ContainerPurchaseRow], transactions: Iterable[TransactionRow]
) -> CategoryProfit:
    return calculate_category_profit(ContainerFamily.PLASTIC, purchases, transactions)


__all__ = [
    "VariantProfit",
    "CategoryProfit",
    "calculate_category_profit",
    "calculate_tin_profit",
    "calculate_plastic_profit",
]
