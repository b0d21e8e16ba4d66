"""Weighted-average stock costing for the container families.

Each size variant is costed on its own: the unit cost of a size is the total
amount spent on that size divided by the number of units bought, over every
purchase on record. Consumption comes from the container counts embedded in
customer transactions. Remaining quantities are never clamped, so overselling
shows up as a negative stock and a negative stock value.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Tuple

from . import log
from .constants import ContainerFamily
from .data_manager import ContainerPurchaseRow, TransactionRow
from .formatting import ZERO, round_to_two, to_number


@dataclass(frozen=True)
class VariantStock:
    """Costing figures for one size variant of a container family."""

    size: str
    purchased: Decimal
    purchase_cost: Decimal
    avg_unit_cost: Decimal
    consumed: Decimal
    remaining: Decimal
    value_consumed: Decimal
    value_remaining: Decimal
    value_purchased: Decimal


@dataclass(frozen=True)
class ContainerStock:
    """Per-size stock of one container family plus family-wide totals."""

    family: ContainerFamily
    variants: Mapping[str, VariantStock]

    @property
    def total_purchased(self) -> Decimal:
        return sum((v.purchased for v in self.variants.values()), ZERO)

    @property
    def total_consumed(self) -> Decimal:
        return sum((v.consumed for v in self.variants.values()), ZERO)

    @property
    def total_remaining(self) -> Decimal:
        return sum((v.remaining for v in self.variants.values()), ZERO)

    @property
    def total_purchase_cost(self) -> Decimal:
        return sum((v.purchase_cost for v in self.variants.values()), ZERO)

    @property
    def total_consumed_value(self) -> Decimal:
        return sum((v.value_consumed for v in self.variants.values()), ZERO)

    @property
    def total_remaining_value(self) -> Decimal:
        return sum((v.value_remaining for v in self.variants.values()), ZERO)


@dataclass(frozen=True)
class VariantPurchaseStatistics:
    size: str
    quantity: Decimal
    cost: Decimal
    avg_unit_price: Decimal


def purchase_total_cost(quantities: Mapping[str, Any], unit_price: Any) -> Decimal:
    """Return the stored total of a container purchase.

    Args:
        quantities (Mapping[str, Any]): Units bought per size key.
        unit_price (Any): Price applied uniformly to every size on the purchase.

    Returns:
        Decimal: ``round_to_two(sum(quantities) * unit_price)``.
    """

    units = sum((to_number(value) for value in quantities.values()), ZERO)
    return round_to_two(units * to_number(unit_price))


def transaction_container_counts(transaction: TransactionRow, family: ContainerFamily) -> Dict[str, Decimal]:
    """Return the container units a transaction sold for ``family``, per size."""

    counts = transaction.tin_counts if family is ContainerFamily.TIN else transaction.plastic_counts
    return {size: to_number(counts.get(size)) for size in family.sizes}


def transaction_container_prices(transaction: TransactionRow, family: ContainerFamily) -> Dict[str, Decimal]:
    """Return the unit prices a transaction charged for ``family``, per size."""

    prices = transaction.tin_prices if family is ContainerFamily.TIN else transaction.plastic_prices
    return {size: to_number(prices.get(size)) for size in family.sizes}


def _purchased_totals(
    family: ContainerFamily, purchases: Iterable[ContainerPurchaseRow]
) -> Tuple[Dict[str, Decimal], Dict[str, Decimal]]:
    quantity = {size: ZERO for size in family.sizes}
    cost = {size: ZERO for size in family.sizes}
    for purchase in purchases:
        unit_price = to_number(purchase.unit_price)
        for size in family.sizes:
            units = to_number(purchase.quantities.get(size))
            quantity[size] += units
            cost[size] += units * unit_price
    return quantity, cost


def _average(cost: Decimal, quantity: Decimal) -> Decimal:
    if quantity > 0:
        return cost / quantity
    return ZERO


def average_unit_costs(family: ContainerFamily, purchases: Iterable[ContainerPurchaseRow]) -> Dict[str, Decimal]:
    """Weighted-average unit cost per size over every purchase; zero when none were bought."""

    quantity, cost = _purchased_totals(family, purchases)
    return {size: _average(cost[size], quantity[size]) for size in family.sizes}


def calculate_container_stock(
    family: ContainerFamily,
    purchases: Iterable[ContainerPurchaseRow],
    transactions: Iterable[TransactionRow],
) -> ContainerStock:
    """Compute weighted-average stock figures for one container family.

    Args:
        family (ContainerFamily): Family whose size keys drive the computation.
        purchases (Iterable[ContainerPurchaseRow]): Every purchase of the family.
        transactions (Iterable[TransactionRow]): Consumption events; only the
            family's container counts are read.

    Returns:
        ContainerStock: Per-size purchase, consumption and remaining figures.
    """

    quantity, cost = _purchased_totals(family, purchases)
    consumed = {size: ZERO for size in family.sizes}
    for transaction in transactions:
        for size, units in transaction_container_counts(transaction, family).items():
            consumed[size] += units

    variants: Dict[str, VariantStock] = {}
    for size in family.sizes:
        avg = _average(cost[size], quantity[size])
        remaining = quantity[size] - consumed[size]
        variants[size] = VariantStock(
            size=size,
            purchased=quantity[size],
            purchase_cost=cost[size],
            avg_unit_cost=avg,
            consumed=consumed[size],
            remaining=remaining,
            value_consumed=consumed[size] * avg,
            value_remaining=remaining * avg,
            value_purchased=quantity[size] * avg,
        )

    stock = ContainerStock(family=family, variants=variants)
    log.debug("Computed %s stock: remaining value %s", family.value, stock.total_remaining_value)
    return stock


def calculate_tin_stock(
    purchases: Iterable[ContainerPurchaseRow], transactions: Iterable[TransactionRow]
) -> ContainerStock:
    return calculate_container_stock(ContainerFamily.TIN, purchases, transactions)


def calculate_plastic_stock(
    purchases: Iterable[ContainerPurchaseRow], transactions: Iterable[TransactionRow]
) -> ContainerStock:
    return calculate_container_stock(ContainerFamily.PLASTIC, purchases, transactions)


def calculate_purchase_statistics(
    family: ContainerFamily, purchases: Iterable[ContainerPurchaseRow]
) -> Dict[str, VariantPurchaseStatistics]:
    """Purchase-only view per size: quantity bought, money spent, average price."""

    quantity, cost = _purchased_totals(family, purchases)
    return {
        size: VariantPurchaseStatistics(
            size=size,
            quantity=quantity[size],
            cost=cost[size],
            avg_unit_price=_average(cost[size], quantity[size]),
        )
        for size in family.sizes
    }


__all__ = [
    "VariantStock",
    "ContainerStock",
    "VariantPurchaseStatistics",
    "purchase_total_cost",
    "transaction_container_counts",
    "transaction_container_prices",
    "average_unit_costs",
    "calculate_container_stock",
    "calculate_tin_stock",
    "calculate_plastic_stock",
    "calculate_purchase_statistics",
]
