"""Factory-wide income, expense and net balance roll-ups.

Two income figures coexist and are kept apart on purpose:

* :func:`calculate_factory_summary` is the consolidated factory summary shown
  on the summary card and in the backup file. It counts the value of the
  remaining tin and plastic stock as income and container purchases as
  expense.
* :func:`calculate_dashboard_summary` backs the main dashboard cards. Its
  income leaves the stock value out and its expense covers only workers and
  overhead.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from . import log
from .aggregation import LedgerTotals, RevenueBreakdown, calculate_ledger_totals, calculate_revenue_breakdown
from .costing import ContainerStock, calculate_plastic_stock, calculate_tin_stock
from .data_manager import Collections, OilPurchaseRow, OilSaleRow
from .formatting import ZERO, to_number


@dataclass(frozen=True)
class ExpenseTotals:
    """Stored totals of every non-transaction collection."""

    worker: Decimal
    overhead: Decimal
    pomace: Decimal
    tin_purchases: Decimal
    plastic_purchases: Decimal


def calculate_expense_totals(collections: Collections) -> ExpenseTotals:
    return ExpenseTotals(
        worker=sum((to_number(row.amount) for row in collections.worker_expenses), ZERO),
        overhead=sum((to_number(row.amount) for row in collections.factory_overhead), ZERO),
        pomace=sum((to_number(row.total_revenue) for row in collections.pomace_revenues), ZERO),
        tin_purchases=sum((to_number(row.total_cost) for row in collections.tin_purchases), ZERO),
        plastic_purchases=sum((to_number(row.total_cost) for row in collections.plastic_purchases), ZERO),
    )


@dataclass(frozen=True)
class FactorySummary:
    """Consolidated income/expense/net triple with the terms it was built from."""

    total_billed: Decimal
    total_pomace: Decimal
    total_loss: Decimal
    remaining_tin_value: Decimal
    remaining_plastic_value: Decimal
    total_worker: Decimal
    total_overhead: Decimal
    total_tin_purchase: Decimal
    total_plastic_purchase: Decimal
    total_income: Decimal
    total_expense: Decimal

    @property
    def net_balance(self) -> Decimal:
        return self.total_income - self.total_expense


def calculate_factory_summary(collections: Collections) -> FactorySummary:
    """Compute the consolidated factory summary.

    ``total_income = billed + pomace - loss + remaining tin value + remaining
    plastic value`` and ``total_expense = worker + overhead + tin purchases +
    plastic purchases``. The remaining stock is valued at weighted-average
    cost and may be negative when more containers were sold than bought.

    Args:
        collections (Collections): Snapshot of every collection.

    Returns:
        FactorySummary: Income, expense and their components.
    """

    ledger = calculate_ledger_totals(collections.transactions)
    expenses = calculate_expense_totals(collections)
    tin_stock = calculate_tin_stock(collections.tin_purchases, collections.transactions)
    plastic_stock = calculate_plastic_stock(collections.plastic_purchases, collections.transactions)

    tin_value = tin_stock.total_remaining_value
    plastic_value = plastic_stock.total_remaining_value
    total_income = ledger.total_billed + expenses.pomace - ledger.total_loss + tin_value + plastic_value
    total_expense = expenses.worker + expenses.overhead + expenses.tin_purchases + expenses.plastic_purchases

    log.debug("Factory summary: income %s, expense %s", total_income, total_expense)
    return FactorySummary(
        total_billed=ledger.total_billed,
        total_pomace=expenses.pomace,
        total_loss=ledger.total_loss,
        remaining_tin_value=tin_value,
        remaining_plastic_value=plastic_value,
        total_worker=expenses.worker,
        total_overhead=expenses.overhead,
        total_tin_purchase=expenses.tin_purchases,
        total_plastic_purchase=expenses.plastic_purchases,
        total_income=total_income,
        total_expense=total_expense,
    )


@dataclass(frozen=True)
class DashboardSummary:
    """Figures behind the main dashboard cards."""

    ledger: LedgerTotals
    revenue: RevenueBreakdown
    expenses: ExpenseTotals
    tin_stock: ContainerStock
    plastic_stock: ContainerStock
    total_income: Decimal
    total_expense: Decimal

    @property
    def net_balance(self) -> Decimal:
        return self.total_income - self.total_expense


def calculate_dashboard_summary(collections: Collections) -> DashboardSummary:
    """Compute the dashboard view: ``billed + pomace - loss`` against ``worker + overhead``."""

    ledger = calculate_ledger_totals(collections.transactions)
    expenses = calculate_expense_totals(collections)
    return DashboardSummary(
        ledger=ledger,
        revenue=calculate_revenue_breakdown(collections.transactions),
        expenses=expenses,
        tin_stock=calculate_tin_stock(collections.tin_purchases, collections.transactions),
        plastic_stock=calculate_plastic_stock(collections.plastic_purchases, collections.transactions),
        total_income=ledger.total_billed + expenses.pomace - ledger.total_loss,
        total_expense=expenses.worker + expenses.overhead,
    )


@dataclass(frozen=True)
class OilTradingSummary:
    """Bulk oil bought from suppliers and resold, counted in tins."""

    purchased_tins: Decimal
    sold_tins: Decimal
    purchase_cost: Decimal
    sale_revenue: Decimal

    @property
    def remaining_tins(self) -> Decimal:
        return self.purchased_tins - self.sold_tins

    @property
    def net_profit(self) -> Decimal:
        return self.sale_revenue - self.purchase_cost


def calculate_oil_trading_summary(
    oil_purchases: Iterable[OilPurchaseRow], oil_sales: Iterable[OilSaleRow]
) -> OilTradingSummary:
    purchased = cost = ZERO
    for purchase in oil_purchases:
        purchased += to_number(purchase.tin_count)
        cost += to_number(purchase.total_cost)

    sold = revenue = ZERO
    for sale in oil_sales:
        sold += to_number(sale.tin_count)
        revenue += to_number(sale.total_revenue)

    return OilTradingSummary(purchased_tins=purchased, sold_tins=sold, purchase_cost=cost, sale_revenue=revenue)


__all__ = [
    "ExpenseTotals",
    "calculate_expense_totals",
    "FactorySummary",
    "calculate_factory_summary",
    "DashboardSummary",
    "calculate_dashboard_summary",
    "OilTradingSummary",
    "calculate_oil_trading_summary",
]
