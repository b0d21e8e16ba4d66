"""Per-transaction and ledger-wide aggregation of customer transactions.

Everything here is a pure fold over the rows it is given: no function reads
global state, performs I/O or raises on malformed numbers. Sums are built in
:class:`~decimal.Decimal`, so permuting the input never changes a total.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import UNKNOWN_CUSTOMER_NAME, BalanceFilter, ContainerFamily
from .costing import transaction_container_counts, transaction_container_prices
from .data_manager import CustomerRow, TransactionRow
from .formatting import ZERO, oil_ratio, parse_date, round_to_two, to_number


# ---------------------------------------------------------------------------
# Per-transaction figures
# ---------------------------------------------------------------------------


def olive_income(transaction: TransactionRow) -> Decimal:
    """Pressing fee of one transaction: ``olive_kg * price_per_kg``."""

    return to_number(transaction.olive_kg) * to_number(transaction.price_per_kg)


def container_income(transaction: TransactionRow, family: ContainerFamily) -> Decimal:
    """Container sales of one transaction for ``family``: ``Σ count * price``."""

    counts = transaction_container_counts(transaction, family)
    prices = transaction_container_prices(transaction, family)
    return sum((counts[size] * prices[size] for size in family.sizes), ZERO)


def calculate_total_cost(
    olive_kg: Any,
    price_per_kg: Any,
    tin_counts: Mapping[str, Any],
    tin_prices: Mapping[str, Any],
    plastic_counts: Mapping[str, Any],
    plastic_prices: Mapping[str, Any],
) -> Decimal:
    """Return the stored total cost of a transaction.

    Args:
        olive_kg (Any): Kilograms of olives pressed.
        price_per_kg (Any): Pressing fee per kilogram.
        tin_counts (Mapping[str, Any]): Tins sold per size key.
        tin_prices (Mapping[str, Any]): Tin unit prices per size key.
        plastic_counts (Mapping[str, Any]): Plastic jugs sold per size key.
        plastic_prices (Mapping[str, Any]): Plastic unit prices per size key.

    Returns:
        Decimal: ``olive fee + Σ tin + Σ plastic`` rounded to two decimals.
            Missing or malformed values count as zero.
    """

    total = to_number(olive_kg) * to_number(price_per_kg)
    for family, counts, prices in (
        (ContainerFamily.TIN, tin_counts, tin_prices),
        (ContainerFamily.PLASTIC, plastic_counts, plastic_prices),
    ):
        for size in family.sizes:
            total += to_number(counts.get(size)) * to_number(prices.get(size))
    return round_to_two(total)


def calculate_remaining_balance(total_cost: Any, payment_received: Any, payment_loss: Any) -> Decimal:
    """Return ``total_cost - payment_received - payment_loss`` rounded to two decimals."""

    return round_to_two(to_number(total_cost) - to_number(payment_received) - to_number(payment_loss))


def transaction_oil_ratio(transaction: TransactionRow) -> Optional[Decimal]:
    return oil_ratio(transaction.olive_kg, transaction.oil_litre)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustomerBalance:
    """Ledger position of one customer across all of their transactions."""

    customer_id: str
    name: str
    total_cost: Decimal
    payment_received: Decimal
    payment_loss: Decimal
    remaining_balance: Decimal
    transaction_count: int

    @property
    def is_debtor(self) -> bool:
        return self.remaining_balance > 0


def calculate_customer_balance(
    transactions: Iterable[TransactionRow], customer_id: str, name: str = ""
) -> CustomerBalance:
    """Aggregate the transactions of ``customer_id``.

    The three components are summed across every row first and subtracted
    afterwards, rather than summing the stored per-row balances.
    """

    total_cost = paid = loss = ZERO
    count = 0
    for transaction in transactions:
        if transaction.customer_id != customer_id:
            continue
        total_cost += to_number(transaction.total_cost)
        paid += to_number(transaction.payment_received)
        loss += to_number(transaction.payment_loss)
        count += 1

    return CustomerBalance(
        customer_id=customer_id,
        name=name,
        total_cost=total_cost,
        payment_received=paid,
        payment_loss=loss,
        remaining_balance=total_cost - paid - loss,
        transaction_count=count,
    )


def _matches_filter(balance: CustomerBalance, balance_filter: BalanceFilter) -> bool:
    if balance_filter is BalanceFilter.DEBTORS:
        return balance.remaining_balance > 0
    if balance_filter is BalanceFilter.NON_DEBTORS:
        return balance.remaining_balance <= 0
    return True


def summarize_customers(
    customers: Iterable[CustomerRow],
    transactions: Iterable[TransactionRow],
    *,
    search: str = "",
    balance_filter: BalanceFilter = BalanceFilter.ALL,
    sort_by_name: bool = True,
) -> List[CustomerBalance]:
    """Return one balance per customer, filtered and by default sorted by name.

    Args:
        customers (Iterable[CustomerRow]): Customer collection.
        transactions (Iterable[TransactionRow]): Transaction collection.
        search (str): Case-insensitive substring matched against the name.
        balance_filter (BalanceFilter): ``debtors`` keeps balances above
            zero, ``non-debtors`` keeps the rest.
        sort_by_name (bool): When ``False`` customers keep their stored
            collection order.

    Returns:
        list[CustomerBalance]: Matching customers, ordered case-insensitively
            by name unless ``sort_by_name`` is ``False``.
    """

    rows = tuple(transactions)
    needle = search.strip().casefold()
    balances = []
    if sort_by_name:
        customers = sorted(customers, key=lambda c: (c.name.casefold(), c.customer_id))
    for customer in customers:
        if needle and needle not in customer.name.casefold():
            continue
        balance = calculate_customer_balance(rows, customer.customer_id, customer.name)
        if _matches_filter(balance, balance_filter):
            balances.append(balance)
    return balances


def index_customers(customers: Iterable[CustomerRow]) -> Dict[str, CustomerRow]:
    """Build the id lookup table used to resolve transaction customer references."""

    return {customer.customer_id: customer for customer in customers}


def resolve_customer_name(index: Mapping[str, CustomerRow], customer_id: Optional[str]) -> str:
    customer = index.get(customer_id) if customer_id else None
    return customer.name if customer is not None else UNKNOWN_CUSTOMER_NAME


def find_customer_by_name(customers: Iterable[CustomerRow], name: str) -> Optional[CustomerRow]:
    """Return the first customer whose name equals ``name`` ignoring case and padding."""

    wanted = name.strip().casefold()
    if not wanted:
        return None
    for customer in customers:
        if customer.name.strip().casefold() == wanted:
            return customer
    return None


# ---------------------------------------------------------------------------
# Monthly statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonthlyStatistics:
    year: int
    month: int
    total_olive: Decimal
    total_oil: Decimal
    transaction_count: int
    avg_ratio: Optional[Decimal]

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


def calculate_monthly_statistics(transactions: Iterable[TransactionRow]) -> List[MonthlyStatistics]:
    """Group transactions by ``(year, month)`` of their date.

    Only transactions with olives count towards ``transaction_count``; rows
    whose date cannot be parsed are left out entirely.

    Returns:
        list[MonthlyStatistics]: One entry per month, oldest first.
    """

    buckets: Dict[Tuple[int, int], List[Any]] = {}
    for transaction in transactions:
        when = parse_date(transaction.date)
        if when is None:
            continue
        bucket = buckets.setdefault((when.year, when.month), [ZERO, ZERO, 0])
        olive = to_number(transaction.olive_kg)
        bucket[0] += olive
        bucket[1] += to_number(transaction.oil_litre)
        if olive > 0:
            bucket[2] += 1

    return [
        MonthlyStatistics(
            year=year,
            month=month,
            total_olive=olive,
            total_oil=oil,
            transaction_count=count,
            avg_ratio=oil_ratio(olive, oil),
        )
        for (year, month), (olive, oil, count) in sorted(buckets.items())
    ]


# ---------------------------------------------------------------------------
# Ledger-wide totals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RevenueBreakdown:
    """Decomposition of billed amounts by revenue source.

    ``total_billed`` is recomputed from the line items; ``stored_total_cost``
    sums what was persisted. The two agree for rows saved by the application.
    """

    olive_income: Decimal
    tin_income: Decimal
    plastic_income: Decimal
    stored_total_cost: Decimal

    @property
    def total_billed(self) -> Decimal:
        return self.olive_income + self.tin_income + self.plastic_income


def calculate_revenue_breakdown(transactions: Iterable[TransactionRow]) -> RevenueBreakdown:
    olive = tin = plastic = stored = ZERO
    for transaction in transactions:
        olive += olive_income(transaction)
        tin += container_income(transaction, ContainerFamily.TIN)
        plastic += container_income(transaction, ContainerFamily.PLASTIC)
        stored += to_number(transaction.total_cost)
    return RevenueBreakdown(olive_income=olive, tin_income=tin, plastic_income=plastic, stored_total_cost=stored)


@dataclass(frozen=True)
class LedgerTotals:
    """Sums across every transaction, as shown on the dashboard and backup."""

    total_olive: Decimal
    total_oil: Decimal
    total_billed: Decimal
    total_received: Decimal
    total_loss: Decimal
    olive_pressing_fee: Decimal

    @property
    def overall_ratio(self) -> Optional[Decimal]:
        return oil_ratio(self.total_olive, self.total_oil)

    @property
    def pending_payments(self) -> Decimal:
        return self.total_billed - self.total_received - self.total_loss

    @property
    def net_revenue(self) -> Decimal:
        return self.total_billed - self.total_loss


def calculate_ledger_totals(transactions: Iterable[TransactionRow]) -> LedgerTotals:
    """Sum the ledger, using the stored ``total_cost`` as the billed amount."""

    olive = oil = billed = received = loss = fee = ZERO
    count = 0
    for transaction in transactions:
        olive += to_number(transaction.olive_kg)
        oil += to_number(transaction.oil_litre)
        billed += to_number(transaction.total_cost)
        received += to_number(transaction.payment_received)
        loss += to_number(transaction.payment_loss)
        fee += olive_income(transaction)
        count += 1

    log.debug("Aggregated %d transactions, billed %s", count, billed)
    return LedgerTotals(
        total_olive=olive,
        total_oil=oil,
        total_billed=billed,
        total_received=received,
        total_loss=loss,
        olive_pressing_fee=fee,
    )


def most_recent_transactions(
    transactions: Iterable[TransactionRow], limit: Optional[int] = None
) -> Sequence[TransactionRow]:
    """Return transactions newest first; undated rows sort last."""

    def sort_key(transaction: TransactionRow) -> Tuple[int, str, str]:
        when = parse_date(transaction.date)
        stamp = when.isoformat() if when is not None else ""
        return (1 if when is not None else 0, stamp, transaction.transaction_id)

    ordered = sorted(transactions, key=sort_key, reverse=True)
    return ordered if limit is None else ordered[:limit]


__all__ = [
    "olive_income",
    "container_income",
    "calculate_total_cost",
    "calculate_remaining_balance",
    "transaction_oil_ratio",
    "CustomerBalance",
    "calculate_customer_balance",
    "summarize_customers",
    "index_customers",
    "resolve_customer_name",
    "find_customer_by_name",
    "MonthlyStatistics",
    "calculate_monthly_statistics",
    "RevenueBreakdown",
    "calculate_revenue_breakdown",
    "LedgerTotals",
    "calculate_ledger_totals",
    "most_recent_transactions",
]
