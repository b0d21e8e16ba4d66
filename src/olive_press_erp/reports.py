"""Plain-text renderings of engine results.

The backup file, the non-debtor backup, single transaction receipts, the
records CSV export and the screens printed by the read-only CLI commands are
all assembled here from engine outputs. Nothing in this module computes a
figure of its own.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime
from functools import partial
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .aggregation import (
    CustomerBalance,
    calculate_ledger_totals,
    calculate_monthly_statistics,
    calculate_revenue_breakdown,
    container_income,
    most_recent_transactions,
    olive_income,
    summarize_customers,
    transaction_oil_ratio,
)
from .constants import DEFAULT_CURRENCY, BalanceFilter, ContainerFamily
from .costing import (
    ContainerStock,
    calculate_plastic_stock,
    calculate_purchase_statistics,
    calculate_tin_stock,
    transaction_container_counts,
)
from .data_manager import Collections, TransactionRow
from .formatting import (
    ZERO,
    format_date,
    format_number,
    format_oil_ratio_display,
    format_ratio,
    parse_date,
    to_input_date_string,
    to_number,
)
from .profit import CategoryProfit, calculate_plastic_profit, calculate_tin_profit
from .summary import calculate_dashboard_summary, calculate_factory_summary, calculate_oil_trading_summary


RULE = "=" * 50

SIZE_LABELS: Mapping[ContainerFamily, Mapping[str, str]] = {
    ContainerFamily.TIN: {"s16": "16 L", "s10": "10 L", "s5": "5 L"},
    ContainerFamily.PLASTIC: {"s10": "10 L", "s5": "5 L", "s2": "2 L"},
}

BACKUP_FILENAMES: Mapping[str, str] = {
    "full": "olive_press_backup_{date}.txt",
    "non-debtors": "olive_press_non_debtors_{date}.txt",
}


def _section(title: str, lines: Iterable[str]) -> List[str]:
    return [RULE, f"--- {title} ---", *lines, ""]


def _header(title: str, factory_name: str, generated_at: datetime) -> List[str]:
    return [
        f"{factory_name.upper()} - {title}",
        f"Generated: {generated_at.strftime('%d.%m.%Y %H:%M:%S')}",
        RULE,
        "",
    ]


def _describe(transaction: TransactionRow) -> str:
    olives = f"{format_number(transaction.olive_kg)} kg olives"
    return f"{transaction.description} ({olives})" if transaction.description else olives


def _history_lines(transactions: Sequence[TransactionRow], currency: str) -> List[str]:
    if not transactions:
        return ["    (No transactions recorded for this customer.)"]
    lines = []
    for transaction in transactions:
        remaining = (
            to_number(transaction.total_cost)
            - to_number(transaction.payment_received)
            - to_number(transaction.payment_loss)
        )
        lines.append(
            f"    - Date: {format_date(transaction.date)}, Description: {_describe(transaction)}, "
            f"Amount: {format_number(transaction.total_cost, currency)}, "
            f"Received: {format_number(transaction.payment_received, currency)}, "
            f"Remaining: {format_number(remaining, currency)}"
        )
    return lines


def _customer_records(
    balances: Iterable[CustomerBalance], transactions: Sequence[TransactionRow], currency: str
) -> List[str]:
    lines: List[str] = []
    for balance in balances:
        history = [t for t in transactions if t.customer_id == balance.customer_id]
        lines.append("")
        lines.append(f"*** Customer: {balance.name} ***")
        lines.append("  > Transaction history:")
        lines.extend(_history_lines(history, currency))
    return lines


def render_backup(
    collections: Collections,
    *,
    factory_name: str,
    generated_at: datetime,
    currency: str = DEFAULT_CURRENCY,
) -> str:
    """Render the complete plain-text backup of every collection.

    Sections appear in a fixed order: the consolidated factory summary, the
    revenue breakdown, the oil trading summary with its purchase and sale
    lists, one list per expense, purchase and revenue collection, the
    remaining container quantities and finally every debtor, in stored order,
    with their transaction history.

    Args:
        collections (Collections): Snapshot to render.
        factory_name (str): Name printed in the title line.
        generated_at (datetime): Timestamp printed under the title.
        currency (str): Unit appended to monetary figures.

    Returns:
        str: The backup text, newline terminated.
    """

    money = partial(format_number, unit=currency)
    factory = calculate_factory_summary(collections)
    ledger = calculate_ledger_totals(collections.transactions)
    revenue = calculate_revenue_breakdown(collections.transactions)
    trading = calculate_oil_trading_summary(collections.oil_purchases, collections.oil_sales)
    tin_stock = calculate_tin_stock(collections.tin_purchases, collections.transactions)
    plastic_stock = calculate_plastic_stock(collections.plastic_purchases, collections.transactions)

    lines = _header("BACKUP FILE", factory_name, generated_at)
    lines += _section(
        "FACTORY SUMMARY",
        [
            f"Total income: {money(factory.total_income)}",
            f"Total expense: {money(factory.total_expense)}",
            f"Net profit/loss: {money(factory.net_balance)}",
            f"Remaining tin stock value: {money(factory.remaining_tin_value)}",
            f"Remaining plastic stock value: {money(factory.remaining_plastic_value)}",
        ],
    )
    lines += _section(
        "PRESSING REVENUE",
        [
            f"Olive pressing revenue: {money(revenue.olive_income)}",
            f"Tin sales revenue: {money(revenue.tin_income)}",
            f"Plastic sales revenue: {money(revenue.plastic_income)}",
            f"Total revenue: {money(revenue.total_billed - ledger.total_loss)}",
            f"Total payments received: {money(ledger.total_received)}",
            f"Pending payments: {money(ledger.pending_payments)}",
            f"Payment loss: {money(ledger.total_loss)}",
        ],
    )
    lines += _section(
        "OIL TRADING SUMMARY",
        [
            f"Total purchase cost: {money(trading.purchase_cost)}",
            f"Total sale revenue: {money(trading.sale_revenue)}",
            f"Remaining net tin stock: {format_number(trading.remaining_tins, ' pcs')}",
            f"Net profit/loss: {money(trading.net_profit)}",
        ],
    )
    lines += _section(
        f"OIL PURCHASES ({len(collections.oil_purchases)} records)",
        [
            f"Date: {format_date(p.date)}, Supplier: {p.supplier_name}, Tins: {format_number(p.tin_count)}, "
            f"Tin price: {money(p.tin_price)}, Total cost: {money(p.total_cost)}"
            for p in collections.oil_purchases
        ],
    )
    lines += _section(
        f"OIL SALES ({len(collections.oil_sales)} records)",
        [
            f"Date: {format_date(s.date)}, Customer: {s.customer_name}, Tins: {format_number(s.tin_count)}, "
            f"Tin price: {money(s.tin_price)}, Total revenue: {money(s.total_revenue)}"
            for s in collections.oil_sales
        ],
    )
    lines += _section(
        f"WORKER EXPENSES ({len(collections.worker_expenses)} records)",
        [
            f"Date: {format_date(e.date)}, Name: {e.worker_name}, Days worked: {format_number(e.days_worked)}, "
            f"Amount: {money(e.amount)}, Description: {e.description}"
            for e in collections.worker_expenses
        ],
    )
    lines += _section(
        f"FACTORY OVERHEAD ({len(collections.factory_overhead)} records)",
        [
            f"Date: {format_date(e.date)}, Description: {e.description}, Amount: {money(e.amount)}"
            for e in collections.factory_overhead
        ],
    )
    for family, title, purchases in (
        (ContainerFamily.TIN, "TIN PURCHASES", collections.tin_purchases),
        (ContainerFamily.PLASTIC, "PLASTIC PURCHASES", collections.plastic_purchases),
    ):
        lines += _section(
            f"{title} ({len(purchases)} records)",
            [
                f"Date: {format_date(p.date)}, "
                + ", ".join(
                    f"{SIZE_LABELS[family][size]}: {format_number(p.quantities.get(size))}" for size in family.sizes
                )
                + f", Unit price: {money(p.unit_price)}, Total cost: {money(p.total_cost)}, "
                f"Description: {p.description}"
                for p in purchases
            ],
        )
    lines += _section(
        f"POMACE REVENUES ({len(collections.pomace_revenues)} records)",
        [
            f"Date: {format_date(r.date)}, Description: {r.description}, Trucks: {format_number(r.truck_count)}, "
            f"Load: {format_number(r.load_kg, ' kg')}, Price per kg: {money(r.price_per_kg)}, "
            f"Total revenue: {money(r.total_revenue)}"
            for r in collections.pomace_revenues
        ],
    )
    lines += _section("TIN/PLASTIC STOCK", _remaining_lines(tin_stock) + _remaining_lines(plastic_stock))

    debtors = summarize_customers(
        collections.customers, collections.transactions, balance_filter=BalanceFilter.DEBTORS, sort_by_name=False
    )
    lines += _section(
        "CUSTOMER RECORDS (debtors only)",
        _customer_records(debtors, collections.transactions, currency),
    )
    return "\n".join(lines)


def _remaining_lines(stock: ContainerStock) -> List[str]:
    lines = [f"Remaining {stock.family.value} stock:"]
    for size in stock.family.sizes:
        lines.append(f"  {SIZE_LABELS[stock.family][size]}: {format_number(stock.variants[size].remaining)} pcs")
    return lines


def render_non_debtor_backup(
    collections: Collections,
    *,
    factory_name: str,
    generated_at: datetime,
    currency: str = DEFAULT_CURRENCY,
) -> str:
    """Render the history of every customer whose balance is zero or negative, in stored order."""

    settled = summarize_customers(
        collections.customers,
        collections.transactions,
        balance_filter=BalanceFilter.NON_DEBTORS,
        sort_by_name=False,
    )
    lines = _header("NON-DEBTOR CUSTOMERS BACKUP", factory_name, generated_at)
    lines.append("--- CUSTOMER RECORDS (non-debtors only) ---")
    lines += _customer_records(settled, collections.transactions, currency)
    lines.append("")
    return "\n".join(lines)


def render_receipt(
    transaction: TransactionRow, *, factory_name: str, currency: str = DEFAULT_CURRENCY
) -> str:
    """Render a printable receipt for one transaction.

    The olive fee and container charges are recomputed from the line items;
    the ratio line shows ``-`` when olives or oil are missing.
    """

    olive_fee = olive_income(transaction)
    tin_cost = container_income(transaction, ContainerFamily.TIN)
    plastic_cost = container_income(transaction, ContainerFamily.PLASTIC)
    total = olive_fee + tin_cost + plastic_cost
    paid = to_number(transaction.payment_received)
    remaining = total - paid - to_number(transaction.payment_loss)
    ratio = transaction_oil_ratio(transaction)

    def counts(family: ContainerFamily, values: Mapping[str, object]) -> str:
        sizes = "/".join(SIZE_LABELS[family][size].split()[0] for size in family.sizes)
        return f"{sizes}: " + " / ".join(format_number(values.get(size)) for size in family.sizes)

    lines = [
        factory_name.upper(),
        "Transaction receipt",
        "-" * 40,
        f"Customer: {transaction.customer_name}",
        f"Date: {format_date(transaction.date)}",
        f"Description: {_describe(transaction)}",
        "-" * 40,
        f"Olives (kg): {format_number(transaction.olive_kg)}",
        f"Oil (L): {format_number(transaction.oil_litre)}",
        f"Price per kg: {format_number(transaction.price_per_kg, currency)}",
        f"Oil ratio: {'-' if ratio is None else format_ratio(ratio)}",
        f"Tins ({counts(ContainerFamily.TIN, transaction.tin_counts)})",
        f"Plastic ({counts(ContainerFamily.PLASTIC, transaction.plastic_counts)})",
        "-" * 40,
        f"Olive pressing fee: {format_number(olive_fee, currency)}",
        f"Tin charge: {format_number(tin_cost, currency)}",
        f"Plastic charge: {format_number(plastic_cost, currency)}",
        f"Total: {format_number(total, currency)}",
        f"Payment received: {format_number(paid, currency)}",
        f"Remaining balance: {format_number(remaining, currency)}",
        "-" * 40,
        "",
    ]
    return "\n".join(lines)


def backup_filename(kind: str, when: datetime) -> str:
    """Return the file name for a backup of ``kind`` (``full`` or ``non-debtors``).

    Raises:
        ValueError: If ``kind`` is not a known backup kind.
    """

    try:
        pattern = BACKUP_FILENAMES[kind]
    except KeyError as exc:
        raise ValueError(f"Unknown backup kind: {kind}") from exc
    return pattern.format(date=when.date().isoformat())


RECORD_HEADERS: Sequence[str] = (
    "Customer name",
    "Date",
    "Olives (kg)",
    "Oil (L)",
    "Oil ratio",
    "Price per kg ({currency})",
    "Tin count",
    "Tin charge ({currency})",
    "Plastic count",
    "Plastic charge ({currency})",
    "Total cost ({currency})",
    "Payment received ({currency})",
    "Remaining balance ({currency})",
)


def _plain(value: Any) -> str:
    return format(to_number(value).normalize(), "f")


def _within(value: Any, start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is None and end is None:
        return True
    when = parse_date(value)
    if when is None:
        return False
    return (start is None or when >= start) and (end is None or when <= end)


def render_records_csv(
    collections: Collections,
    *,
    search: str = "",
    start_date: Any = None,
    end_date: Any = None,
    currency: str = DEFAULT_CURRENCY,
) -> str:
    """Render the customer records as semicolon separated CSV.

    Customers keep their stored order and must match ``search``. A customer
    with transactions is kept only when at least one of them falls inside the
    ``start_date``/``end_date`` range; every transaction of a kept customer
    is then written, newest first. Container columns sum the per-size counts
    and charges.

    Args:
        collections (Collections): Snapshot to export.
        search (str): Case-insensitive substring matched against the name.
        start_date: Inclusive lower bound, ISO string or date.
        end_date: Inclusive upper bound, ISO string or date.
        currency (str): Unit named in the monetary column headers.

    Returns:
        str: Header line plus one line per exported transaction.
    """

    start, end = parse_date(start_date), parse_date(end_date)
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
    writer.writerow([header.format(currency=currency) for header in RECORD_HEADERS])

    customers = summarize_customers(collections.customers, collections.transactions, search=search, sort_by_name=False)
    for customer in customers:
        history = most_recent_transactions(
            t for t in collections.transactions if t.customer_id == customer.customer_id
        )
        if history and not any(_within(t.date, start, end) for t in history):
            continue
        for t in history:
            writer.writerow(
                [
                    customer.name,
                    to_input_date_string(t.date),
                    _plain(t.olive_kg),
                    _plain(t.oil_litre),
                    format_oil_ratio_display(t.olive_kg, t.oil_litre),
                    _plain(t.price_per_kg),
                    _plain(sum(transaction_container_counts(t, ContainerFamily.TIN).values(), ZERO)),
                    _plain(container_income(t, ContainerFamily.TIN)),
                    _plain(sum(transaction_container_counts(t, ContainerFamily.PLASTIC).values(), ZERO)),
                    _plain(container_income(t, ContainerFamily.PLASTIC)),
                    _plain(t.total_cost),
                    _plain(t.payment_received),
                    _plain(t.remaining_balance),
                ]
            )
    return buffer.getvalue()


def records_filename(when: datetime) -> str:
    return f"olive_press_records_{when.date().isoformat()}.csv"


# ---------------------------------------------------------------------------
# Screens printed by the read-only CLI commands
# ---------------------------------------------------------------------------


def render_dashboard(collections: Collections, *, currency: str = DEFAULT_CURRENCY) -> str:
    money = partial(format_number, unit=currency)
    dashboard = calculate_dashboard_summary(collections)
    ledger = dashboard.ledger
    ratio = ledger.overall_ratio
    lines = [
        f"Total olives: {format_number(ledger.total_olive, ' kg')}",
        f"Total oil: {format_number(ledger.total_oil, ' L')}",
        f"Overall oil ratio: {format_ratio(ratio)}",
        f"Total billed: {money(ledger.total_billed)}",
        f"Payments received: {money(ledger.total_received)}",
        f"Pending payments: {money(ledger.pending_payments)}",
        f"Payment loss: {money(ledger.total_loss)}",
        f"Olive pressing fee: {money(ledger.olive_pressing_fee)}",
        f"Tin sales: {money(dashboard.revenue.tin_income)}",
        f"Plastic sales: {money(dashboard.revenue.plastic_income)}",
        f"Pomace revenue: {money(dashboard.expenses.pomace)}",
        f"Worker expenses: {money(dashboard.expenses.worker)}",
        f"Factory overhead: {money(dashboard.expenses.overhead)}",
        f"Total income: {money(dashboard.total_income)}",
        f"Total expense: {money(dashboard.total_expense)}",
        f"Net balance: {money(dashboard.net_balance)}",
    ]
    return "\n".join(lines) + "\n"


def render_factory_summary(collections: Collections, *, currency: str = DEFAULT_CURRENCY) -> str:
    money = partial(format_number, unit=currency)
    summary = calculate_factory_summary(collections)
    lines = [
        f"Total billed: {money(summary.total_billed)}",
        f"Pomace revenue: {money(summary.total_pomace)}",
        f"Payment loss: {money(summary.total_loss)}",
        f"Remaining tin stock value: {money(summary.remaining_tin_value)}",
        f"Remaining plastic stock value: {money(summary.remaining_plastic_value)}",
        f"Worker expenses: {money(summary.total_worker)}",
        f"Factory overhead: {money(summary.total_overhead)}",
        f"Tin purchases: {money(summary.total_tin_purchase)}",
        f"Plastic purchases: {money(summary.total_plastic_purchase)}",
        f"Total income: {money(summary.total_income)}",
        f"Total expense: {money(summary.total_expense)}",
        f"Net balance: {money(summary.net_balance)}",
    ]
    return "\n".join(lines) + "\n"


def render_stock_report(collections: Collections, *, currency: str = DEFAULT_CURRENCY) -> str:
    """Per-size purchase, consumption and remaining figures for both container families."""

    lines: List[str] = []
    for stock in (
        calculate_tin_stock(collections.tin_purchases, collections.transactions),
        calculate_plastic_stock(collections.plastic_purchases, collections.transactions),
    ):
        lines.append(f"[{stock.family.value}]")
        for size in stock.family.sizes:
            variant = stock.variants[size]
            lines.append(
                f"  {SIZE_LABELS[stock.family][size]}: purchased {format_number(variant.purchased)}, "
                f"used {format_number(variant.consumed)}, remaining {format_number(variant.remaining)}, "
                f"avg cost {format_number(variant.avg_unit_cost, currency)}, "
                f"remaining value {format_number(variant.value_remaining, currency)}"
            )
        lines.append(f"  Remaining value: {format_number(stock.total_remaining_value, currency)}")
    return "\n".join(lines) + "\n"


def _profit_lines(profit: CategoryProfit, currency: str) -> List[str]:
    lines = [f"[{profit.family.value} profit]"]
    for size in profit.family.sizes:
        variant = profit.variants[size]
        lines.append(
            f"  {SIZE_LABELS[profit.family][size]}: sold {format_number(variant.sold)}, "
            f"revenue {format_number(variant.revenue, currency)}, cogs {format_number(variant.cogs, currency)}, "
            f"net {format_number(variant.net_profit, currency)}"
        )
    lines.append(f"  Net profit: {format_number(profit.total_net_profit, currency)}")
    lines.append(f"  Revenue minus purchases: {format_number(profit.purchase_margin, currency)}")
    return lines


def render_statistics(collections: Collections, *, currency: str = DEFAULT_CURRENCY) -> str:
    """Monthly production figures, container purchase averages and category profit."""

    lines = ["[monthly]"]
    months = calculate_monthly_statistics(collections.transactions)
    if not months:
        lines.append("  (no dated transactions)")
    for month in months:
        lines.append(
            f"  {month.label}: olives {format_number(month.total_olive, ' kg')}, "
            f"oil {format_number(month.total_oil, ' L')}, transactions {month.transaction_count}, "
            f"ratio {format_ratio(month.avg_ratio)}"
        )

    for family, purchases in (
        (ContainerFamily.TIN, collections.tin_purchases),
        (ContainerFamily.PLASTIC, collections.plastic_purchases),
    ):
        lines.append(f"[{family.value} purchases]")
        for size, stats in calculate_purchase_statistics(family, purchases).items():
            lines.append(
                f"  {SIZE_LABELS[family][size]}: bought {format_number(stats.quantity)}, "
                f"spent {format_number(stats.cost, currency)}, "
                f"avg price {format_number(stats.avg_unit_price, currency)}"
            )

    lines += _profit_lines(calculate_tin_profit(collections.tin_purchases, collections.transactions), currency)
    lines += _profit_lines(
        calculate_plastic_profit(collections.plastic_purchases, collections.transactions), currency
    )
    return "\n".join(lines) + "\n"


def render_customer_list(
    balances: Sequence[CustomerBalance], *, currency: str = DEFAULT_CURRENCY
) -> str:
    if not balances:
        return "No customers found.\n"
    lines = [
        f"{balance.customer_id}  {balance.name}  billed {format_number(balance.total_cost, currency)}  "
        f"paid {format_number(balance.payment_received, currency)}  "
        f"balance {format_number(balance.remaining_balance, currency)}"
        for balance in balances
    ]
    return "\n".join(lines) + "\n"


def render_transaction_line(transaction: TransactionRow, *, currency: str = DEFAULT_CURRENCY) -> str:
    """One-line summary used by the CLI after a transaction is saved."""

    return (
        f"{transaction.transaction_id} {transaction.customer_name}: "
        f"total {format_number(transaction.total_cost, currency)}, "
        f"remaining {format_number(transaction.remaining_balance, currency)}, "
        f"ratio {format_oil_ratio_display(transaction.olive_kg, transaction.oil_litre)}"
    )


__all__ = [
    "render_backup",
    "render_non_debtor_backup",
    "render_receipt",
    "backup_filename",
    "render_records_csv",
    "records_filename",
    "render_dashboard",
    "render_factory_summary",
    "render_stock_report",
    "render_statistics",
    "render_customer_list",
    "render_transaction_line",
]
