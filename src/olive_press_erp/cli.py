"""Command-line entry points for the olive press ERP.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing the plain-text screens rendered by :mod:`reports`.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, data_manager, log, reports
from .aggregation import summarize_customers
from .constants import BalanceFilter, Collection, ContainerFamily
from .formatting import format_number

SubParsers = argparse._SubParsersAction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    ``mutates`` marks commands whose changes are validated against the schema
    version beforehand and saved to the workbook afterwards.
    """

    name: str
    help_text: str
    register: Callable[[SubParsers], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="press-cli",
        description="Command-line tools for the olive press ERP workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upwards from the working directory by default).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add-customer": register_add_customer_command(),
        "transaction": register_transaction_command(),
        "collect-payment": register_collect_payment_command(),
        "tin-purchase": register_container_purchase_command(ContainerFamily.TIN),
        "plastic-purchase": register_container_purchase_command(ContainerFamily.PLASTIC),
        "worker-expense": register_worker_expense_command(),
        "overhead": register_overhead_command(),
        "pomace": register_pomace_command(),
        "oil-purchase": register_oil_purchase_command(),
        "oil-sale": register_oil_sale_command(),
        "set-prices": register_set_prices_command(),
        "delete": register_delete_command(),
        "delete-customer": register_delete_customer_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "dashboard": _simple_read_command("dashboard", "Display the dashboard figures.", run_dashboard),
        "summary": _simple_read_command("summary", "Display the consolidated factory summary.", run_summary),
        "stock": _simple_read_command("stock", "Display container stock and valuation.", run_stock_report),
        "statistics": _simple_read_command(
            "statistics", "Display monthly statistics and container profit.", run_statistics
        ),
        "customers": register_customers_command(),
        "backup": register_backup_command(),
        "receipt": register_receipt_command(),
        "records": register_records_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def decimal_arg(text: str) -> Decimal:
    """argparse type converting ``text`` to :class:`Decimal`."""
    try:
        value = Decimal(text.strip().replace(",", "."))
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}") from exc
    if not value.is_finite():
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}")
    return value


def date_arg(text: str) -> datetime:
    """argparse type parsing an ISO ``YYYY-MM-DD`` date."""
    try:
        return datetime.fromisoformat(text.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date: {text!r}") from exc


def size_value_arg(text: str) -> Tuple[str, Decimal]:
    """argparse type for ``SIZE=VALUE`` pairs such as ``s16=2``."""
    size, sep, raw = text.partition("=")
    if not sep or not size.strip():
        raise argparse.ArgumentTypeError(f"expected SIZE=VALUE, got {text!r}")
    return size.strip().lower(), decimal_arg(raw)


def _size_map(pairs: Optional[Iterable[Tuple[str, Decimal]]]) -> Dict[str, Decimal]:
    return dict(pairs or [])


def _size_help(family: ContainerFamily, what: str) -> str:
    return f"{what} as SIZE=VALUE, repeatable; sizes: {', '.join(family.sizes)}."


# ---------------------------------------------------------------------------
# Write commands
# ---------------------------------------------------------------------------


def register_add_customer_command() -> CommandSpec:
    """Register the parser and executor for ``add-customer``."""
    name = "add-customer"
    help_text = "Create a customer, or edit one with --customer-id."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", default="")
        parser.add_argument("--address", default="")
        parser.add_argument("--customer-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_customer, mutates=True)


def register_transaction_command() -> CommandSpec:
    """Register the parser and executor for ``transaction``."""
    name = "transaction"
    help_text = "Record a pressing transaction, or edit one with --transaction-id."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        customer = parser.add_mutually_exclusive_group()
        customer.add_argument(
            "--customer",
            dest="customer_name",
            help="Customer name; unknown names are created. Required unless editing.",
        )
        customer.add_argument("--customer-id", default=None)
        parser.add_argument("--date", default=None, help="ISO date (YYYY-MM-DD); defaults to today.")
        parser.add_argument("--olive-kg", type=decimal_arg, default=None)
        parser.add_argument("--oil-litre", type=decimal_arg, default=None)
        parser.add_argument("--price-per-kg", type=decimal_arg, default=None, help="Defaults to the stored price.")
        parser.add_argument(
            "--tin", type=size_value_arg, action="append", help=_size_help(ContainerFamily.TIN, "Tins sold")
        )
        parser.add_argument(
            "--tin-price", type=size_value_arg, action="append", help=_size_help(ContainerFamily.TIN, "Tin prices")
        )
        parser.add_argument(
            "--plastic",
            type=size_value_arg,
            action="append",
            help=_size_help(ContainerFamily.PLASTIC, "Plastic jugs sold"),
        )
        parser.add_argument(
            "--plastic-price",
            type=size_value_arg,
            action="append",
            help=_size_help(ContainerFamily.PLASTIC, "Plastic prices"),
        )
        parser.add_argument("--paid", type=decimal_arg, default=None)
        parser.add_argument("--loss", type=decimal_arg, default=None)
        parser.add_argument("--description", default=None)
        parser.add_argument(
            "--transaction-id", default=None, help="Edit this transaction; omitted options keep their stored value."
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transaction, mutates=True)


def register_collect_payment_command() -> CommandSpec:
    """Register the parser and executor for ``collect-payment``."""
    name = "collect-payment"
    help_text = "Record an interim collection for an existing customer."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        customer = parser.add_mutually_exclusive_group(required=True)
        customer.add_argument("--customer", dest="customer_name")
        customer.add_argument("--customer-id", default=None)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--date", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_collect_payment, mutates=True)


def register_container_purchase_command(family: ContainerFamily) -> CommandSpec:
    """Register the parser and executor for ``tin-purchase`` or ``plastic-purchase``."""
    name = f"{family.value}-purchase"
    help_text = f"Record a {family.value} container purchase."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--quantity",
            type=size_value_arg,
            action="append",
            required=True,
            help=_size_help(family, "Units bought"),
        )
        parser.add_argument("--unit-price", type=decimal_arg, required=True)
        parser.add_argument("--date", default=None)
        parser.add_argument("--description", default="")
        parser.add_argument("--purchase-id", default=None)
        parser.set_defaults(command=name, family=family.value)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar, execute=run_container_purchase, mutates=True
    )


def register_worker_expense_command() -> CommandSpec:
    """Register the parser and executor for ``worker-expense``."""
    name = "worker-expense"
    help_text = "Record a worker payment."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--worker-name", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--days-worked", type=decimal_arg, default=Decimal("0"))
        parser.add_argument("--date", default=None)
        parser.add_argument("--description", default="")
        parser.add_argument("--expense-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_worker_expense, mutates=True)


def register_overhead_command() -> CommandSpec:
    """Register the parser and executor for ``overhead``."""
    name = "overhead"
    help_text = "Record a factory overhead expense."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--description", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument("--date", default=None)
        parser.add_argument("--expense-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_overhead, mutates=True)


def register_pomace_command() -> CommandSpec:
    """Register the parser and executor for ``pomace``."""
    name = "pomace"
    help_text = "Record a pomace sale."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--load-kg", type=decimal_arg, required=True)
        parser.add_argument("--price-per-kg", type=decimal_arg, required=True)
        parser.add_argument("--truck-count", type=decimal_arg, default=Decimal("0"))
        parser.add_argument("--date", default=None)
        parser.add_argument("--description", default="")
        parser.add_argument("--revenue-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_pomace, mutates=True)


def register_oil_purchase_command() -> CommandSpec:
    """Register the parser and executor for ``oil-purchase``."""
    name = "oil-purchase"
    help_text = "Record bulk oil bought from a supplier."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--supplier", required=True)
        parser.add_argument("--tin-count", type=decimal_arg, required=True)
        parser.add_argument("--tin-price", type=decimal_arg, default=None, help="Defaults to the stored price.")
        parser.add_argument("--date", default=None)
        parser.add_argument("--purchase-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_oil_purchase, mutates=True)


def register_oil_sale_command() -> CommandSpec:
    """Register the parser and executor for ``oil-sale``."""
    name = "oil-sale"
    help_text = "Record bulk oil sold to a customer."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--customer", required=True)
        parser.add_argument("--tin-count", type=decimal_arg, required=True)
        parser.add_argument("--tin-price", type=decimal_arg, default=None, help="Defaults to the stored price.")
        parser.add_argument("--date", default=None)
        parser.add_argument("--sale-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_oil_sale, mutates=True)


def register_set_prices_command() -> CommandSpec:
    """Register the parser and executor for ``set-prices``."""
    name = "set-prices"
    help_text = "Change the default prices; omitted prices keep their current value."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--price-per-kg", type=decimal_arg, default=None)
        parser.add_argument(
            "--tin-price", type=size_value_arg, action="append", help=_size_help(ContainerFamily.TIN, "Tin prices")
        )
        parser.add_argument(
            "--plastic-price",
            type=size_value_arg,
            action="append",
            help=_size_help(ContainerFamily.PLASTIC, "Plastic prices"),
        )
        parser.add_argument("--oil-purchase-price", type=decimal_arg, default=None)
        parser.add_argument("--oil-sale-price", type=decimal_arg, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_set_prices, mutates=True)


def register_delete_command() -> CommandSpec:
    """Register the parser and executor for ``delete``."""
    name = "delete"
    help_text = "Delete a record by id (customers cascade to their transactions)."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--collection", choices=[member.value for member in Collection], required=True)
        parser.add_argument("--id", dest="record_id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete, mutates=True)


def register_delete_customer_command() -> CommandSpec:
    """Register the parser and executor for ``delete-customer``."""
    name = "delete-customer"
    help_text = "Delete customers together with all of their transactions."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("customer_ids", nargs="+", metavar="CUSTOMER_ID")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_customers, mutates=True)


# ---------------------------------------------------------------------------
# Read commands
# ---------------------------------------------------------------------------


def _simple_read_command(
    name: str, help_text: str, execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
) -> CommandSpec:
    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_customers_command() -> CommandSpec:
    """Register the parser and executor for ``customers``."""
    name = "customers"
    help_text = "List customers with their balances."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default="")
        parser.add_argument(
            "--filter",
            dest="balance_filter",
            choices=[member.value for member in BalanceFilter],
            default=BalanceFilter.ALL.value,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_customers)


def register_backup_command() -> CommandSpec:
    """Register the parser and executor for ``backup``."""
    name = "backup"
    help_text = "Render the plain-text backup."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--kind", choices=sorted(reports.BACKUP_FILENAMES), default="full")
        parser.add_argument(
            "--output-dir",
            type=Path,
            default=None,
            help="Write the backup into this directory instead of printing it.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_backup)


def register_records_command() -> CommandSpec:
    """Register the parser and executor for ``records``."""
    name = "records"
    help_text = "Export customer transactions as semicolon separated CSV."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--search", default="")
        parser.add_argument("--start", type=date_arg, default=None, help="Inclusive start date (YYYY-MM-DD).")
        parser.add_argument("--end", type=date_arg, default=None, help="Inclusive end date (YYYY-MM-DD).")
        parser.add_argument(
            "--export",
            type=Path,
            default=None,
            help="Write the CSV into this directory instead of printing it.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_records)


def register_receipt_command() -> CommandSpec:
    """Register the parser and executor for ``receipt``."""
    name = "receipt"
    help_text = "Print the receipt of one transaction."

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_receipt)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_add_customer(args: argparse.Namespace) -> core_logic.CustomerCommand:
    """Translate CLI args into a customer command object."""
    return core_logic.CustomerCommand(
        name=args.name,
        phone=args.phone,
        address=args.address,
        customer_id=args.customer_id,
    )


def translate_transaction(args: argparse.Namespace) -> core_logic.TransactionCommand:
    """Translate CLI args into a transaction command object.

    Options left out become ``None``: an edit keeps the stored value and a new
    transaction falls back to zero or the stored default prices.
    """
    return core_logic.TransactionCommand(
        customer_name=args.customer_name or "",
        customer_id=args.customer_id,
        date=args.date,
        olive_kg=args.olive_kg,
        oil_litre=args.oil_litre,
        price_per_kg=args.price_per_kg,
        tin_counts=_size_map(args.tin) or None,
        tin_prices=_size_map(args.tin_price) or None,
        plastic_counts=_size_map(args.plastic) or None,
        plastic_prices=_size_map(args.plastic_price) or None,
        payment_received=args.paid,
        payment_loss=args.loss,
        description=args.description,
        transaction_id=args.transaction_id,
    )


def translate_collect_payment(args: argparse.Namespace) -> core_logic.PaymentCollectionCommand:
    return core_logic.PaymentCollectionCommand(
        amount=args.amount,
        customer_id=args.customer_id,
        customer_name=args.customer_name or "",
        date=args.date,
    )


def translate_container_purchase(args: argparse.Namespace) -> core_logic.ContainerPurchaseCommand:
    return core_logic.ContainerPurchaseCommand(
        family=ContainerFamily(args.family),
        quantities=_size_map(args.quantity),
        unit_price=args.unit_price,
        date=args.date,
        description=args.description,
        purchase_id=args.purchase_id,
    )


def translate_worker_expense(args: argparse.Namespace) -> core_logic.WorkerExpenseCommand:
    return core_logic.WorkerExpenseCommand(
        worker_name=args.worker_name,
        amount=args.amount,
        days_worked=args.days_worked,
        date=args.date,
        description=args.description,
        expense_id=args.expense_id,
    )


def translate_overhead(args: argparse.Namespace) -> core_logic.OverheadExpenseCommand:
    return core_logic.OverheadExpenseCommand(
        description=args.description,
        amount=args.amount,
        date=args.date,
        expense_id=args.expense_id,
    )


def translate_pomace(args: argparse.Namespace) -> core_logic.PomaceRevenueCommand:
    return core_logic.PomaceRevenueCommand(
        load_kg=args.load_kg,
        price_per_kg=args.price_per_kg,
        truck_count=args.truck_count,
        date=args.date,
        description=args.description,
        revenue_id=args.revenue_id,
    )


def translate_oil_purchase(args: argparse.Namespace) -> core_logic.OilPurchaseCommand:
    return core_logic.OilPurchaseCommand(
        supplier_name=args.supplier,
        tin_count=args.tin_count,
        tin_price=args.tin_price,
        date=args.date,
        purchase_id=args.purchase_id,
    )


def translate_oil_sale(args: argparse.Namespace) -> core_logic.OilSaleCommand:
    return core_logic.OilSaleCommand(
        customer_name=args.customer,
        tin_count=args.tin_count,
        tin_price=args.tin_price,
        date=args.date,
        sale_id=args.sale_id,
    )


def translate_set_prices(
    args: argparse.Namespace, current: data_manager.DefaultPrices
) -> data_manager.DefaultPrices:
    """Merge the supplied price options over ``current``."""
    return data_manager.DefaultPrices(
        price_per_kg=current.price_per_kg if args.price_per_kg is None else args.price_per_kg,
        tin_prices={**current.tin_prices, **_size_map(args.tin_price)},
        plastic_prices={**current.plastic_prices, **_size_map(args.plastic_price)},
        oil_purchase_price=(
            current.oil_purchase_price if args.oil_purchase_price is None else args.oil_purchase_price
        ),
        oil_sale_price=current.oil_sale_price if args.oil_sale_price is None else args.oil_sale_price,
    )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _currency(context: core_logic.RuntimeContext) -> str:
    return context.settings.currency


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the customer workflow in the BLL."""
    customer = core_logic.save_customer(context, translate_add_customer(args))
    print(f"{customer.customer_id} {customer.name}")
    return 0


def run_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transaction workflow via the BLL."""
    transaction = core_logic.save_transaction(context, translate_transaction(args))
    print(reports.render_transaction_line(transaction, currency=_currency(context)))
    return 0


def run_collect_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.collect_payment(context, translate_collect_payment(args))
    print(reports.render_transaction_line(transaction, currency=_currency(context)))
    return 0


def run_container_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    purchase = core_logic.save_container_purchase(context, translate_container_purchase(args))
    print(f"{purchase.purchase_id} total {format_number(purchase.total_cost, _currency(context))}")
    return 0


def run_worker_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expense = core_logic.save_worker_expense(context, translate_worker_expense(args))
    print(expense.expense_id)
    return 0


def run_overhead(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expense = core_logic.save_overhead_expense(context, translate_overhead(args))
    print(expense.expense_id)
    return 0


def run_pomace(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    revenue = core_logic.save_pomace_revenue(context, translate_pomace(args))
    print(f"{revenue.revenue_id} total {format_number(revenue.total_revenue, _currency(context))}")
    return 0


def run_oil_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    purchase = core_logic.save_oil_purchase(context, translate_oil_purchase(args))
    print(f"{purchase.purchase_id} total {format_number(purchase.total_cost, _currency(context))}")
    return 0


def run_oil_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    sale = core_logic.save_oil_sale(context, translate_oil_sale(args))
    print(f"{sale.sale_id} total {format_number(sale.total_revenue, _currency(context))}")
    return 0


def run_set_prices(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    current = core_logic.load_snapshot(context).default_prices
    core_logic.save_default_prices(context, translate_set_prices(args, current))
    return 0


def run_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    removed = core_logic.delete_record(context, Collection(args.collection), args.record_id)
    print(f"Removed {removed} row(s)")
    return 0


def run_delete_customers(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    removed = core_logic.delete_customers(context, args.customer_ids)
    print(f"Removed {removed} row(s)")
    return 0


def run_dashboard(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the dashboard figures."""
    print(reports.render_dashboard(core_logic.load_snapshot(context), currency=_currency(context)), end="")
    return 0


def run_summary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the consolidated factory summary."""
    print(reports.render_factory_summary(core_logic.load_snapshot(context), currency=_currency(context)), end="")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print container stock levels and valuation."""
    print(reports.render_stock_report(core_logic.load_snapshot(context), currency=_currency(context)), end="")
    return 0


def run_statistics(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(reports.render_statistics(core_logic.load_snapshot(context), currency=_currency(context)), end="")
    return 0


def run_customers(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    snapshot = core_logic.load_snapshot(context)
    balances = summarize_customers(
        snapshot.customers,
        snapshot.transactions,
        search=args.search,
        balance_filter=BalanceFilter(args.balance_filter),
    )
    print(reports.render_customer_list(balances, currency=_currency(context)), end="")
    return 0


def run_backup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Render a backup and print it or write it to ``--output-dir``."""
    snapshot = core_logic.load_snapshot(context)
    now = datetime.now()
    render = reports.render_backup if args.kind == "full" else reports.render_non_debtor_backup
    text = render(
        snapshot,
        factory_name=context.settings.factory_name,
        generated_at=now,
        currency=_currency(context),
    )
    if args.output_dir is None:
        print(text, end="")
        return 0

    target = Path(args.output_dir).expanduser().resolve() / reports.backup_filename(args.kind, now)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    log.info("Wrote %s backup to '%s'", args.kind, target)
    print(target)
    return 0


def run_receipt(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = core_logic.find_record(
        core_logic.load_snapshot(context), Collection.TRANSACTIONS, args.transaction_id
    )
    print(
        reports.render_receipt(
            transaction, factory_name=context.settings.factory_name, currency=_currency(context)
        ),
        end="",
    )
    return 0


def run_records(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Render the records CSV and print it or write it to ``--export``."""
    text = reports.render_records_csv(
        core_logic.load_snapshot(context),
        search=args.search,
        start_date=args.start,
        end_date=args.end,
        currency=_currency(context),
    )
    if args.export is None:
        print(text, end="")
        return 0

    target = Path(args.export).expanduser().resolve() / reports.records_filename(datetime.now())
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8-sig")
    log.info("Exported customer records to '%s'", target)
    print(target)
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    spec = command_table.get(getattr(args, "command", None))
    mutates = spec is not None and spec.mutates
    try:
        context = load_runtime_context(getattr(args, "config", None))
        if mutates:
            core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    raise SystemExit(main())
