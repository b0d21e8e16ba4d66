"""Data access layer for the olive press ERP.

This module provides low-level helpers that read from and write to the master
workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading every collection into a :class:`Collections`
   snapshot and appending, replacing or deleting individual rows.

Each collection lives on its own worksheet whose first row holds the column
headers. Rows are read by header name rather than position, so a sheet that
lacks a column (or the whole sheet) simply yields default values.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet
import openpyxl

from . import log
from .constants import (
    DEFAULT_CURRENCY,
    DEFAULT_OIL_PURCHASE_PRICE,
    DEFAULT_OIL_SALE_PRICE,
    DEFAULT_PLASTIC_PRICES,
    DEFAULT_PRICE_PER_KG,
    DEFAULT_TIN_PRICES,
    Collection,
    ContainerFamily,
    SheetName,
)
from .formatting import ZERO, to_number


CONFIG_FILE_NAME = "config.ini"


def _zero_sizes(family: ContainerFamily) -> Dict[str, Decimal]:
    return {size: ZERO for size in family.sizes}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    factory_name: str
    schema_version: str
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class CustomerRow:
    """In-memory view of a row from the ``Customers`` sheet."""

    customer_id: str
    name: str
    phone: str = ""
    address: str = ""
    created_at: str = ""


@dataclass(frozen=True)
class TransactionRow:
    """In-memory view of a row from the ``Transactions`` sheet.

    ``total_cost`` and ``remaining_balance`` are derived values stored at
    write time; the container mappings are keyed by the family's size keys.
    """

    transaction_id: str
    customer_id: Optional[str]
    customer_name: str
    date: str
    olive_kg: Decimal = ZERO
    oil_litre: Decimal = ZERO
    price_per_kg: Decimal = ZERO
    tin_counts: Mapping[str, Decimal] = field(default_factory=lambda: _zero_sizes(ContainerFamily.TIN))
    tin_prices: Mapping[str, Decimal] = field(default_factory=lambda: _zero_sizes(ContainerFamily.TIN))
    plastic_counts: Mapping[str, Decimal] = field(default_factory=lambda: _zero_sizes(ContainerFamily.PLASTIC))
    plastic_prices: Mapping[str, Decimal] = field(default_factory=lambda: _zero_sizes(ContainerFamily.PLASTIC))
    payment_received: Decimal = ZERO
    payment_loss: Decimal = ZERO
    total_cost: Decimal = ZERO
    remaining_balance: Decimal = ZERO
    description: str = ""


@dataclass(frozen=True)
class ContainerPurchaseRow:
    """In-memory view of a row from the ``TinPurchases`` or ``PlasticPurchases`` sheet.

    One unit price applies to every size quantity on the purchase.
    """

    purchase_id: str
    family: ContainerFamily
    date: str
    quantities: Mapping[str, Decimal]
    unit_price: Decimal = ZERO
    total_cost: Decimal = ZERO
    description: str = ""


@dataclass(frozen=True)
class WorkerExpenseRow:
    """In-memory view of a row from the ``WorkerExpenses`` sheet."""

    expense_id: str
    date: str
    worker_name: str
    days_worked: Decimal = ZERO
    amount: Decimal = ZERO
    description: str = ""


@dataclass(frozen=True)
class OverheadExpenseRow:
    """In-memory view of a row from the ``FactoryOverhead`` sheet."""

    expense_id: str
    date: str
    description: str = ""
    amount: Decimal = ZERO


@dataclass(frozen=True)
class PomaceRevenueRow:
    """In-memory view of a row from the ``PomaceRevenues`` sheet."""

    revenue_id: str
    date: str
    truck_count: Decimal = ZERO
    load_kg: Decimal = ZERO
    price_per_kg: Decimal = ZERO
    total_revenue: Decimal = ZERO
    description: str = ""


@dataclass(frozen=True)
class OilPurchaseRow:
    """In-memory view of a row from the ``OilPurchases`` sheet."""

    purchase_id: str
    date: str
    supplier_name: str
    tin_count: Decimal = ZERO
    tin_price: Decimal = ZERO
    total_cost: Decimal = ZERO


@dataclass(frozen=True)
class OilSaleRow:
    """In-memory view of a row from the ``OilSales`` sheet."""

    sale_id: str
    date: str
    customer_name: str
    tin_count: Decimal = ZERO
    tin_price: Decimal = ZERO
    total_revenue: Decimal = ZERO


@dataclass(frozen=True)
class DefaultPrices:
    """Prices used to pre-fill new transactions; stored records never change with them."""

    price_per_kg: Decimal = DEFAULT_PRICE_PER_KG
    tin_prices: Mapping[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_TIN_PRICES))
    plastic_prices: Mapping[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_PLASTIC_PRICES))
    oil_purchase_price: Decimal = DEFAULT_OIL_PURCHASE_PRICE
    oil_sale_price: Decimal = DEFAULT_OIL_SALE_PRICE


@dataclass(frozen=True)
class Collections:
    """Complete snapshot of every named collection plus the default prices.

    The aggregation engine only ever sees this object; it is assembled by
    :func:`read_collections` and never mutated in place.
    """

    customers: Tuple[CustomerRow, ...] = ()
    transactions: Tuple[TransactionRow, ...] = ()
    worker_expenses: Tuple[WorkerExpenseRow, ...] = ()
    factory_overhead: Tuple[OverheadExpenseRow, ...] = ()
    pomace_revenues: Tuple[PomaceRevenueRow, ...] = ()
    tin_purchases: Tuple[ContainerPurchaseRow, ...] = ()
    plastic_purchases: Tuple[ContainerPurchaseRow, ...] = ()
    oil_purchases: Tuple[OilPurchaseRow, ...] = ()
    oil_sales: Tuple[OilSaleRow, ...] = ()
    default_prices: DefaultPrices = field(default_factory=DefaultPrices)

    def get(self, collection: Collection) -> Tuple[Any, ...]:
        """Return the tuple stored for ``collection``."""

        return getattr(self, COLLECTION_ATTRIBUTES[collection])

    def container_purchases(self, family: ContainerFamily) -> Tuple[ContainerPurchaseRow, ...]:
        if family is ContainerFamily.TIN:
            return self.tin_purchases
        return self.plastic_purchases


COLLECTION_ATTRIBUTES: Mapping[Collection, str] = {
    Collection.CUSTOMERS: "customers",
    Collection.TRANSACTIONS: "transactions",
    Collection.WORKER_EXPENSES: "worker_expenses",
    Collection.FACTORY_OVERHEAD: "factory_overhead",
    Collection.POMACE_REVENUES: "pomace_revenues",
    Collection.TIN_PURCHASES: "tin_purchases",
    Collection.PLASTIC_PURCHASES: "plastic_purchases",
    Collection.OIL_PURCHASES: "oil_purchases",
    Collection.OIL_SALES: "oil_sales",
}


def _size_columns(prefix: str, family: ContainerFamily) -> List[str]:
    return [f"{prefix}{size.upper()}" for size in family.sizes]


SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.CUSTOMERS.value: ["CustomerID", "Name", "Phone", "Address", "CreatedAt"],
    SheetName.TRANSACTIONS.value: [
        "TransactionID",
        "CustomerID",
        "CustomerName",
        "Date",
        "OliveKg",
        "OilLitre",
        "PricePerKg",
        *_size_columns("Tin", ContainerFamily.TIN),
        *_size_columns("TinPrice", ContainerFamily.TIN),
        *_size_columns("Plastic", ContainerFamily.PLASTIC),
        *_size_columns("PlasticPrice", ContainerFamily.PLASTIC),
        "PaymentReceived",
        "PaymentLoss",
        "TotalCost",
        "RemainingBalance",
        "Description",
    ],
    SheetName.WORKER_EXPENSES.value: ["ExpenseID", "Date", "WorkerName", "DaysWorked", "Amount", "Description"],
    SheetName.FACTORY_OVERHEAD.value: ["ExpenseID", "Date", "Description", "Amount"],
    SheetName.POMACE_REVENUES.value: [
        "RevenueID",
        "Date",
        "TruckCount",
        "LoadKg",
        "PricePerKg",
        "TotalRevenue",
        "Description",
    ],
    SheetName.TIN_PURCHASES.value: [
        "PurchaseID",
        "Date",
        *_size_columns("", ContainerFamily.TIN),
        "TinPrice",
        "TotalCost",
        "Description",
    ],
    SheetName.PLASTIC_PURCHASES.value: [
        "PurchaseID",
        "Date",
        *_size_columns("", ContainerFamily.PLASTIC),
        "PlasticPrice",
        "TotalCost",
        "Description",
    ],
    SheetName.OIL_PURCHASES.value: ["PurchaseID", "Date", "SupplierName", "TinCount", "TinPrice", "TotalCost"],
    SheetName.OIL_SALES.value: ["SaleID", "Date", "CustomerName", "TinCount", "TinPrice", "TotalRevenue"],
    SheetName.DEFAULT_PRICES.value: ["Key", "Value"],
}


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Callers receive the parser even if individual sections are missing;
    validation of required entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` options are mandatory. ``[Defaults] Currency`` is optional
    and falls back to :data:`~olive_press_erp.constants.DEFAULT_CURRENCY`.
    Relative ``DataFile`` entries are expanded against ``base_path`` (or the
    current working directory) and resolved to an absolute path.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        factory_name = parser.get("System", "FactoryName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    currency = parser.get("Defaults", "Currency", fallback=DEFAULT_CURRENCY)

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        factory_name=factory_name,
        schema_version=schema_version,
        currency=currency,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def ensure_sheet(workbook: Workbook, sheet_name: str) -> Worksheet:
    """Return ``sheet_name``, creating it with its header row when absent.

    Workbooks created by older releases may predate a collection; writes create
    the sheet lazily instead of failing.
    """

    if sheet_name in workbook.sheetnames:
        return workbook[sheet_name]

    log.info("Creating missing worksheet '%s'", sheet_name)
    sheet = workbook.create_sheet(title=sheet_name)
    sheet.append(list(SHEET_COLUMNS[sheet_name]))
    return sheet


def append_row(sheet: Worksheet, values: Sequence[object]) -> int:
    """Write ``values`` on the first row below the last used one and return its index.

    ``Worksheet.append`` keeps its own cursor, which ``delete_rows`` does not
    move back, so rows are placed explicitly after ``max_row`` instead.
    """

    row_index = sheet.max_row + 1
    for column_index, value in enumerate(values, start=1):
        sheet.cell(row=row_index, column=column_index, value=value)
    return row_index


def header_map(sheet: Worksheet) -> Dict[str, int]:
    """Map header titles on the first row to 1-based column indices."""

    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1]) if cell.value is not None}


def iter_sheet_records(workbook: Workbook, sheet_name: str) -> Iterator[Dict[str, Any]]:
    """Yield each populated row of ``sheet_name`` as a header-keyed dictionary.

    A missing sheet yields nothing. Fully empty rows are skipped. Columns the
    sheet does not define are simply absent from the dictionaries, which the
    deserializers turn into defaults.
    """

    if sheet_name not in workbook.sheetnames:
        return

    sheet = workbook[sheet_name]
    headers = [cell.value for cell in sheet[1]]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if not any(cell is not None for cell in raw):
            continue
        yield {header: value for header, value in zip(headers, raw) if header is not None}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find the 1-based row index whose ``key_column`` equals ``key_value``.

    Returns:
        int | None: Matching row index, or ``None`` when no row matches.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    columns = header_map(sheet)
    if key_column not in columns:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = columns[key_column]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


# ---------------------------------------------------------------------------
# Cell conversion helpers
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    return str(value) if value is not None else ""


def _optional_text(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _date_text(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return _text(value)


def _sizes(record: Mapping[str, Any], prefix: str, family: ContainerFamily) -> Dict[str, Decimal]:
    return {size: to_number(record.get(f"{prefix}{size.upper()}")) for size in family.sizes}


def _size_values(values: Mapping[str, Any], family: ContainerFamily) -> List[Decimal]:
    return [to_number(values.get(size)) for size in family.sizes]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_customer(record: CustomerRow) -> List[object]:
    return [record.customer_id, record.name, record.phone, record.address, record.created_at]


def deserialize_customer(record: Mapping[str, Any]) -> CustomerRow:
    return CustomerRow(
        customer_id=_text(record.get("CustomerID")),
        name=_text(record.get("Name")),
        phone=_text(record.get("Phone")),
        address=_text(record.get("Address")),
        created_at=_date_text(record.get("CreatedAt")),
    )


def serialize_transaction(record: TransactionRow) -> List[object]:
    """Convert a transaction dataclass into the ``Transactions`` column order.

    Numeric fields remain :class:`~decimal.Decimal` instances; container
    mappings are flattened into one column per size.
    """

    return [
        record.transaction_id,
        record.customer_id,
        record.customer_name,
        record.date,
        record.olive_kg,
        record.oil_litre,
        record.price_per_kg,
        *_size_values(record.tin_counts, ContainerFamily.TIN),
        *_size_values(record.tin_prices, ContainerFamily.TIN),
        *_size_values(record.plastic_counts, ContainerFamily.PLASTIC),
        *_size_values(record.plastic_prices, ContainerFamily.PLASTIC),
        record.payment_received,
        record.payment_loss,
        record.total_cost,
        record.remaining_balance,
        record.description,
    ]


def deserialize_transaction(record: Mapping[str, Any]) -> TransactionRow:
    """Convert a header-keyed worksheet row into a :class:`TransactionRow`.

    Every numeric column passes through :func:`to_number`, so blank or
    malformed cells become zero.
    """

    return TransactionRow(
        transaction_id=_text(record.get("TransactionID")),
        customer_id=_optional_text(record.get("CustomerID")),
        customer_name=_text(record.get("CustomerName")),
        date=_date_text(record.get("Date")),
        olive_kg=to_number(record.get("OliveKg")),
        oil_litre=to_number(record.get("OilLitre")),
        price_per_kg=to_number(record.get("PricePerKg")),
        tin_counts=_sizes(record, "Tin", ContainerFamily.TIN),
        tin_prices=_sizes(record, "TinPrice", ContainerFamily.TIN),
        plastic_counts=_sizes(record, "Plastic", ContainerFamily.PLASTIC),
        plastic_prices=_sizes(record, "PlasticPrice", ContainerFamily.PLASTIC),
        payment_received=to_number(record.get("PaymentReceived")),
        payment_loss=to_number(record.get("PaymentLoss")),
        total_cost=to_number(record.get("TotalCost")),
        remaining_balance=to_number(record.get("RemainingBalance")),
        description=_text(record.get("Description")),
    )


def _price_column(family: ContainerFamily) -> str:
    return "TinPrice" if family is ContainerFamily.TIN else "PlasticPrice"


def serialize_container_purchase(record: ContainerPurchaseRow) -> List[object]:
    return [
        record.purchase_id,
        record.date,
        *_size_values(record.quantities, record.family),
        record.unit_price,
        record.total_cost,
        record.description,
    ]


def deserialize_container_purchase(record: Mapping[str, Any], family: ContainerFamily) -> ContainerPurchaseRow:
    return ContainerPurchaseRow(
        purchase_id=_text(record.get("PurchaseID")),
        family=family,
        date=_date_text(record.get("Date")),
        quantities=_sizes(record, "", family),
        unit_price=to_number(record.get(_price_column(family))),
        total_cost=to_number(record.get("TotalCost")),
        description=_text(record.get("Description")),
    )


def serialize_worker_expense(record: WorkerExpenseRow) -> List[object]:
    return [record.expense_id, record.date, record.worker_name, record.days_worked, record.amount, record.description]


def deserialize_worker_expense(record: Mapping[str, Any]) -> WorkerExpenseRow:
    return WorkerExpenseRow(
        expense_id=_text(record.get("ExpenseID")),
        date=_date_text(record.get("Date")),
        worker_name=_text(record.get("WorkerName")),
        days_worked=to_number(record.get("DaysWorked")),
        amount=to_number(record.get("Amount")),
        description=_text(record.get("Description")),
    )


def serialize_overhead_expense(record: OverheadExpenseRow) -> List[object]:
    return [record.expense_id, record.date, record.description, record.amount]


def deserialize_overhead_expense(record: Mapping[str, Any]) -> OverheadExpenseRow:
    return OverheadExpenseRow(
        expense_id=_text(record.get("ExpenseID")),
        date=_date_text(record.get("Date")),
        description=_text(record.get("Description")),
        amount=to_number(record.get("Amount")),
    )


def serialize_pomace_revenue(record: PomaceRevenueRow) -> List[object]:
    return [
        record.revenue_id,
        record.date,
        record.truck_count,
        record.load_kg,
        record.price_per_kg,
        record.total_revenue,
        record.description,
    ]


def deserialize_pomace_revenue(record: Mapping[str, Any]) -> PomaceRevenueRow:
    return PomaceRevenueRow(
        revenue_id=_text(record.get("RevenueID")),
        date=_date_text(record.get("Date")),
        truck_count=to_number(record.get("TruckCount")),
        load_kg=to_number(record.get("LoadKg")),
        price_per_kg=to_number(record.get("PricePerKg")),
        total_revenue=to_number(record.get("TotalRevenue")),
        description=_text(record.get("Description")),
    )


def serialize_oil_purchase(record: OilPurchaseRow) -> List[object]:
    return [record.purchase_id, record.date, record.supplier_name, record.tin_count, record.tin_price, record.total_cost]


def deserialize_oil_purchase(record: Mapping[str, Any]) -> OilPurchaseRow:
    return OilPurchaseRow(
        purchase_id=_text(record.get("PurchaseID")),
        date=_date_text(record.get("Date")),
        supplier_name=_text(record.get("SupplierName")),
        tin_count=to_number(record.get("TinCount")),
        tin_price=to_number(record.get("TinPrice")),
        total_cost=to_number(record.get("TotalCost")),
    )


def serialize_oil_sale(record: OilSaleRow) -> List[object]:
    return [record.sale_id, record.date, record.customer_name, record.tin_count, record.tin_price, record.total_revenue]


def deserialize_oil_sale(record: Mapping[str, Any]) -> OilSaleRow:
    return OilSaleRow(
        sale_id=_text(record.get("SaleID")),
        date=_date_text(record.get("Date")),
        customer_name=_text(record.get("CustomerName")),
        tin_count=to_number(record.get("TinCount")),
        tin_price=to_number(record.get("TinPrice")),
        total_revenue=to_number(record.get("TotalRevenue")),
    )


def serialize_default_prices(prices: DefaultPrices) -> List[List[object]]:
    """Flatten :class:`DefaultPrices` into ``[Key, Value]`` rows."""

    rows: List[List[object]] = [["PricePerKg", prices.price_per_kg]]
    rows.extend([f"TinPrice{size.upper()}", to_number(prices.tin_prices.get(size))] for size in ContainerFamily.TIN.sizes)
    rows.extend(
        [f"PlasticPrice{size.upper()}", to_number(prices.plastic_prices.get(size))]
        for size in ContainerFamily.PLASTIC.sizes
    )
    rows.append(["OilPurchasePrice", prices.oil_purchase_price])
    rows.append(["OilSalePrice", prices.oil_sale_price])
    return rows


def deserialize_default_prices(pairs: Mapping[str, Any]) -> DefaultPrices:
    """Rebuild :class:`DefaultPrices` from key/value pairs.

    Keys absent from ``pairs`` keep their built-in default; present keys are
    coerced with :func:`to_number`.
    """

    builtin = DefaultPrices()

    def pick(key: str, fallback: Decimal) -> Decimal:
        return to_number(pairs[key]) if key in pairs else fallback

    return DefaultPrices(
        price_per_kg=pick("PricePerKg", builtin.price_per_kg),
        tin_prices={
            size: pick(f"TinPrice{size.upper()}", builtin.tin_prices[size]) for size in ContainerFamily.TIN.sizes
        },
        plastic_prices={
            size: pick(f"PlasticPrice{size.upper()}", builtin.plastic_prices[size])
            for size in ContainerFamily.PLASTIC.sizes
        },
        oil_purchase_price=pick("OilPurchasePrice", builtin.oil_purchase_price),
        oil_sale_price=pick("OilSalePrice", builtin.oil_sale_price),
    )


@dataclass(frozen=True)
class _SheetSchema:
    sheet: SheetName
    id_column: str
    id_attribute: str
    serialize: Callable[[Any], List[object]]
    deserialize: Callable[[Mapping[str, Any]], Any]


_SCHEMAS: Mapping[Collection, _SheetSchema] = {
    Collection.CUSTOMERS: _SheetSchema(
        SheetName.CUSTOMERS, "CustomerID", "customer_id", serialize_customer, deserialize_customer
    ),
    Collection.TRANSACTIONS: _SheetSchema(
        SheetName.TRANSACTIONS, "TransactionID", "transaction_id", serialize_transaction, deserialize_transaction
    ),
    Collection.WORKER_EXPENSES: _SheetSchema(
        SheetName.WORKER_EXPENSES, "ExpenseID", "expense_id", serialize_worker_expense, deserialize_worker_expense
    ),
    Collection.FACTORY_OVERHEAD: _SheetSchema(
        SheetName.FACTORY_OVERHEAD, "ExpenseID", "expense_id", serialize_overhead_expense, deserialize_overhead_expense
    ),
    Collection.POMACE_REVENUES: _SheetSchema(
        SheetName.POMACE_REVENUES, "RevenueID", "revenue_id", serialize_pomace_revenue, deserialize_pomace_revenue
    ),
    Collection.TIN_PURCHASES: _SheetSchema(
        SheetName.TIN_PURCHASES,
        "PurchaseID",
        "purchase_id",
        serialize_container_purchase,
        lambda record: deserialize_container_purchase(record, ContainerFamily.TIN),
    ),
    Collection.PLASTIC_PURCHASES: _SheetSchema(
        SheetName.PLASTIC_PURCHASES,
        "PurchaseID",
        "purchase_id",
        serialize_container_purchase,
        lambda record: deserialize_container_purchase(record, ContainerFamily.PLASTIC),
    ),
    Collection.OIL_PURCHASES: _SheetSchema(
        SheetName.OIL_PURCHASES, "PurchaseID", "purchase_id", serialize_oil_purchase, deserialize_oil_purchase
    ),
    Collection.OIL_SALES: _SheetSchema(
        SheetName.OIL_SALES, "SaleID", "sale_id", serialize_oil_sale, deserialize_oil_sale
    ),
}


def record_id(collection: Collection, record: Any) -> str:
    """Return the primary identifier of a row belonging to ``collection``."""

    return getattr(record, _SCHEMAS[collection].id_attribute)


def iter_records(workbook: Workbook, collection: Collection) -> Iterable[Any]:
    """Stream typed rows for ``collection`` in sheet order."""

    schema = _SCHEMAS[collection]
    for record in iter_sheet_records(workbook, schema.sheet.value):
        yield schema.deserialize(record)


def read_default_prices(workbook: Workbook) -> DefaultPrices:
    """Load the ``DefaultPrices`` key/value sheet, falling back to built-ins."""

    pairs = {
        str(record.get("Key")): record.get("Value")
        for record in iter_sheet_records(workbook, SheetName.DEFAULT_PRICES.value)
        if record.get("Key") is not None
    }
    return deserialize_default_prices(pairs)


def read_collections(workbook: Workbook) -> Collections:
    """Load every collection into an immutable :class:`Collections` snapshot.

    Missing sheets become empty tuples and a missing price sheet becomes the
    built-in :class:`DefaultPrices`.
    """

    loaded = {
        COLLECTION_ATTRIBUTES[collection]: tuple(iter_records(workbook, collection)) for collection in Collection
    }
    snapshot = Collections(default_prices=read_default_prices(workbook), **loaded)
    log.debug(
        "Read snapshot with %d customers and %d transactions",
        len(snapshot.customers),
        len(snapshot.transactions),
    )
    return snapshot


def append_record(workbook: Workbook, collection: Collection, record: Any) -> None:
    """Append ``record`` to the worksheet backing ``collection``."""

    schema = _SCHEMAS[collection]
    sheet = ensure_sheet(workbook, schema.sheet.value)
    append_row(sheet, schema.serialize(record))


def replace_record(workbook: Workbook, collection: Collection, record: Any) -> None:
    """Overwrite the row whose identifier matches ``record`` in place.

    Raises:
        KeyError: If no row carries the record's identifier.
    """

    schema = _SCHEMAS[collection]
    key = record_id(collection, record)
    sheet = ensure_sheet(workbook, schema.sheet.value)
    row_index = locate_row(workbook, schema.sheet.value, schema.id_column, key)
    if row_index is None:
        raise KeyError(f"Record not found in {schema.sheet.value}: {key}")

    columns = header_map(sheet)
    for column_name, value in zip(SHEET_COLUMNS[schema.sheet.value], schema.serialize(record)):
        if column_name not in columns:
            raise KeyError(f"Unknown {schema.sheet.value} field: {column_name}")
        sheet.cell(row=row_index, column=columns[column_name], value=value)


def delete_records(workbook: Workbook, collection: Collection, record_ids: Iterable[str]) -> int:
    """Delete every row whose identifier is in ``record_ids``.

    Returns:
        int: Number of rows removed.
    """

    schema = _SCHEMAS[collection]
    if schema.sheet.value not in workbook.sheetnames:
        return 0

    targets = {str(value) for value in record_ids}
    sheet = workbook[schema.sheet.value]
    columns = header_map(sheet)
    if schema.id_column not in columns:
        raise KeyError(f"Unknown column: {schema.id_column}")
    id_index = columns[schema.id_column]

    matches = [
        row_idx
        for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2)
        if row[id_index - 1] is not None and str(row[id_index - 1]) in targets
    ]
    # Delete bottom-up so earlier indices stay valid.
    for row_idx in reversed(matches):
        sheet.delete_rows(row_idx)
    return len(matches)


def write_default_prices(workbook: Workbook, prices: DefaultPrices) -> None:
    """Replace the contents of the ``DefaultPrices`` sheet."""

    sheet = ensure_sheet(workbook, SheetName.DEFAULT_PRICES.value)
    if sheet.max_row > 1:
        sheet.delete_rows(2, sheet.max_row - 1)
    for row in serialize_default_prices(prices):
        append_row(sheet, row)
