"""Business logic layer for the olive press ERP.

This module validates user intents expressed as frozen command objects, turns
them into row dataclasses and hands those to the Data Access Layer (DAL). The
derived fields every row stores (transaction totals and balances, purchase
and revenue totals) are computed here so the workbook never holds a total that
disagrees with its line items. Reads go through a cached
:class:`~olive_press_erp.data_manager.Collections` snapshot that every write
invalidates.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Container, Dict, Iterable, Mapping, Optional, Tuple, Union

from openpyxl.workbook import Workbook

from . import data_manager, log
from .aggregation import calculate_remaining_balance, calculate_total_cost, find_customer_by_name
from .constants import EXPECTED_SCHEMA_VERSION, INTERIM_COLLECTION_DESCRIPTION, Collection, ContainerFamily
from .costing import purchase_total_cost
from .formatting import ZERO, parse_date, round_to_two, to_number


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced customer or record is unknown."""


class ImmutableRecordError(BusinessRuleViolation):
    """Raised when a caller tries to edit an interim collection."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


DateInput = Union[date, datetime, str, None]


ID_PREFIXES: Mapping[Collection, str] = {
    Collection.CUSTOMERS: "C",
    Collection.TRANSACTIONS: "T",
    Collection.WORKER_EXPENSES: "W",
    Collection.FACTORY_OVERHEAD: "O",
    Collection.POMACE_REVENUES: "PR",
    Collection.TIN_PURCHASES: "TP",
    Collection.PLASTIC_PURCHASES: "PP",
    Collection.OIL_PURCHASES: "OP",
    Collection.OIL_SALES: "OS",
}


@dataclass(frozen=True)
class CustomerCommand:
    """User intent for creating or editing a customer.

    ``customer_id`` selects the record to replace; ``None`` creates a new one.
    """

    name: str
    phone: str = ""
    address: str = ""
    customer_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionCommand:
    """User intent for recording or editing a pressing transaction.

    The customer is resolved from ``customer_id`` when given, otherwise by a
    case-insensitive match on ``customer_name``; an unmatched name creates a
    new customer. Fields left as ``None`` keep the stored value when
    ``transaction_id`` names an existing row. On a new row they become zero,
    except prices, which come from the stored default prices. Count and
    price mappings are merged over the stored (or default) sizes.
    """

    customer_name: str = ""
    customer_id: Optional[str] = None
    date: DateInput = None
    olive_kg: Any = None
    oil_litre: Any = None
    price_per_kg: Any = None
    tin_counts: Optional[Mapping[str, Any]] = None
    tin_prices: Optional[Mapping[str, Any]] = None
    plastic_counts: Optional[Mapping[str, Any]] = None
    plastic_prices: Optional[Mapping[str, Any]] = None
    payment_received: Any = None
    payment_loss: Any = None
    description: Optional[str] = None
    transaction_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PaymentCollectionCommand:
    """User intent for recording an interim collection against a customer."""

    amount: Any
    customer_id: Optional[str] = None
    customer_name: str = ""
    date: DateInput = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ContainerPurchaseCommand:
    """User intent for buying empty tins or plastic jugs at one unit price."""

    family: ContainerFamily
    quantities: Mapping[str, Any]
    unit_price: Any
    date: DateInput = None
    description: str = ""
    purchase_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class WorkerExpenseCommand:
    worker_name: str
    amount: Any
    days_worked: Any = ZERO
    date: DateInput = None
    description: str = ""
    expense_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class OverheadExpenseCommand:
    description: str
    amount: Any
    date: DateInput = None
    expense_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PomaceRevenueCommand:
    """User intent for selling pomace by the truck load."""

    load_kg: Any
    price_per_kg: Any
    truck_count: Any = ZERO
    date: DateInput = None
    description: str = ""
    revenue_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class OilPurchaseCommand:
    supplier_name: str
    tin_count: Any
    tin_price: Any = None
    date: DateInput = None
    purchase_id: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class OilSaleCommand:
    customer_name: str
    tin_count: Any
    tin_price: Any = None
    date: DateInput = None
    sale_id: Optional[str] = None
    timestamp: Optional[datetime] = None


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC datetime when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def _resolve_date(candidate: DateInput, timestamp: datetime) -> str:
    """Normalise a command date into the ISO ``YYYY-MM-DD`` string stored in the workbook.

    Raises:
        ValueError: If ``candidate`` is a string that is not an ISO date.
    """

    if candidate is None or candidate == "":
        return timestamp.date().isoformat()
    parsed = parse_date(candidate)
    if parsed is None:
        log.error("Date validation failed: %s", candidate)
        raise ValueError(f"Invalid date: {candidate}")
    return parsed.date().isoformat()


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state."""

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def load_snapshot(context: RuntimeContext) -> data_manager.Collections:
    """Return the cached snapshot of every collection, reading the workbook on a miss.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.

    Returns:
        data_manager.Collections: Immutable snapshot reflecting every write
            performed through this context.
    """

    bucket = _get_cache_bucket(context, "snapshot")
    if "collections" not in bucket:
        bucket["collections"] = data_manager.read_collections(context.workbook)
        log.debug("Populated snapshot cache")
    return bucket["collections"]


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""

    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context containing a newly opened workbook and
            an empty cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """

    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


def generate_record_id(
    *, prefix: str = "T", when: Optional[datetime] = None, existing: Container[str] = ()
) -> str:
    """Generate a sortable identifier from a timestamp.

    Args:
        prefix (str): Designator prepended to the identifier, one per
            collection (see :data:`ID_PREFIXES`).
        when (datetime | None): Timestamp used to derive the identifier. When
            ``None`` the current UTC time is used.
        existing (Container[str]): Identifiers already taken. The timestamp is
            advanced one microsecond at a time until the identifier is free.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``.
    """

    moment = _resolve_timestamp(when)
    candidate = f"{prefix}{moment.strftime('%Y%m%d%H%M%S%f')}"
    while candidate in existing:
        moment += timedelta(microseconds=1)
        candidate = f"{prefix}{moment.strftime('%Y%m%d%H%M%S%f')}"
    return candidate


def _new_id(snapshot: data_manager.Collections, collection: Collection, when: datetime) -> str:
    taken = {data_manager.record_id(collection, row) for row in snapshot.get(collection)}
    return generate_record_id(prefix=ID_PREFIXES[collection], when=when, existing=taken)


def require_positive_amount(value: Any, label: str = "Amount") -> Decimal:
    """Coerce ``value`` and ensure it is strictly positive.

    Raises:
        ValueError: If the coerced value is zero or negative.
    """

    amount = to_number(value)
    if amount <= ZERO:
        log.error("%s validation failed: %s", label, value)
        raise ValueError(f"{label} must be greater than zero")
    return amount


def require_nonnegative(value: Any, label: str = "Amount") -> Decimal:
    """Coerce ``value`` and ensure it is zero or positive.

    Raises:
        ValueError: If the coerced value is negative.
    """

    amount = to_number(value)
    if amount < ZERO:
        log.error("%s validation failed: %s", label, value)
        raise ValueError(f"{label} must be zero or positive")
    return amount


def _require_text(value: str, label: str) -> str:
    text = (value or "").strip()
    if not text:
        log.warning("Rejected command with empty %s", label.lower())
        raise BusinessRuleViolation(f"{label} is required")
    return text


def _sizes(values: Mapping[str, Any], family: ContainerFamily, label: str) -> Dict[str, Decimal]:
    unknown = set(values) - set(family.sizes)
    if unknown:
        log.warning("Rejected unknown %s sizes: %s", family.value, ", ".join(sorted(unknown)))
        raise BusinessRuleViolation(f"Unknown {family.value} size(s): {', '.join(sorted(unknown))}")
    return {size: require_nonnegative(values.get(size), f"{label} {size}") for size in family.sizes}


def find_record(snapshot: data_manager.Collections, collection: Collection, record_id: str) -> Any:
    """Return the row of ``collection`` identified by ``record_id``.

    Raises:
        MissingReferenceError: If no row carries ``record_id``.
    """

    for row in snapshot.get(collection):
        if data_manager.record_id(collection, row) == record_id:
            return row
    log.warning("Lookup failed for %s id '%s'", collection.value, record_id)
    raise MissingReferenceError(f"Unknown {collection.value} id: {record_id}")


def _store(context: RuntimeContext, collection: Collection, record: Any, *, update: bool) -> None:
    if update:
        data_manager.replace_record(context.workbook, collection, record)
    else:
        data_manager.append_record(context.workbook, collection, record)
    _invalidate_cache(context, "snapshot")
    log.info(
        "%s %s record '%s'",
        "Updated" if update else "Created",
        collection.value,
        data_manager.record_id(collection, record),
    )


# ---------------------------------------------------------------------------
# Customers and transactions
# ---------------------------------------------------------------------------


def save_customer(context: RuntimeContext, command: CustomerCommand) -> data_manager.CustomerRow:
    """Create a customer or replace an existing one by id.

    Editing a customer's name also rewrites the denormalised
    ``customer_name`` on every transaction that references them.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (CustomerCommand): Customer fields to store.

    Returns:
        data_manager.CustomerRow: The stored row.

    Raises:
        BusinessRuleViolation: If the name is blank.
        MissingReferenceError: If ``command.customer_id`` is unknown.
    """

    name = _require_text(command.name, "Customer name")
    snapshot = load_snapshot(context)
    timestamp = _resolve_timestamp(command.timestamp)

    if command.customer_id:
        existing = find_record(snapshot, Collection.CUSTOMERS, command.customer_id)
        customer = data_manager.CustomerRow(
            customer_id=existing.customer_id,
            name=name,
            phone=command.phone.strip(),
            address=command.address.strip(),
            created_at=existing.created_at,
        )
        _store(context, Collection.CUSTOMERS, customer, update=True)
        if existing.name != name:
            _rename_customer_transactions(context, snapshot, customer)
        return customer

    customer = data_manager.CustomerRow(
        customer_id=_new_id(snapshot, Collection.CUSTOMERS, timestamp),
        name=name,
        phone=command.phone.strip(),
        address=command.address.strip(),
        created_at=timestamp.isoformat(),
    )
    _store(context, Collection.CUSTOMERS, customer, update=False)
    return customer


def _rename_customer_transactions(
    context: RuntimeContext, snapshot: data_manager.Collections, customer: data_manager.CustomerRow
) -> None:
    for transaction in snapshot.transactions:
        if transaction.customer_id == customer.customer_id and transaction.customer_name != customer.name:
            data_manager.replace_record(
                context.workbook,
                Collection.TRANSACTIONS,
                replace(transaction, customer_name=customer.name),
            )
    _invalidate_cache(context, "snapshot")


def _resolve_customer(
    context: RuntimeContext, customer_id: Optional[str], customer_name: str, *, create: bool
) -> data_manager.CustomerRow:
    snapshot = load_snapshot(context)
    if customer_id:
        return find_record(snapshot, Collection.CUSTOMERS, customer_id)

    name = _require_text(customer_name, "Customer name")
    customer = find_customer_by_name(snapshot.customers, name)
    if customer is not None:
        return customer
    if not create:
        log.warning("Customer lookup failed for name '%s'", name)
        raise MissingReferenceError(f"Unknown customer: {name}")

    log.info("Creating customer '%s' for a new transaction", name)
    return save_customer(context, CustomerCommand(name=name))


def save_transaction(context: RuntimeContext, command: TransactionCommand) -> data_manager.TransactionRow:
    """Validate and store a pressing transaction.

    ``total_cost`` and ``remaining_balance`` are always computed from the
    command's line items. Editing keeps the transaction id and, unless a new
    date is supplied, the original date. Every other field the command leaves
    as ``None`` keeps its stored value, including the prices, so a change to
    the default prices never re-prices an existing row.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (TransactionCommand): Structured intent describing the
            transaction.

    Returns:
        data_manager.TransactionRow: The stored row.

    Raises:
        ImmutableRecordError: If ``command.transaction_id`` names an interim
            collection.
        MissingReferenceError: If the transaction or customer id is unknown.
        BusinessRuleViolation: If no customer is named, a size key is unknown
            or the reserved interim description is used.
        ValueError: When a quantity, price or payment is negative or the date
            is malformed.
    """

    snapshot = load_snapshot(context)
    existing: Optional[data_manager.TransactionRow] = None
    if command.transaction_id:
        existing = find_record(snapshot, Collection.TRANSACTIONS, command.transaction_id)
        if existing.description == INTERIM_COLLECTION_DESCRIPTION:
            log.warning("Attempted edit of interim collection '%s'", command.transaction_id)
            raise ImmutableRecordError(f"Interim collection '{command.transaction_id}' cannot be edited")

    def kept(name: str, fallback: Any = ZERO) -> Any:
        value = getattr(command, name)
        if value is not None:
            return value
        return getattr(existing, name) if existing is not None else fallback

    def merged(name: str, fallback: Mapping[str, Any]) -> Dict[str, Any]:
        sizes: Dict[str, Any] = dict(getattr(existing, name) if existing is not None else fallback)
        sizes.update(getattr(command, name) or {})
        return sizes

    if (command.description or "").strip() == INTERIM_COLLECTION_DESCRIPTION:
        log.warning("Rejected transaction using the reserved interim description")
        raise BusinessRuleViolation("Use collect_payment to record an interim collection")
    description = (kept("description", "") or "").strip()

    defaults = snapshot.default_prices
    olive_kg = require_nonnegative(kept("olive_kg"), "Olive kg")
    oil_litre = require_nonnegative(kept("oil_litre"), "Oil litre")
    price_per_kg = require_nonnegative(kept("price_per_kg", defaults.price_per_kg), "Price per kg")
    tin_counts = _sizes(merged("tin_counts", {}), ContainerFamily.TIN, "Tin count")
    tin_prices = _sizes(merged("tin_prices", defaults.tin_prices), ContainerFamily.TIN, "Tin price")
    plastic_counts = _sizes(merged("plastic_counts", {}), ContainerFamily.PLASTIC, "Plastic count")
    plastic_prices = _sizes(
        merged("plastic_prices", defaults.plastic_prices), ContainerFamily.PLASTIC, "Plastic price"
    )
    payment_received = require_nonnegative(kept("payment_received"), "Payment received")
    payment_loss = require_nonnegative(kept("payment_loss"), "Payment loss")

    timestamp = _resolve_timestamp(command.timestamp)
    if command.date in (None, "") and existing is not None:
        record_date = existing.date
    else:
        record_date = _resolve_date(command.date, timestamp)

    customer_id, customer_name = command.customer_id, command.customer_name
    if existing is not None and not customer_id and not (customer_name or "").strip():
        customer_id, customer_name = existing.customer_id, existing.customer_name
    customer = _resolve_customer(context, customer_id, customer_name, create=True)

    total_cost = calculate_total_cost(olive_kg, price_per_kg, tin_counts, tin_prices, plastic_counts, plastic_prices)
    transaction = data_manager.TransactionRow(
        transaction_id=(
            existing.transaction_id
            if existing is not None
            else _new_id(load_snapshot(context), Collection.TRANSACTIONS, timestamp)
        ),
        customer_id=customer.customer_id,
        customer_name=customer.name,
        date=record_date,
        olive_kg=olive_kg,
        oil_litre=oil_litre,
        price_per_kg=price_per_kg,
        tin_counts=tin_counts,
        tin_prices=tin_prices,
        plastic_counts=plastic_counts,
        plastic_prices=plastic_prices,
        payment_received=payment_received,
        payment_loss=payment_loss,
        total_cost=total_cost,
        remaining_balance=calculate_remaining_balance(total_cost, payment_received, payment_loss),
        description=description,
    )
    _store(context, Collection.TRANSACTIONS, transaction, update=existing is not None)
    return transaction


def collect_payment(context: RuntimeContext, command: PaymentCollectionCommand) -> data_manager.TransactionRow:
    """Append an interim collection for an existing customer.

    The row carries no production or container figures: its total cost is
    zero and its remaining balance is the negated payment, which lowers the
    customer's aggregate balance by exactly ``amount``.

    Raises:
        ValueError: If ``amount`` is not strictly positive.
        MissingReferenceError: If the customer cannot be found.
    """

    amount = round_to_two(require_positive_amount(command.amount, "Payment amount"))
    customer = _resolve_customer(context, command.customer_id, command.customer_name, create=False)
    timestamp = _resolve_timestamp(command.timestamp)
    transaction = data_manager.TransactionRow(
        transaction_id=_new_id(load_snapshot(context), Collection.TRANSACTIONS, timestamp),
        customer_id=customer.customer_id,
        customer_name=customer.name,
        date=_resolve_date(command.date, timestamp),
        payment_received=amount,
        total_cost=ZERO,
        remaining_balance=calculate_remaining_balance(ZERO, amount, ZERO),
        description=INTERIM_COLLECTION_DESCRIPTION,
    )
    _store(context, Collection.TRANSACTIONS, transaction, update=False)
    return transaction


# ---------------------------------------------------------------------------
# Purchases, expenses and revenues
# ---------------------------------------------------------------------------


def _existing_or_new(
    context: RuntimeContext, collection: Collection, record_id: Optional[str], timestamp: datetime
) -> Tuple[str, bool]:
    snapshot = load_snapshot(context)
    if record_id:
        find_record(snapshot, collection, record_id)
        return record_id, True
    return _new_id(snapshot, collection, timestamp), False


def save_container_purchase(
    context: RuntimeContext, command: ContainerPurchaseCommand
) -> data_manager.ContainerPurchaseRow:
    """Validate and store a tin or plastic purchase.

    Raises:
        BusinessRuleViolation: If a size key does not belong to the family.
        ValueError: If every quantity is zero or any figure is negative.
    """

    family = ContainerFamily(command.family)
    quantities = _sizes(command.quantities, family, "Quantity")
    if sum(quantities.values(), ZERO) <= ZERO:
        log.error("Container purchase without quantities rejected")
        raise ValueError("At least one quantity must be greater than zero")
    unit_price = require_nonnegative(command.unit_price, "Unit price")

    collection = Collection.TIN_PURCHASES if family is ContainerFamily.TIN else Collection.PLASTIC_PURCHASES
    timestamp = _resolve_timestamp(command.timestamp)
    purchase_id, is_update = _existing_or_new(context, collection, command.purchase_id, timestamp)
    purchase = data_manager.ContainerPurchaseRow(
        purchase_id=purchase_id,
        family=family,
        date=_resolve_date(command.date, timestamp),
        quantities=quantities,
        unit_price=unit_price,
        total_cost=purchase_total_cost(quantities, unit_price),
        description=(command.description or "").strip(),
    )
    _store(context, collection, purchase, update=is_update)
    return purchase


def save_worker_expense(context: RuntimeContext, command: WorkerExpenseCommand) -> data_manager.WorkerExpenseRow:
    worker_name = _require_text(command.worker_name, "Worker name")
    amount = round_to_two(require_positive_amount(command.amount))
    days_worked = require_nonnegative(command.days_worked, "Days worked")
    timestamp = _resolve_timestamp(command.timestamp)
    expense_id, is_update = _existing_or_new(context, Collection.WORKER_EXPENSES, command.expense_id, timestamp)
    expense = data_manager.WorkerExpenseRow(
        expense_id=expense_id,
        date=_resolve_date(command.date, timestamp),
        worker_name=worker_name,
        days_worked=days_worked,
        amount=amount,
        description=(command.description or "").strip(),
    )
    _store(context, Collection.WORKER_EXPENSES, expense, update=is_update)
    return expense


def save_overhead_expense(
    context: RuntimeContext, command: OverheadExpenseCommand
) -> data_manager.OverheadExpenseRow:
    description = _require_text(command.description, "Description")
    amount = round_to_two(require_positive_amount(command.amount))
    timestamp = _resolve_timestamp(command.timestamp)
    expense_id, is_update = _existing_or_new(context, Collection.FACTORY_OVERHEAD, command.expense_id, timestamp)
    expense = data_manager.OverheadExpenseRow(
        expense_id=expense_id,
        date=_resolve_date(command.date, timestamp),
        description=description,
        amount=amount,
    )
    _store(context, Collection.FACTORY_OVERHEAD, expense, update=is_update)
    return expense


def save_pomace_revenue(context: RuntimeContext, command: PomaceRevenueCommand) -> data_manager.PomaceRevenueRow:
    """Store a pomace sale with ``total_revenue = round_to_two(load_kg * price_per_kg)``."""

    load_kg = require_positive_amount(command.load_kg, "Load kg")
    price_per_kg = require_nonnegative(command.price_per_kg, "Price per kg")
    truck_count = require_nonnegative(command.truck_count, "Truck count")
    timestamp = _resolve_timestamp(command.timestamp)
    revenue_id, is_update = _existing_or_new(context, Collection.POMACE_REVENUES, command.revenue_id, timestamp)
    revenue = data_manager.PomaceRevenueRow(
        revenue_id=revenue_id,
        date=_resolve_date(command.date, timestamp),
        truck_count=truck_count,
        load_kg=load_kg,
        price_per_kg=price_per_kg,
        total_revenue=round_to_two(load_kg * price_per_kg),
        description=(command.description or "").strip(),
    )
    _store(context, Collection.POMACE_REVENUES, revenue, update=is_update)
    return revenue


def save_oil_purchase(context: RuntimeContext, command: OilPurchaseCommand) -> data_manager.OilPurchaseRow:
    """Store a bulk oil purchase; an omitted tin price uses the default purchase price."""

    supplier = _require_text(command.supplier_name, "Supplier name")
    tin_count = require_positive_amount(command.tin_count, "Tin count")
    defaults = load_snapshot(context).default_prices
    tin_price = require_nonnegative(
        defaults.oil_purchase_price if command.tin_price is None else command.tin_price, "Tin price"
    )
    timestamp = _resolve_timestamp(command.timestamp)
    purchase_id, is_update = _existing_or_new(context, Collection.OIL_PURCHASES, command.purchase_id, timestamp)
    purchase = data_manager.OilPurchaseRow(
        purchase_id=purchase_id,
        date=_resolve_date(command.date, timestamp),
        supplier_name=supplier,
        tin_count=tin_count,
        tin_price=tin_price,
        total_cost=round_to_two(tin_count * tin_price),
    )
    _store(context, Collection.OIL_PURCHASES, purchase, update=is_update)
    return purchase


def save_oil_sale(context: RuntimeContext, command: OilSaleCommand) -> data_manager.OilSaleRow:
    """Store a bulk oil sale; an omitted tin price uses the default sale price."""

    customer_name = _require_text(command.customer_name, "Customer name")
    tin_count = require_positive_amount(command.tin_count, "Tin count")
    defaults = load_snapshot(context).default_prices
    tin_price = require_nonnegative(
        defaults.oil_sale_price if command.tin_price is None else command.tin_price, "Tin price"
    )
    timestamp = _resolve_timestamp(command.timestamp)
    sale_id, is_update = _existing_or_new(context, Collection.OIL_SALES, command.sale_id, timestamp)
    sale = data_manager.OilSaleRow(
        sale_id=sale_id,
        date=_resolve_date(command.date, timestamp),
        customer_name=customer_name,
        tin_count=tin_count,
        tin_price=tin_price,
        total_revenue=round_to_two(tin_count * tin_price),
    )
    _store(context, Collection.OIL_SALES, sale, update=is_update)
    return sale


def save_default_prices(context: RuntimeContext, prices: data_manager.DefaultPrices) -> data_manager.DefaultPrices:
    """Replace the stored default prices.

    Stored transactions keep the prices they were saved with.

    Raises:
        ValueError: If any price is negative.
    """

    validated = data_manager.DefaultPrices(
        price_per_kg=require_nonnegative(prices.price_per_kg, "Price per kg"),
        tin_prices=_sizes(prices.tin_prices, ContainerFamily.TIN, "Tin price"),
        plastic_prices=_sizes(prices.plastic_prices, ContainerFamily.PLASTIC, "Plastic price"),
        oil_purchase_price=require_nonnegative(prices.oil_purchase_price, "Oil purchase price"),
        oil_sale_price=require_nonnegative(prices.oil_sale_price, "Oil sale price"),
    )
    data_manager.write_default_prices(context.workbook, validated)
    _invalidate_cache(context, "snapshot")
    log.info("Updated default prices")
    return validated


# ---------------------------------------------------------------------------
# Deletes
# ---------------------------------------------------------------------------


def delete_record(context: RuntimeContext, collection: Collection, record_id: str) -> int:
    """Delete one record by id.

    Deleting a customer cascades to their transactions (see
    :func:`delete_customer`).

    Returns:
        int: Number of rows removed, including cascaded transactions.

    Raises:
        MissingReferenceError: If no record carries ``record_id``.
    """

    collection = Collection(collection)
    if collection is Collection.CUSTOMERS:
        return delete_customer(context, record_id)

    find_record(load_snapshot(context), collection, record_id)
    removed = data_manager.delete_records(context.workbook, collection, [record_id])
    _invalidate_cache(context, "snapshot")
    log.info("Deleted %s record '%s'", collection.value, record_id)
    return removed


def delete_customer(context: RuntimeContext, customer_id: str) -> int:
    """Delete a customer and every transaction that references them.

    Returns:
        int: Number of rows removed (the customer plus its transactions).

    Raises:
        MissingReferenceError: If ``customer_id`` is unknown.
    """

    snapshot = load_snapshot(context)
    find_record(snapshot, Collection.CUSTOMERS, customer_id)
    owned = [t.transaction_id for t in snapshot.transactions if t.customer_id == customer_id]
    removed = data_manager.delete_records(context.workbook, Collection.TRANSACTIONS, owned)
    removed += data_manager.delete_records(context.workbook, Collection.CUSTOMERS, [customer_id])
    _invalidate_cache(context, "snapshot")
    log.info("Deleted customer '%s' and %d transaction(s)", customer_id, len(owned))
    return removed


def delete_customers(context: RuntimeContext, customer_ids: Iterable[str]) -> int:
    """Delete several customers with their transactions; unknown ids abort before any delete."""

    targets = list(dict.fromkeys(customer_ids))
    snapshot = load_snapshot(context)
    for customer_id in targets:
        find_record(snapshot, Collection.CUSTOMERS, customer_id)
    return sum(delete_customer(context, customer_id) for customer_id in targets)


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "ImmutableRecordError",
    "RuntimeContext",
    "ID_PREFIXES",
    "CustomerCommand",
    "TransactionCommand",
    "PaymentCollectionCommand",
    "ContainerPurchaseCommand",
    "WorkerExpenseCommand",
    "OverheadExpenseCommand",
    "PomaceRevenueCommand",
    "OilPurchaseCommand",
    "OilSaleCommand",
    "load_snapshot",
    "load_runtime_context",
    "ensure_schema_version",
    "persist_context",
    "refresh_context",
    "generate_record_id",
    "require_positive_amount",
    "require_nonnegative",
    "find_record",
    "save_customer",
    "save_transaction",
    "collect_payment",
    "save_container_purchase",
    "save_worker_expense",
    "save_overhead_expense",
    "save_pomace_revenue",
    "save_oil_purchase",
    "save_oil_sale",
    "save_default_prices",
    "delete_record",
    "delete_customer",
    "delete_customers",
]
